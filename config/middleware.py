"""
Keep staff surfaces on the admin host.

When ADMIN_DOMAIN is set, the Django admin and the staff API only answer on
that host. The public claim portal redirects /admin/ to the site root and
answers the staff API with a plain 404.
"""

from django.conf import settings
from django.http import HttpResponseRedirect, JsonResponse

STAFF_PAGE_PREFIX = '/admin/'
STAFF_API_PREFIX = '/api/admin/'


class AdminHostRestrictionMiddleware:
    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        admin_domain = getattr(settings, 'ADMIN_DOMAIN', '')
        if admin_domain and request.path.startswith((STAFF_PAGE_PREFIX, STAFF_API_PREFIX)):
            host = request.get_host().split(':')[0]
            if host != admin_domain:
                if request.path.startswith(STAFF_API_PREFIX):
                    return JsonResponse({'error': 'Not found'}, status=404)
                return HttpResponseRedirect('/')
        return self.get_response(request)
