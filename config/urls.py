from django.contrib import admin
from django.urls import path, include
from django.conf import settings
from django.conf.urls.static import static
from django.http import JsonResponse
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView, SpectacularSwaggerView


def health_check(request):
    return JsonResponse({'status': 'ok', 'service': 'systech'})


urlpatterns = [
    # Admin — access restricted to ADMIN_DOMAIN by AdminHostRestrictionMiddleware
    path('admin/', admin.site.urls),

    # Health check
    path('health/', health_check, name='health'),

    # API
    path('api/claims/', include('claims.urls')),
    path('api/customer/', include('accounts.urls')),
    path('api/payments/', include('payments.urls')),
    path('api/automation/', include('automation.urls')),
    path('api/admin/v1/', include('dashboard.urls')),

    # API Documentation
    path('api/schema/', SpectacularAPIView.as_view(), name='schema'),
    path('api/docs/', SpectacularRedocView.as_view(url_name='schema'), name='redoc'),
    path('api/docs/swagger/', SpectacularSwaggerView.as_view(url_name='schema'), name='swagger-ui'),
]

if settings.DEBUG:
    urlpatterns += static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)
    urlpatterns += static(settings.STATIC_URL, document_root=settings.STATIC_ROOT)
