from django.urls import path
from accounts import views
from claims import views as claim_views

app_name = 'accounts'

urlpatterns = [
    # Email OTP login
    path('send-otp/', views.send_otp_view, name='send_otp'),
    path('verify-otp/', views.verify_otp_view, name='verify_otp'),

    # Customer dashboard
    path('claims/', claim_views.customer_claims, name='customer_claims'),
]
