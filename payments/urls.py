from django.urls import path
from payments import views

app_name = 'payments'

urlpatterns = [
    path('key/', views.razorpay_key, name='razorpay_key'),
    path('check-attempts/', views.check_attempts, name='check_attempts'),
    path('create-order/', views.create_order_view, name='create_order'),
    path('verify/', views.verify_payment, name='verify'),
    path('webhook/', views.razorpay_webhook, name='webhook'),
]
