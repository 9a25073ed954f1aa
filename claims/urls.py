from django.urls import path
from claims import views

app_name = 'claims'

urlpatterns = [
    path('submit/', views.submit_claim, name='submit'),
    path('verify-activation-code/', views.verify_activation_code, name='verify_activation_code'),
]
