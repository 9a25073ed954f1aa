from django.urls import path
from automation import views

app_name = 'automation'

urlpatterns = [
    path('trigger/', views.trigger_sweep, name='trigger'),
    path('reprocess/', views.reprocess, name='reprocess'),
    path('cancel/', views.cancel_sweep, name='cancel'),
    path('settings/', views.automation_settings, name='settings'),
]
