from django.urls import path
from dashboard import views

app_name = 'dashboard'

urlpatterns = [
    # Auth
    path('auth/login/', views.admin_login, name='admin_login'),
    path('me/', views.admin_me, name='admin_me'),

    # Dashboard
    path('stats/', views.dashboard_stats, name='dashboard_stats'),

    # Claims
    path('claims/', views.claim_list, name='claim_list'),
    path('claims/<str:claim_id>/', views.claim_detail, name='claim_detail'),
    path('claims/<str:claim_id>/assign-key/', views.assign_key, name='assign_key'),

    # Inventory
    path('keys/', views.key_list, name='key_list'),
    path('sales/', views.sales_list, name='sales_list'),
    path('upload/sales/', views.upload_sales, name='upload_sales'),
    path('upload/keys/', views.upload_keys, name='upload_keys'),
    path('export/', views.export_data, name='export'),
    path('delete/', views.delete_collection, name='delete_collection'),

    # Notifications & payments
    path('emails/send/', views.send_email, name='send_email'),
    path('payments/sync/', views.sync_payments, name='sync_payments'),
    path('payments/transactions/', views.payment_transactions, name='payment_transactions'),
    path('reconciliation/', views.reconciliation, name='reconciliation'),

    # Audit
    path('audit-logs/', views.audit_logs, name='audit_logs'),
]
