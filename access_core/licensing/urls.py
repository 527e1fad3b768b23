from django.urls import path

from . import views

app_name = 'licensing'

urlpatterns = [
    path('current/', views.current_license, name='current'),
    path('validate/', views.validate_key, name='validate'),
    path('<uuid:company_id>/', views.license_detail, name='detail'),
    path('<uuid:company_id>/activate/', views.activate, name='activate'),
]
