from django.urls import path

from . import views

app_name = 'twofactor'

urlpatterns = [
    path('status/', views.two_factor_status, name='status'),
    path('secret/', views.generate_secret, name='secret'),
    path('enable/', views.enable, name='enable'),
    path('disable/', views.disable, name='disable'),
    path('verify/', views.verify, name='verify'),
    path('recovery-codes/', views.recovery_codes, name='recovery-codes'),
]
