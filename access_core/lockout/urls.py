from django.urls import path

from . import views

app_name = 'lockout'

urlpatterns = [
    path('login/', views.login, name='login'),
    path('attempts/', views.login_attempts, name='attempts'),
    path('locks/', views.account_locks, name='locks'),
    path('locks/<uuid:user_id>/unlock/', views.unlock_account, name='unlock'),
]
