from django.urls import path

from . import views

app_name = 'termination'

urlpatterns = [
    path('active/', views.active_sessions, name='active'),
    path('<uuid:user_id>/terminate/', views.terminate_session, name='terminate'),
]
