"""
URL configuration for access-core.
"""
from django.contrib import admin
from django.urls import include, path
from rest_framework_simplejwt.views import TokenRefreshView

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/auth/', include('access_core.lockout.urls')),
    path('api/auth/refresh/', TokenRefreshView.as_view(), name='token_refresh'),
    path('api/auth/2fa/', include('access_core.twofactor.urls')),
    path('api/licenses/', include('access_core.licensing.urls')),
    path('api/sessions/', include('access_core.termination.urls')),
]
