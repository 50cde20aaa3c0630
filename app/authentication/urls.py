"""
URL configuration for authentication app.

URL structure:
    /api/v1/auth/register/        - Email/password registration
    /api/v1/auth/token/           - Obtain JWT access/refresh pair
    /api/v1/auth/token/refresh/   - Refresh an access token
    /api/v1/auth/me/              - Current user
"""

from django.urls import path
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from authentication.views import MeView, RegisterView

app_name = "authentication"

urlpatterns = [
    path("register/", RegisterView.as_view(), name="register"),
    path("token/", TokenObtainPairView.as_view(), name="token_obtain_pair"),
    path("token/refresh/", TokenRefreshView.as_view(), name="token_refresh"),
    path("me/", MeView.as_view(), name="me"),
]
