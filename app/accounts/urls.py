"""
URL configuration for accounts.

Bearer tokens for the escrow API are standard simplejwt access tokens.

URL Structure:
    token/           - Obtain access/refresh pair (POST email, password)
    token/refresh/   - Refresh an access token
"""

from django.urls import path
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

app_name = "accounts"

urlpatterns = [
    path("token/", TokenObtainPairView.as_view(), name="token_obtain_pair"),
    path("token/refresh/", TokenRefreshView.as_view(), name="token_refresh"),
]
