"""
Authentication and permission classes for escrow endpoints.

Bearer JWT authentication for buyers and admins comes from the
REST_FRAMEWORK defaults. Role checks (buyer ownership, admin) live in
SettlementService because they need the loaded order and a fresh
profile read.

This module covers the one caller that has no user: the scheduler
hitting the expiry endpoint with a shared secret.

- CronSecretAuthentication: Validates the X-Cron-Secret header
- IsCronCaller: Allows only requests authenticated by the cron secret

Usage:
    class ExpireStaleOrdersView(APIView):
        authentication_classes = [CronSecretAuthentication]
        permission_classes = [IsCronCaller]
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.conf import settings
from django.contrib.auth.models import AnonymousUser
from django.utils.crypto import constant_time_compare
from rest_framework import exceptions, permissions
from rest_framework.authentication import BaseAuthentication

if TYPE_CHECKING:
    from rest_framework.request import Request
    from rest_framework.views import APIView


logger = logging.getLogger(__name__)

CRON_SECRET_HEADER = "X-Cron-Secret"

# request.auth value for a verified scheduler call
CRON_CALLER = "cron"


def is_valid_cron_secret(provided: str | None) -> bool:
    """Constant-time comparison against ESCROW_CRON_SECRET; unset never matches."""
    expected = getattr(settings, "ESCROW_CRON_SECRET", "") or ""
    if not expected or not provided:
        return False
    return constant_time_compare(provided, expected)


class CronSecretAuthentication(BaseAuthentication):
    """
    Authenticates scheduler calls by shared secret.

    Returns None when the header is absent so the permission check
    produces a 401 with a WWW-Authenticate hint.
    """

    def authenticate(self, request: Request):
        provided = request.headers.get(CRON_SECRET_HEADER)
        if provided is None:
            return None

        if not is_valid_cron_secret(provided):
            logger.warning(
                "Rejected cron call with invalid secret",
                extra={"path": request.path},
            )
            raise exceptions.AuthenticationFailed("Invalid cron secret.")

        return (AnonymousUser(), CRON_CALLER)

    def authenticate_header(self, request: Request) -> str:
        return CRON_SECRET_HEADER


class IsCronCaller(permissions.BasePermission):
    """Allows access only to requests carrying a valid cron secret."""

    message = "Cron secret required."

    def has_permission(self, request: Request, view: APIView) -> bool:
        return request.auth == CRON_CALLER
