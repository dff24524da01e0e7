"""
API views for escrow.

This module provides REST API endpoints for the escrow lifecycle:
- EscrowOrderCreateView: Buyer opens an escrow order and gets a checkout URL
- EscrowVerifyView: Buyer (or admin) polls payment status after checkout
- EscrowActionsView: Buyer and admin actions on an order
- EscrowOrderDetailView: Order detail for its buyer, seller or an admin
- ExpireStaleOrdersView: Scheduler-triggered expiry sweep

URL Structure:
    /api/v1/escrow/orders/               POST
    /api/v1/escrow/orders/{id}/          GET
    /api/v1/escrow/verify/               GET (?reference=), POST
    /api/v1/escrow/actions/              POST
    /api/v1/escrow/expire/               POST (X-Cron-Secret)
    /api/v1/escrow/webhooks/paystack/    POST (X-Paystack-Signature)

Error Responses:
    Domain errors render as {"ok": false, "error", "error_code", "details"?}
    with the HTTP status from ERROR_STATUS_MAP. JWT failures are DRF's own
    401 responses.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)

from escrow.exceptions import Unauthorized
from escrow.permissions import CronSecretAuthentication, IsCronCaller
from escrow.serializers import (
    ACTION_CONFIRM_DELIVERY,
    ACTION_LIST_DISPUTES,
    ACTION_LIST_RELEASES,
    ACTION_OPEN_DISPUTE,
    ACTION_RELEASE,
    ACTION_RESOLVE_DISPUTE,
    DeliveryActionResultSerializer,
    DisputeResolutionResultSerializer,
    EscrowActionSerializer,
    EscrowOrderAdminRowSerializer,
    EscrowOrderCreatedSerializer,
    EscrowOrderCreateSerializer,
    EscrowOrderDetailSerializer,
    EscrowVerificationSerializer,
    EscrowVerifySerializer,
    ExpireStaleOrdersSerializer,
    ReleaseResultSerializer,
)
from escrow.services import SettlementService

if TYPE_CHECKING:
    from typing import Any

    from rest_framework.request import Request


logger = logging.getLogger(__name__)


# =============================================================================
# Error Rendering
# =============================================================================

# Most specific first
ERROR_STATUS_MAP: list[tuple[type[BaseApplicationError], int]] = [
    (Unauthorized, status.HTTP_401_UNAUTHORIZED),
    (PermissionDeniedError, status.HTTP_403_FORBIDDEN),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (ExternalServiceError, status.HTTP_502_BAD_GATEWAY),
]


def status_for_error(exc: BaseApplicationError) -> int:
    for error_class, http_status in ERROR_STATUS_MAP:
        if isinstance(exc, error_class):
            return http_status
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def error_response(exc: BaseApplicationError) -> Response:
    """Render a domain error as {"ok": false, ...} with its mapped status."""
    http_status = status_for_error(exc)
    log = logger.warning if http_status < 500 else logger.error
    log(
        "Escrow request failed",
        extra={"error_code": exc.error_code, "http_status": http_status},
    )
    return Response({"ok": False, **exc.to_dict()}, status=http_status)


def invalid_request(errors: Any) -> Response:
    return error_response(
        ValidationError("Invalid request.", details={"fields": errors})
    )


ERROR_RESPONSES = {
    400: OpenApiResponse(description="Invalid request"),
    401: OpenApiResponse(description="Missing or invalid credentials"),
    403: OpenApiResponse(description="Not allowed (role, ownership or incomplete profile)"),
    404: OpenApiResponse(description="Order or product not found"),
    409: OpenApiResponse(description="Transition not legal from the current state"),
}


# =============================================================================
# Buyer Views
# =============================================================================


class EscrowOrderCreateView(APIView):
    """
    Open an escrow order for a product.

    POST /api/v1/escrow/orders/

    Request body:
        {"product_id": "<uuid>", "currency": "NGN"}

    Returns:
        201 {"order_id", "reference", "authorization_url", "access_code", ...}
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="create_escrow_order",
        summary="Create escrow order",
        request=EscrowOrderCreateSerializer,
        responses={
            201: EscrowOrderCreatedSerializer,
            502: OpenApiResponse(description="Payment gateway failure"),
            **ERROR_RESPONSES,
        },
        tags=["Escrow"],
    )
    def post(self, request: Request) -> Response:
        serializer = EscrowOrderCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return invalid_request(serializer.errors)

        try:
            order = SettlementService.create_order(
                buyer=request.user,
                product_id=serializer.validated_data["product_id"],
                currency=serializer.validated_data.get("currency") or None,
            )
        except BaseApplicationError as e:
            return error_response(e)

        return Response(
            EscrowOrderCreatedSerializer(order).data,
            status=status.HTTP_201_CREATED,
        )


class EscrowVerifyView(APIView):
    """
    Poll payment status for an order (buyer return page).

    GET  /api/v1/escrow/verify/?reference=esc_...
    POST /api/v1/escrow/verify/  {"reference": "esc_..."}

    Returns:
        {"ok", "reference", "status", "updated", "funded", "paid_at"}
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="escrow_verify_status",
        summary="Verify escrow payment",
        parameters=[
            OpenApiParameter(
                name="reference",
                type=OpenApiTypes.STR,
                location=OpenApiParameter.QUERY,
                required=True,
            )
        ],
        responses={200: EscrowVerificationSerializer, **ERROR_RESPONSES},
        tags=["Escrow"],
    )
    def get(self, request: Request) -> Response:
        return self._verify(request, request.query_params)

    @extend_schema(
        operation_id="verify_escrow_status",
        summary="Verify escrow payment",
        request=EscrowVerifySerializer,
        responses={200: EscrowVerificationSerializer, **ERROR_RESPONSES},
        tags=["Escrow"],
    )
    def post(self, request: Request) -> Response:
        return self._verify(request, request.data)

    def _verify(self, request: Request, data: Any) -> Response:
        serializer = EscrowVerifySerializer(data=data)
        if not serializer.is_valid():
            return invalid_request(serializer.errors)

        try:
            outcome = SettlementService.verify_payment(
                actor=request.user,
                reference=serializer.validated_data["reference"],
            )
        except BaseApplicationError as e:
            return error_response(e)

        return Response(EscrowVerificationSerializer(outcome).data)


class EscrowOrderDetailView(APIView):
    """
    Order detail for the buyer, the seller or an admin.

    GET /api/v1/escrow/orders/{order_id}/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_escrow_order",
        summary="Get escrow order",
        responses={200: EscrowOrderDetailSerializer, **ERROR_RESPONSES},
        tags=["Escrow"],
    )
    def get(self, request: Request, order_id) -> Response:
        try:
            order = SettlementService.get_order_for_party(request.user, order_id)
        except BaseApplicationError as e:
            return error_response(e)

        return Response(EscrowOrderDetailSerializer(order).data)


# =============================================================================
# Actions
# =============================================================================


class EscrowActionsView(APIView):
    """
    Buyer and admin actions on escrow orders.

    POST /api/v1/escrow/actions/

    Request body:
        {"action": "...", "escrow_order_id": "<uuid>", "payload": {...}}

    Actions:
        buyer_confirm_delivery
        buyer_open_dispute           payload: {"reason"} or {"dispute_reason"}
        admin_resolve_dispute        payload: {"resolution", "note"?}
        admin_release_to_seller      payload: {"note"?}
        admin_list_open_disputes
        admin_list_pending_releases
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="escrow_actions",
        summary="Escrow buyer/admin action",
        request=EscrowActionSerializer,
        responses={200: OpenApiTypes.OBJECT, **ERROR_RESPONSES},
        tags=["Escrow"],
    )
    def post(self, request: Request) -> Response:
        serializer = EscrowActionSerializer(data=request.data)
        if not serializer.is_valid():
            return invalid_request(serializer.errors)

        data = serializer.validated_data
        handler = self._handlers()[data["action"]]

        try:
            return handler(request, data.get("escrow_order_id"), data["payload"])
        except BaseApplicationError as e:
            return error_response(e)

    def _handlers(self) -> dict[str, Any]:
        return {
            ACTION_CONFIRM_DELIVERY: self._confirm_delivery,
            ACTION_OPEN_DISPUTE: self._open_dispute,
            ACTION_RESOLVE_DISPUTE: self._resolve_dispute,
            ACTION_RELEASE: self._release,
            ACTION_LIST_DISPUTES: self._list_disputes,
            ACTION_LIST_RELEASES: self._list_releases,
        }

    def _confirm_delivery(self, request, order_id, payload) -> Response:
        order = SettlementService.confirm_delivery(actor=request.user, order_id=order_id)
        return Response(DeliveryActionResultSerializer(order).data)

    def _open_dispute(self, request, order_id, payload) -> Response:
        reason = payload.get("reason") or payload.get("dispute_reason") or ""
        order = SettlementService.open_dispute(
            actor=request.user,
            order_id=order_id,
            reason=str(reason),
        )
        return Response(DeliveryActionResultSerializer(order).data)

    def _resolve_dispute(self, request, order_id, payload) -> Response:
        order = SettlementService.resolve_dispute(
            actor=request.user,
            order_id=order_id,
            resolution=str(payload.get("resolution") or ""),
            note=_optional_text(payload.get("note")),
        )
        return Response(DisputeResolutionResultSerializer(order).data)

    def _release(self, request, order_id, payload) -> Response:
        order = SettlementService.release_to_seller(
            actor=request.user,
            order_id=order_id,
            note=_optional_text(payload.get("note")),
        )
        return Response(ReleaseResultSerializer(order).data)

    def _list_disputes(self, request, order_id, payload) -> Response:
        listing = SettlementService.list_open_disputes(actor=request.user)
        rows = EscrowOrderAdminRowSerializer(
            listing.orders, many=True, context={"parties": listing.parties}
        ).data
        return Response({"ok": True, "disputes": rows})

    def _list_releases(self, request, order_id, payload) -> Response:
        listing = SettlementService.list_pending_releases(actor=request.user)
        rows = EscrowOrderAdminRowSerializer(
            listing.orders, many=True, context={"parties": listing.parties}
        ).data
        return Response({"ok": True, "releases": rows})


def _optional_text(value: Any) -> str | None:
    return None if value is None else str(value)


# =============================================================================
# Scheduler
# =============================================================================


class ExpireStaleOrdersView(APIView):
    """
    Expire unpaid orders older than the cutoff.

    POST /api/v1/escrow/expire/
    Header: X-Cron-Secret

    Request body:
        {"cutoff_minutes": 30}   # optional

    Returns:
        {"ok": true, "expired_count": N}
    """

    authentication_classes = [CronSecretAuthentication]
    permission_classes = [IsCronCaller]

    @extend_schema(
        operation_id="escrow_expire",
        summary="Expire stale escrow orders",
        request=ExpireStaleOrdersSerializer,
        responses={200: OpenApiTypes.OBJECT, **ERROR_RESPONSES},
        tags=["Escrow"],
    )
    def post(self, request: Request) -> Response:
        serializer = ExpireStaleOrdersSerializer(data=request.data)
        if not serializer.is_valid():
            return invalid_request(serializer.errors)

        try:
            count = SettlementService.expire_stale(
                cutoff_minutes=serializer.validated_data.get("cutoff_minutes")
            )
        except BaseApplicationError as e:
            return error_response(e)

        return Response({"ok": True, "expired_count": count})
