"""
API views for billing.

Provides:
- CheckoutSessionView: Start a Stripe Checkout for a paid tier

The Stripe webhook endpoint lives in billing.webhooks.views.
"""

from __future__ import annotations

from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.exceptions import BaseApplicationError

from billing.serializers import CheckoutRequestSerializer, CheckoutSessionSerializer
from billing.services import CheckoutService


class CheckoutSessionView(APIView):
    """
    Start a subscription checkout.

    POST /api/v1/billing/checkout/

    Request:
        - tier (required): starter, pro or business

    Response:
        200 OK: Checkout session id and URL
        400 Bad Request: Tier not purchasable or price not configured
        502 Bad Gateway: Stripe rejected the request
        503 Service Unavailable: Stripe unreachable, retry later
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="create_checkout_session",
        summary="Start subscription checkout",
        description=(
            "Create a Stripe Checkout Session for a paid tier. The Stripe customer "
            "is created on first use. Credits are granted when Stripe confirms the "
            "payment through the webhook."
        ),
        request=CheckoutRequestSerializer,
        responses={
            200: OpenApiResponse(response=CheckoutSessionSerializer, description="Checkout created"),
            400: OpenApiResponse(description="Invalid tier"),
            502: OpenApiResponse(description="Stripe error"),
        },
        tags=["Billing"],
    )
    def post(self, request):
        serializer = CheckoutRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            session = CheckoutService.start_checkout(request.user, serializer.validated_data["tier"])
        except BaseApplicationError as e:
            return Response(e.to_dict(), status=e.status_code)

        return Response(CheckoutSessionSerializer({"session_id": session.id, "url": session.url}).data)
