"""
Sign-up and the current-user endpoint. JWT issue and refresh are the
simplejwt views wired in urls.py.
"""

from django.db import transaction
from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from authentication.serializers import (
    RegisterSerializer,
    RegistrationResponseSerializer,
    UserSerializer,
)
from credits.serializers import CreditAccountSerializer


class RegisterView(APIView):
    """
    Create a user with email and password.

    POST /api/v1/auth/register/

    Response:
        201 Created: User and credit account (free tier, free allowance)
        400 Bad Request: Invalid input or email already registered
    """

    permission_classes = [AllowAny]
    authentication_classes = []

    @extend_schema(
        operation_id="register_user",
        summary="Register",
        description=(
            "Create an account with email and password. The new user starts "
            "on the free tier with the free monthly allowance."
        ),
        request=RegisterSerializer,
        responses={
            201: OpenApiResponse(
                response=RegistrationResponseSerializer,
                description="User created",
            ),
            400: OpenApiResponse(description="Invalid input"),
        },
        tags=["Auth"],
    )
    def post(self, request):
        serializer = RegisterSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        with transaction.atomic():
            user = serializer.save()

        return Response(
            {
                "user": UserSerializer(user).data,
                "credit_account": CreditAccountSerializer(user.credit_account).data,
            },
            status=status.HTTP_201_CREATED,
        )


class MeView(APIView):
    """
    Current user.

    GET /api/v1/auth/me/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_current_user",
        summary="Get current user",
        responses={200: UserSerializer},
        tags=["Auth"],
    )
    def get(self, request):
        return Response(UserSerializer(request.user).data)
