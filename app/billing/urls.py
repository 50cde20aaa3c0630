"""
URL configuration for the billing app.

Routes:
    - POST /checkout/         - Start a Stripe Checkout for a paid tier
    - POST /webhooks/stripe/  - Stripe webhook endpoint

All routes are prefixed with /api/v1/billing/ when included in the main URLconf.
"""

from django.urls import path

from billing.views import CheckoutSessionView
from billing.webhooks.views import stripe_webhook

app_name = "billing"

urlpatterns = [
    path("checkout/", CheckoutSessionView.as_view(), name="checkout"),
    # Webhook endpoints
    path("webhooks/stripe/", stripe_webhook, name="stripe_webhook"),
]
