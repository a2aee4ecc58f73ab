"""Fiat payment processors.

This module provides:
- FiatPaymentService: abstract order creation/cancellation interface
- RevolutApi: Revolut Merchant API
- StripeApi: Stripe checkout sessions and payment intents
"""

from paybridge.fiat.models import (
    Currency,
    FiatPaymentInfo,
    FiatPaymentService,
    LineItem,
    fiat_currency,
)
from paybridge.fiat.revolut import (
    RevolutApi,
    RevolutConfig,
    RevolutOrder,
    RevolutOrderState,
    RevolutWebhook,
    RevolutWebhookBody,
    RevolutWebhookEvent,
)
from paybridge.fiat.stripe import (
    StripeApi,
    StripeCheckoutSession,
    StripeConfig,
    StripePaymentIntent,
    StripeWebhookEvent,
)

__all__ = [
    # Models
    "Currency",
    "LineItem",
    "FiatPaymentInfo",
    "FiatPaymentService",
    "fiat_currency",
    # Revolut
    "RevolutApi",
    "RevolutConfig",
    "RevolutOrder",
    "RevolutOrderState",
    "RevolutWebhook",
    "RevolutWebhookBody",
    "RevolutWebhookEvent",
    # Stripe
    "StripeApi",
    "StripeConfig",
    "StripeCheckoutSession",
    "StripePaymentIntent",
    "StripeWebhookEvent",
]
