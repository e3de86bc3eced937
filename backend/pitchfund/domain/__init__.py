"""Domain models, arithmetic and errors for event funding."""

from .models import (
    CheckoutCompletion,
    CheckoutExpiry,
    FundingFigures,
    PayoutStatus,
    RequestContext,
    Role,
    WebhookOutcome,
)

__all__ = [
    "CheckoutCompletion",
    "CheckoutExpiry",
    "FundingFigures",
    "PayoutStatus",
    "RequestContext",
    "Role",
    "WebhookOutcome",
]
