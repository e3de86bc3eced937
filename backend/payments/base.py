"""Contract the service expects from a payment processor."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping, Protocol

from pitchfund.domain import PayoutStatus


@dataclass(slots=True)
class CheckoutLineItem:
    name: str
    description: str | None
    unit_amount: int
    currency: str
    quantity: int = 1


@dataclass(slots=True)
class CheckoutSessionRequest:
    line_item: CheckoutLineItem
    success_url: str
    cancel_url: str
    expires_at: datetime
    metadata: dict[str, str]
    payment_method_types: list[str]
    customer_email: str | None = None
    client_reference_id: str | None = None
    destination_account: str | None = None
    application_fee_amount: int | None = None


@dataclass(slots=True)
class CheckoutSessionHandle:
    session_id: str
    url: str
    payment_intent_id: str | None = None


class PaymentGateway(Protocol):
    """Interface implemented by processor adapters."""

    def create_checkout_session(self, request: CheckoutSessionRequest) -> CheckoutSessionHandle:
        """Create a hosted checkout session."""

    def expire_checkout_session(self, session_id: str) -> None:
        """Close an open checkout session so it can no longer be paid."""

    def construct_event(self, payload: bytes, signature: str) -> Mapping[str, Any]:
        """Verify the webhook signature and return the decoded event.

        Raises :class:`SignatureVerificationError` when the signature does not match.
        """

    def refund_payment(self, payment_intent_id: str) -> str | None:
        """Refund a captured payment; ``None`` means it had already been refunded."""

    def create_account(self, *, email: str | None) -> str:
        """Create a connected payout account and return its identifier."""

    def create_account_link(self, account_id: str) -> str:
        """Return a one-time onboarding URL for the account."""

    def retrieve_account(self, account_id: str) -> PayoutStatus:
        """Return the current capability flags of the account."""


__all__ = [
    "CheckoutLineItem",
    "CheckoutSessionHandle",
    "CheckoutSessionRequest",
    "PaymentGateway",
]
