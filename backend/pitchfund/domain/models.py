"""Typed domain representations passed between the HTTP layer, services and adapters."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any


class Role(str, Enum):
    ADMIN = "admin"
    USER = "user"


@dataclass(slots=True, frozen=True)
class RequestContext:
    """Caller identity for a single request, resolved once and passed explicitly."""

    user_id: str | None = None
    email: str | None = None
    role: Role = Role.USER
    can_create_events: bool = False

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

    @property
    def may_create_events(self) -> bool:
        return self.is_admin or self.can_create_events

    @classmethod
    def anonymous(cls) -> "RequestContext":
        return cls()


@dataclass(slots=True, frozen=True)
class FundingFigures:
    """Derived capacity and money figures recomputed on every read."""

    paid_participants: int
    available_spots: int
    collected_amount: Decimal
    funding_percentage: Decimal


@dataclass(slots=True)
class CheckoutCompletion:
    """Checkout session carried by a completed or async-payment webhook."""

    session_id: str
    payment_intent_id: str | None
    event_id: int
    participant_name: str
    participant_email: str | None
    user_id: str | None
    payment_status: str | None = None
    avatar_url: str | None = None
    amount_total: int | None = None
    raw_data: dict[str, Any] | None = None

    @property
    def is_paid(self) -> bool:
        """Delayed methods such as BLIK complete the session before the money arrives."""

        return self.payment_status in ("paid", "no_payment_required")


@dataclass(slots=True)
class CheckoutExpiry:
    session_id: str
    event_id: int | None


@dataclass(slots=True)
class PayoutStatus:
    connected: bool
    charges_enabled: bool = False
    payouts_enabled: bool = False
    account_id: str | None = None

    @property
    def onboarding_complete(self) -> bool:
        return self.charges_enabled and self.payouts_enabled


@dataclass(slots=True)
class WebhookOutcome:
    received: bool = True
    skipped: bool = False
    detail: str | None = None
