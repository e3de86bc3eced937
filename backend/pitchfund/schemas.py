"""API schemas; the only place field names are translated between snake_case and camelCase."""

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

from .models import FieldType


class ApiModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


def _to_float(value: Any) -> float | None:
    if value is None:
        return None
    return float(value)


# ---------- Events ----------


class EventCreate(ApiModel):
    name: str = Field(min_length=1, max_length=200)
    starts_at: datetime
    ends_at: datetime
    location: str = Field(min_length=1, max_length=255)
    total_cost: Decimal
    min_players: int = 2
    max_players: int
    players_per_team: int = 6
    field_type: FieldType = FieldType.ARTIFICIAL_GRASS
    cleats_allowed: bool = True
    accepts_online_payments: bool = True

    @field_validator("name", "location")
    @classmethod
    def _strip(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("must not be blank")
        return stripped


class OrganizerSummary(ApiModel):
    id: str
    nickname: str | None = None
    full_name: str | None = None
    avatar_url: str | None = None


class EventBase(ApiModel):
    id: int
    name: str
    starts_at: datetime
    ends_at: datetime
    location: str
    total_cost: float
    min_players: int
    max_players: int
    price_per_player: float
    field_type: str
    players_per_team: int
    cleats_allowed: bool
    accepts_online_payments: bool
    organizer_id: str
    created_at: datetime

    @field_validator("total_cost", "price_per_player", mode="before")
    @classmethod
    def _coerce_decimal(cls, value: Any) -> float | None:
        return _to_float(value)


class EventSummary(EventBase):
    paid_participants: int
    available_spots: int
    collected_amount: float
    funding_percentage: float
    has_ended: bool
    organizer: OrganizerSummary | None = None

    @field_validator("collected_amount", "funding_percentage", mode="before")
    @classmethod
    def _coerce_figures(cls, value: Any) -> float | None:
        return _to_float(value)


class PublicParticipant(ApiModel):
    id: int
    name: str
    user_id: str | None = None
    avatar_url: str | None = None
    payment_method: str
    created_at: datetime


class EventDetail(EventSummary):
    participants: list[PublicParticipant] = Field(default_factory=list)


class EventList(ApiModel):
    total: int
    items: list[EventSummary]


# ---------- Participants ----------


class ParticipantCreate(ApiModel):
    name: str = Field(min_length=1, max_length=200)
    email: EmailStr | None = None
    payment_method: str = "cash"

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("must not be blank")
        return stripped

    @field_validator("email", mode="before")
    @classmethod
    def _blank_email(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("payment_method")
    @classmethod
    def _cash_only(cls, value: str) -> str:
        if value.strip().lower() != "cash":
            raise ValueError("only cash participants can be added manually")
        return "cash"


class Participant(ApiModel):
    id: int
    event_id: int
    name: str
    email: str | None = None
    user_id: str | None = None
    avatar_url: str | None = None
    payment_status: str
    payment_method: str
    stripe_payment_intent_id: str | None = None
    hold_expires_at: datetime | None = None
    created_at: datetime


class ParticipantList(ApiModel):
    total: int
    items: list[Participant]


class MessageResponse(ApiModel):
    message: str


# ---------- Payments ----------


class CheckoutRequest(ApiModel):
    event_id: int
    participant_name: str = Field(min_length=1, max_length=200)
    participant_email: EmailStr | None = None

    @field_validator("participant_email", mode="before")
    @classmethod
    def _blank_email(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class CheckoutResponse(ApiModel):
    url: str
    session_id: str
    participant_id: int
    hold_expires_at: datetime


class WebhookAck(ApiModel):
    received: bool = True
    skipped: bool = False


class ConnectOnboarding(ApiModel):
    url: str
    account_id: str


class ConnectStatus(ApiModel):
    connected: bool
    onboarding_complete: bool
    charges_enabled: bool
    payouts_enabled: bool
    account_id: str | None = None


# ---------- Profiles & admin ----------


class Profile(ApiModel):
    id: str
    email: str | None = None
    full_name: str | None = None
    nickname: str | None = None
    role: str
    avatar_url: str | None = None
    bio: str | None = None
    can_create_events: bool
    email_verified: bool
    nickname_last_changed: datetime | None = None
    stripe_onboarding_complete: bool
    created_at: datetime


class PublicProfile(ApiModel):
    nickname: str
    full_name: str | None = None
    avatar_url: str | None = None
    bio: str | None = None
    can_create_events: bool
    created_at: datetime
    events: EventList


class ProfileUpdate(ApiModel):
    nickname: str | None = Field(default=None, min_length=3, max_length=30, pattern=r"^[A-Za-z0-9_.-]+$")
    full_name: str | None = Field(default=None, max_length=200)
    bio: str | None = Field(default=None, max_length=2000)
    avatar_url: str | None = Field(default=None, max_length=500)


class UserList(ApiModel):
    total: int
    items: list[Profile]


class PermissionUpdate(ApiModel):
    can_create_events: bool


class PermissionResult(ApiModel):
    user: Profile
    message: str


# ---------- Chat ----------


class ChatMessageCreate(ApiModel):
    message: str = Field(min_length=1)


class ChatMessage(ApiModel):
    id: int
    event_id: int
    user_id: str
    message: str
    created_at: datetime
    author: OrganizerSummary | None = None


class ChatMessageList(ApiModel):
    total: int
    items: list[ChatMessage]
