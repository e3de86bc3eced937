from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base


class FieldType(str, Enum):
    FUTSAL = "futsal"
    ARTIFICIAL_GRASS = "artificial_grass"
    NATURAL_GRASS = "natural_grass"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    REFUNDED = "refunded"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """SQLite drops tzinfo on round-trip; treat naive timestamps as UTC."""

    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    email: Mapped[str | None] = mapped_column(String, nullable=True)
    full_name: Mapped[str | None] = mapped_column(String, nullable=True)
    nickname: Mapped[str | None] = mapped_column(String, nullable=True, unique=True)
    role: Mapped[str] = mapped_column(String, nullable=False, default="user")
    can_create_events: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    email_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    nickname_last_changed: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    bio: Mapped[str | None] = mapped_column(Text, nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(String, nullable=True)

    stripe_account_id: Mapped[str | None] = mapped_column(String, nullable=True, unique=True)
    stripe_charges_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    stripe_payouts_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    stripe_onboarding_complete: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    events: Mapped[list["Event"]] = relationship("Event", back_populates="organizer")


class Event(Base):
    __tablename__ = "events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    starts_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    ends_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    location: Mapped[str] = mapped_column(String(255), nullable=False)
    total_cost: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    min_players: Mapped[int] = mapped_column(Integer, nullable=False)
    max_players: Mapped[int] = mapped_column(Integer, nullable=False)
    price_per_player: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    field_type: Mapped[str] = mapped_column(
        String(32), nullable=False, default=FieldType.ARTIFICIAL_GRASS.value
    )
    players_per_team: Mapped[int] = mapped_column(Integer, nullable=False, default=6)
    cleats_allowed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    accepts_online_payments: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    organizer_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    organizer: Mapped[User] = relationship("User", back_populates="events")
    participants: Mapped[list["Participant"]] = relationship(
        "Participant", back_populates="event", cascade="all, delete-orphan"
    )
    chat_messages: Mapped[list["ChatMessage"]] = relationship(
        "ChatMessage", back_populates="event", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint("total_cost > 0", name="ck_events_total_cost_positive"),
        CheckConstraint("min_players >= 2", name="ck_events_min_players"),
        CheckConstraint("max_players >= min_players", name="ck_events_max_players"),
        CheckConstraint("ends_at > starts_at", name="ck_events_schedule_window"),
        Index("ix_events_organizer_id", "organizer_id"),
        Index("ix_events_starts_at", "starts_at"),
    )


class Participant(Base):
    __tablename__ = "participants"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_id: Mapped[int] = mapped_column(Integer, ForeignKey("events.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str | None] = mapped_column(String, nullable=True)
    user_id: Mapped[str | None] = mapped_column(String, ForeignKey("users.id"), nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(String, nullable=True)
    payment_status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=PaymentStatus.PENDING.value
    )
    stripe_checkout_session_id: Mapped[str | None] = mapped_column(
        String, nullable=True, unique=True
    )
    stripe_payment_intent_id: Mapped[str | None] = mapped_column(
        String, nullable=True, unique=True
    )
    hold_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    event: Mapped[Event] = relationship("Event", back_populates="participants")

    __table_args__ = (
        Index("ix_participants_event_status", "event_id", "payment_status"),
        Index("ix_participants_user_id", "user_id"),
    )

    @property
    def is_online_paid(self) -> bool:
        """Online rows stay admin-only until their checkout has failed."""

        return (
            self.payment_method == "online"
            and self.payment_status != PaymentStatus.FAILED.value
        )

    @property
    def payment_method(self) -> str:
        if self.stripe_payment_intent_id or self.stripe_checkout_session_id:
            return "online"
        return "cash"


class ChatMessage(Base):
    __tablename__ = "chat_messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_id: Mapped[int] = mapped_column(Integer, ForeignKey("events.id"), nullable=False)
    user_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    event: Mapped[Event] = relationship("Event", back_populates="chat_messages")
    user: Mapped[User] = relationship("User")

    __table_args__ = (Index("ix_chat_messages_event_created", "event_id", "created_at"),)
