"""Participant ledger: the single writer of participant rows for cash and online payments."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from loguru import logger
from sqlalchemy.orm import Session

from pitchfund.core.config import Settings, settings as default_settings
from pitchfund.domain import CheckoutCompletion, RequestContext
from pitchfund.domain.errors import (
    AuthorizationError,
    CapacityExceededError,
    NotFoundError,
)
from pitchfund.models import Event, Participant, PaymentStatus, utcnow
from pitchfund.repositories import EventRepository, ParticipantRepository

from .access import ensure_can_manage_event

REMOVED_MESSAGE = "Participant removed successfully"


@dataclass(slots=True)
class CashRegistration:
    name: str
    email: str | None = None


@dataclass(slots=True)
class OnlineConfirmation:
    """Result of applying a completed checkout to the ledger."""

    participant: Participant
    duplicate: bool = False
    overflow: bool = False
    awaiting_payment: bool = False

    @property
    def needs_refund(self) -> bool:
        return self.overflow and self.participant.payment_status == PaymentStatus.REFUNDED.value


class ParticipantLedger:
    """Admit, confirm, release and remove participants while keeping capacity intact.

    ``register_cash`` and ``remove`` are complete units of work and commit.
    The hold and online-confirmation helpers only flush; the payment intake
    owns those transactions because they straddle calls to the processor.
    """

    def __init__(
        self,
        session: Session,
        *,
        config: Settings | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session = session
        self._settings = config or default_settings
        self._clock = clock
        self._events = EventRepository(session)
        self._participants = ParticipantRepository(session)

    # ------------------------------------------------------------------
    # Management operations

    def list_for_event(
        self,
        context: RequestContext,
        event_id: int,
        *,
        order: str = "desc",
    ) -> list[Participant]:
        ensure_can_manage_event(context, self._events.get_event(event_id))
        return self._participants.list_for_event(event_id, order=order)

    def register_cash(
        self,
        context: RequestContext,
        event_id: int,
        registration: CashRegistration,
    ) -> Participant:
        try:
            event = ensure_can_manage_event(context, self._events.lock_event(event_id))
            self._ensure_capacity(event, now=self._clock())
            participant = self._participants.add(
                Participant(
                    event_id=event.id,
                    name=registration.name,
                    email=registration.email,
                    user_id=None,
                    payment_status=PaymentStatus.SUCCEEDED.value,
                )
            )
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise

        logger.info(
            "Added cash participant {} to event {} (by {})",
            participant.id,
            event_id,
            context.user_id,
        )
        return participant

    def remove(self, context: RequestContext, event_id: int, participant_id: int) -> str:
        try:
            ensure_can_manage_event(context, self._events.get_event(event_id))
            participant = self._participants.get(event_id, participant_id)
            if participant is None:
                raise NotFoundError("Participant")
            if participant.is_online_paid and not context.is_admin:
                raise AuthorizationError(
                    "Only administrators can remove participants who paid online"
                )
            self._participants.delete(participant)
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise

        logger.info(
            "Removed participant {} from event {} (by {})",
            participant_id,
            event_id,
            context.user_id,
        )
        return REMOVED_MESSAGE

    # ------------------------------------------------------------------
    # Online payment helpers (caller commits)

    def place_hold(
        self,
        event: Event,
        *,
        name: str,
        email: str | None,
        user_id: str | None,
        avatar_url: str | None = None,
    ) -> Participant:
        """Reserve a slot for a checkout in progress.

        ``event`` must have been loaded with :meth:`EventRepository.lock_event`
        in the current transaction.
        """

        now = self._clock()
        self._ensure_capacity(event, now=now)
        expires_at = now + timedelta(minutes=self._settings.checkout_hold_minutes)
        return self._participants.add(
            Participant(
                event_id=event.id,
                name=name,
                email=email,
                user_id=user_id,
                avatar_url=avatar_url,
                payment_status=PaymentStatus.PENDING.value,
                hold_expires_at=expires_at,
            )
        )

    def attach_checkout_session(self, participant: Participant, session_id: str) -> None:
        participant.stripe_checkout_session_id = session_id
        self._session.flush()

    def fail_hold(self, participant: Participant) -> None:
        participant.payment_status = PaymentStatus.FAILED.value
        participant.hold_expires_at = None
        self._session.flush()

    def confirm_online(self, completion: CheckoutCompletion) -> OnlineConfirmation:
        """Turn a paid checkout into a succeeded participant exactly once.

        A session completed without payment (delayed methods such as BLIK)
        keeps its row pending until ``async_payment_succeeded`` arrives.
        """

        existing = self._participants.get_by_checkout_session(completion.session_id)
        if existing is None and completion.payment_intent_id:
            existing = self._participants.get_by_payment_intent(completion.payment_intent_id)

        if existing is not None and existing.payment_status in (
            PaymentStatus.SUCCEEDED.value,
            PaymentStatus.REFUNDED.value,
        ):
            return OnlineConfirmation(participant=existing, duplicate=True)

        event = self._events.lock_event(completion.event_id)
        if event is None:
            raise NotFoundError("Event")

        participant = existing
        if participant is None:
            participant = self._participants.add(
                Participant(
                    event_id=event.id,
                    name=completion.participant_name,
                    email=completion.participant_email,
                    user_id=completion.user_id,
                    avatar_url=completion.avatar_url,
                    payment_status=PaymentStatus.PENDING.value,
                    stripe_checkout_session_id=completion.session_id,
                )
            )

        participant.stripe_payment_intent_id = completion.payment_intent_id
        if participant.avatar_url is None:
            participant.avatar_url = completion.avatar_url

        if not completion.is_paid:
            participant.payment_status = PaymentStatus.PENDING.value
            if participant.hold_expires_at is None:
                participant.hold_expires_at = self._clock() + timedelta(
                    minutes=self._settings.checkout_hold_minutes
                )
            self._session.flush()
            logger.info(
                "Checkout {} completed with payment {}; holding participant {}",
                completion.session_id,
                completion.payment_status,
                participant.id,
            )
            return OnlineConfirmation(participant=participant, awaiting_payment=True)

        participant.hold_expires_at = None

        overflow = self._events.count_succeeded(event.id) >= event.max_players
        if overflow and self._settings.overflow_policy == "refund":
            participant.payment_status = PaymentStatus.REFUNDED.value
            logger.warning(
                "Event {} is full; refunding checkout {} for participant {}",
                event.id,
                completion.session_id,
                participant.id,
            )
        else:
            if overflow:
                logger.warning(
                    "Event {} is full; admitting checkout {} over capacity",
                    event.id,
                    completion.session_id,
                )
            participant.payment_status = PaymentStatus.SUCCEEDED.value

        self._session.flush()
        return OnlineConfirmation(participant=participant, overflow=overflow)

    def release_hold(self, session_id: str) -> bool:
        participant = self._participants.get_by_checkout_session(session_id)
        if participant is None or participant.payment_status != PaymentStatus.PENDING.value:
            return False
        self.fail_hold(participant)
        return True

    def release_expired_holds(self, *, limit: int | None = None) -> int:
        """Mark every lapsed hold as failed and commit; returns the number released."""

        try:
            expired = self._participants.list_expired_holds(now=self._clock(), limit=limit)
            for participant in expired:
                self.fail_hold(participant)
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise
        return len(expired)

    # ------------------------------------------------------------------
    # Helpers

    def _ensure_capacity(self, event: Event, *, now: datetime) -> None:
        taken = self._events.count_succeeded(event.id) + self._events.count_active_holds(
            event.id, now=now
        )
        if taken >= event.max_players:
            raise CapacityExceededError()


__all__ = [
    "CashRegistration",
    "OnlineConfirmation",
    "ParticipantLedger",
    "REMOVED_MESSAGE",
]
