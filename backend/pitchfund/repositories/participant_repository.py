"""Participant ledger persistence."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from pitchfund.models import Participant, PaymentStatus, as_utc


class ParticipantRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # Mutations

    def add(self, participant: Participant) -> Participant:
        self._session.add(participant)
        self._session.flush()
        return participant

    def delete(self, participant: Participant) -> None:
        self._session.delete(participant)
        self._session.flush()

    # ------------------------------------------------------------------
    # Queries

    def get(self, event_id: int, participant_id: int) -> Participant | None:
        query = select(Participant).where(
            Participant.id == participant_id,
            Participant.event_id == event_id,
        )
        return self._session.execute(query).scalar_one_or_none()

    def get_by_checkout_session(self, session_id: str) -> Participant | None:
        query = select(Participant).where(Participant.stripe_checkout_session_id == session_id)
        return self._session.execute(query).scalar_one_or_none()

    def get_by_payment_intent(self, payment_intent_id: str) -> Participant | None:
        query = select(Participant).where(
            Participant.stripe_payment_intent_id == payment_intent_id
        )
        return self._session.execute(query).scalar_one_or_none()

    def list_for_event(
        self,
        event_id: int,
        *,
        order: str = "desc",
        statuses: tuple[PaymentStatus, ...] | None = None,
    ) -> list[Participant]:
        query = select(Participant).where(Participant.event_id == event_id)
        if statuses:
            query = query.where(Participant.payment_status.in_([status.value for status in statuses]))
        if order.lower() == "asc":
            query = query.order_by(Participant.created_at.asc(), Participant.id.asc())
        else:
            query = query.order_by(Participant.created_at.desc(), Participant.id.desc())
        return list(self._session.execute(query).scalars().all())

    def find_registration(self, event_id: int, user_id: str, *, now: datetime) -> Participant | None:
        """Return the caller's paid entry or live hold for an event, if any."""

        query = select(Participant).where(
            Participant.event_id == event_id,
            Participant.user_id == user_id,
        )
        for participant in self._session.execute(query).scalars():
            if participant.payment_status == PaymentStatus.SUCCEEDED.value:
                return participant
            if (
                participant.payment_status == PaymentStatus.PENDING.value
                and participant.hold_expires_at is not None
                and _after(participant.hold_expires_at, now)
            ):
                return participant
        return None

    def is_linked_participant(self, event_id: int, user_id: str) -> bool:
        query = (
            select(Participant.id)
            .where(
                Participant.event_id == event_id,
                Participant.user_id == user_id,
                Participant.payment_status == PaymentStatus.SUCCEEDED.value,
            )
            .limit(1)
        )
        return self._session.execute(query).first() is not None

    def list_expired_holds(self, *, now: datetime, limit: int | None = None) -> list[Participant]:
        query = (
            select(Participant)
            .where(
                Participant.payment_status == PaymentStatus.PENDING.value,
                Participant.hold_expires_at.is_not(None),
                Participant.hold_expires_at <= now,
            )
            .order_by(Participant.hold_expires_at.asc())
        )
        if limit:
            query = query.limit(limit)
        return list(self._session.execute(query).scalars().all())


def _after(moment: datetime, now: datetime) -> bool:
    return as_utc(moment) > as_utc(now)


__all__ = ["ParticipantRepository"]
