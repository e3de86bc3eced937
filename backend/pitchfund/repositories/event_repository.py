"""Event-focused data access helpers."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from pitchfund.models import Event, Participant, PaymentStatus

from .types import EventSummaryRecord


class EventRepository:
    """Encapsulate event persistence and the capacity counters derived from participants."""

    def __init__(self, session: Session) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # Mutations

    def add_event(self, event: Event) -> Event:
        self._session.add(event)
        self._session.flush()
        return event

    # ------------------------------------------------------------------
    # Queries

    def get_event(self, event_id: int) -> Event | None:
        query = (
            select(Event)
            .options(selectinload(Event.organizer))
            .where(Event.id == event_id)
        )
        return self._session.execute(query).scalar_one_or_none()

    def lock_event(self, event_id: int) -> Event | None:
        """Load an event holding a row lock until the surrounding transaction ends.

        Postgres serializes concurrent ledger writers on this lock; SQLite ignores
        ``FOR UPDATE`` but only admits one writer at a time anyway.
        """

        query = select(Event).where(Event.id == event_id).with_for_update()
        return self._session.execute(query).scalar_one_or_none()

    def list_upcoming(self, *, now: datetime) -> list[EventSummaryRecord]:
        query = (
            select(Event)
            .options(selectinload(Event.organizer))
            .where(Event.ends_at >= now)
            .order_by(Event.starts_at.asc(), Event.id.asc())
        )
        events = self._session.execute(query).scalars().all()
        return self._with_counts(events)

    def list_for_organizer(self, organizer_id: str) -> list[EventSummaryRecord]:
        query = (
            select(Event)
            .options(selectinload(Event.organizer))
            .where(Event.organizer_id == organizer_id)
            .order_by(Event.created_at.desc(), Event.id.desc())
        )
        events = self._session.execute(query).scalars().all()
        return self._with_counts(events)

    def list_recent_for_organizer(self, organizer_id: str, *, limit: int) -> list[EventSummaryRecord]:
        query = (
            select(Event)
            .options(selectinload(Event.organizer))
            .where(Event.organizer_id == organizer_id)
            .order_by(Event.starts_at.desc(), Event.id.desc())
            .limit(limit)
        )
        events = self._session.execute(query).scalars().all()
        return self._with_counts(events)

    def count_succeeded(self, event_id: int) -> int:
        query = select(func.count(Participant.id)).where(
            Participant.event_id == event_id,
            Participant.payment_status == PaymentStatus.SUCCEEDED.value,
        )
        return int(self._session.execute(query).scalar_one())

    def count_active_holds(self, event_id: int, *, now: datetime) -> int:
        query = select(func.count(Participant.id)).where(
            Participant.event_id == event_id,
            Participant.payment_status == PaymentStatus.PENDING.value,
            Participant.hold_expires_at.is_not(None),
            Participant.hold_expires_at > now,
        )
        return int(self._session.execute(query).scalar_one())

    def count_succeeded_many(self, event_ids: Sequence[int]) -> dict[int, int]:
        if not event_ids:
            return {}
        query = (
            select(Participant.event_id, func.count(Participant.id))
            .where(
                Participant.event_id.in_(list(event_ids)),
                Participant.payment_status == PaymentStatus.SUCCEEDED.value,
            )
            .group_by(Participant.event_id)
        )
        return {event_id: int(count) for event_id, count in self._session.execute(query).all()}

    def _with_counts(self, events: Sequence[Event]) -> list[EventSummaryRecord]:
        counts = self.count_succeeded_many([event.id for event in events])
        return [
            EventSummaryRecord(event=event, paid_participants=counts.get(event.id, 0))
            for event in events
        ]


__all__ = ["EventRepository"]
