"""Event creation and the read models carrying funding figures."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable, Sequence

from loguru import logger
from sqlalchemy.orm import Session

from pitchfund import schemas
from pitchfund.core.config import Settings, settings as default_settings
from pitchfund.domain import FundingFigures, RequestContext
from pitchfund.domain import money
from pitchfund.domain.errors import NotFoundError, ValidationError
from pitchfund.models import Event, Participant, PaymentStatus, as_utc, utcnow
from pitchfund.repositories import EventRepository, EventSummaryRecord, ParticipantRepository, UserRepository

from .access import require_event_creator
from .payout_service import require_onboarding_complete

MIN_PLAYERS_PER_TEAM = 2
MAX_PLAYERS_PER_TEAM = 11


def compute_figures(event: Event, paid_participants: int) -> FundingFigures:
    collected = money.collected_amount(paid_participants, event.price_per_player)
    return FundingFigures(
        paid_participants=paid_participants,
        available_spots=money.available_spots(event.max_players, paid_participants),
        collected_amount=collected,
        funding_percentage=money.funding_percentage(collected, event.total_cost),
    )


class EventService:
    """Create events and assemble event views with derived capacity and money fields."""

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
        self._users = UserRepository(session)

    # ------------------------------------------------------------------
    # Mutations

    def create_event(
        self, context: RequestContext, payload: schemas.EventCreate
    ) -> schemas.EventDetail:
        organizer_id = require_event_creator(context)
        now = self._clock()
        starts_at = as_utc(payload.starts_at)
        ends_at = as_utc(payload.ends_at)
        self._validate(payload, starts_at=starts_at, ends_at=ends_at, now=now)

        try:
            organizer = self._users.ensure_user(organizer_id, email=context.email)
            if payload.accepts_online_payments:
                require_onboarding_complete(organizer)

            event = self._events.add_event(
                Event(
                    name=payload.name,
                    starts_at=starts_at,
                    ends_at=ends_at,
                    location=payload.location,
                    total_cost=money.quantize(payload.total_cost),
                    min_players=payload.min_players,
                    max_players=payload.max_players,
                    price_per_player=money.price_per_player(
                        payload.total_cost, payload.max_players
                    ),
                    field_type=payload.field_type.value,
                    players_per_team=payload.players_per_team,
                    cleats_allowed=payload.cleats_allowed,
                    accepts_online_payments=payload.accepts_online_payments,
                    organizer_id=organizer.id,
                )
            )
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise

        logger.info(
            "Event {} created by {} (total {} / {} players)",
            event.id,
            organizer_id,
            event.total_cost,
            event.max_players,
        )
        return self.get_event_detail(event.id)

    # ------------------------------------------------------------------
    # Queries

    def get_event_detail(self, event_id: int) -> schemas.EventDetail:
        event = self._events.get_event(event_id)
        if event is None:
            raise NotFoundError("Event")
        participants = self._participants.list_for_event(
            event_id, order="asc", statuses=(PaymentStatus.SUCCEEDED,)
        )
        summary = self._build_summary(
            EventSummaryRecord(event=event, paid_participants=len(participants)),
            now=self._clock(),
        )
        return schemas.EventDetail(
            **summary.model_dump(),
            participants=[self._public_participant(p) for p in participants],
        )

    def get_figures(self, event_id: int) -> FundingFigures:
        event = self._events.get_event(event_id)
        if event is None:
            raise NotFoundError("Event")
        return compute_figures(event, self._events.count_succeeded(event_id))

    def list_public(self) -> schemas.EventList:
        now = self._clock()
        return self._build_list(self._events.list_upcoming(now=now), now=now)

    def list_mine(self, context: RequestContext) -> schemas.EventList:
        organizer_id = require_event_creator(context)
        return self._build_list(self._events.list_for_organizer(organizer_id), now=self._clock())

    def list_organized_by(self, organizer_id: str, *, limit: int = 10) -> schemas.EventList:
        """Latest events of one organizer, for their public profile."""

        records = self._events.list_recent_for_organizer(organizer_id, limit=limit)
        return self._build_list(records, now=self._clock())

    # ------------------------------------------------------------------
    # Helpers

    def _validate(
        self,
        payload: schemas.EventCreate,
        *,
        starts_at: datetime,
        ends_at: datetime,
        now: datetime,
    ) -> None:
        limits = self._settings
        if payload.total_cost <= 0:
            raise ValidationError("totalCost must be greater than zero")
        if payload.total_cost > limits.max_event_total_cost:
            raise ValidationError(f"totalCost cannot exceed {limits.max_event_total_cost}")
        if payload.min_players < 2:
            raise ValidationError("minPlayers must be at least 2")
        if payload.max_players < payload.min_players:
            raise ValidationError("maxPlayers must be greater than or equal to minPlayers")
        if payload.max_players > limits.max_event_players:
            raise ValidationError(f"maxPlayers cannot exceed {limits.max_event_players}")
        if not MIN_PLAYERS_PER_TEAM <= payload.players_per_team <= MAX_PLAYERS_PER_TEAM:
            raise ValidationError(
                f"playersPerTeam must be between {MIN_PLAYERS_PER_TEAM} and {MAX_PLAYERS_PER_TEAM}"
            )
        if starts_at <= as_utc(now):
            raise ValidationError("startsAt must be in the future")
        if starts_at > as_utc(now) + timedelta(days=limits.max_event_days_ahead):
            raise ValidationError(
                f"startsAt cannot be more than {limits.max_event_days_ahead} days ahead"
            )
        if ends_at <= starts_at:
            raise ValidationError("endsAt must be after startsAt")

    def _build_list(
        self, records: Sequence[EventSummaryRecord], *, now: datetime
    ) -> schemas.EventList:
        items = [self._build_summary(record, now=now) for record in records]
        return schemas.EventList(total=len(items), items=items)

    def _build_summary(self, record: EventSummaryRecord, *, now: datetime) -> schemas.EventSummary:
        event = record.event
        figures = compute_figures(event, record.paid_participants)
        organizer = (
            schemas.OrganizerSummary.model_validate(event.organizer)
            if event.organizer is not None
            else None
        )
        return schemas.EventSummary(
            **schemas.EventBase.model_validate(event).model_dump(),
            paid_participants=figures.paid_participants,
            available_spots=figures.available_spots,
            collected_amount=figures.collected_amount,
            funding_percentage=figures.funding_percentage,
            has_ended=as_utc(now) > as_utc(event.ends_at),
            organizer=organizer,
        )

    @staticmethod
    def _public_participant(participant: Participant) -> schemas.PublicParticipant:
        return schemas.PublicParticipant.model_validate(participant)


__all__ = ["EventService", "compute_figures"]
