from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from unittest.mock import MagicMock

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from pitchfund import models
from pitchfund.core.config import Settings
from pitchfund.db import Base
from pitchfund.domain import RequestContext, Role

NOW = datetime(2026, 5, 4, 12, 0, tzinfo=timezone.utc)


class FrozenClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now = self.now + timedelta(**delta)


@pytest.fixture
def test_settings(tmp_path, monkeypatch) -> Settings:
    settings = Settings(
        database_url=f"sqlite:///{tmp_path/'pitchfund.db'}",
        base_url="https://pitch.test/",
        stripe_secret_key="sk_test_123",
        stripe_webhook_secret="whsec_test",
        overflow_policy="refund",
    )
    monkeypatch.setattr("pitchfund.core.config.get_settings", lambda: settings)
    monkeypatch.setattr("pitchfund.core.config.settings", settings)
    return settings


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(NOW)


@pytest.fixture
def db_session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(bind=engine, autoflush=True, future=True)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def gateway() -> MagicMock:
    return MagicMock()


def make_user(session, user_id: str = "organizer-1", **overrides) -> models.User:
    values = {
        "id": user_id,
        "email": f"{user_id}@example.com",
        "role": "user",
        "can_create_events": True,
        "created_at": NOW - timedelta(days=60),
    }
    values.update(overrides)
    user = models.User(**values)
    session.add(user)
    session.commit()
    return user


def make_onboarded_organizer(session, user_id: str = "organizer-1", **overrides) -> models.User:
    return make_user(
        session,
        user_id,
        stripe_account_id=f"acct_{user_id}",
        stripe_charges_enabled=True,
        stripe_payouts_enabled=True,
        stripe_onboarding_complete=True,
        **overrides,
    )


def make_event(session, organizer: models.User, **overrides) -> models.Event:
    values = {
        "name": "Thursday five-a-side",
        "starts_at": NOW + timedelta(days=3),
        "ends_at": NOW + timedelta(days=3, hours=2),
        "location": "Hala Orlik",
        "total_cost": Decimal("200.00"),
        "min_players": 2,
        "max_players": 10,
        "price_per_player": Decimal("20.00"),
        "organizer_id": organizer.id,
        "created_at": NOW - timedelta(days=1),
    }
    values.update(overrides)
    event = models.Event(**values)
    session.add(event)
    session.commit()
    return event


def make_participant(session, event: models.Event, **overrides) -> models.Participant:
    values = {
        "event_id": event.id,
        "name": "Player",
        "payment_status": models.PaymentStatus.SUCCEEDED.value,
    }
    values.update(overrides)
    participant = models.Participant(**values)
    session.add(participant)
    session.commit()
    return participant


def context_for(user_id: str | None, *, admin: bool = False, can_create: bool = True) -> RequestContext:
    if user_id is None:
        return RequestContext.anonymous()
    return RequestContext(
        user_id=user_id,
        email=f"{user_id}@example.com",
        role=Role.ADMIN if admin else Role.USER,
        can_create_events=can_create,
    )
