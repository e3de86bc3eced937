from __future__ import annotations

from datetime import timedelta
from types import SimpleNamespace

import pytest

from conftest import NOW, context_for
from pitchfund.domain.errors import (
    AuthenticationError,
    AuthorizationError,
    NotFoundError,
    RateLimitedError,
)
from pitchfund.models import User
from pitchfund.services import access


def _event(organizer_id: str = "organizer-1"):
    return SimpleNamespace(id=1, organizer_id=organizer_id)


def test_nickname_throttle_reports_remaining_days():
    """Verify a change ten days after the last one must wait twenty more days."""
    remaining = access.nickname_change_remaining_days(
        NOW - timedelta(days=10), now=NOW, interval_days=30
    )
    assert remaining == 20

    with pytest.raises(RateLimitedError) as excinfo:
        access.ensure_nickname_change_allowed(
            NOW - timedelta(days=10), now=NOW, interval_days=30
        )
    assert excinfo.value.remaining_days == 20
    assert "20 days remaining" in excinfo.value.message


def test_nickname_throttle_rounds_partial_days_up():
    """Verify a partial day left in the window still counts as a full day."""
    remaining = access.nickname_change_remaining_days(
        NOW - timedelta(days=29, hours=12), now=NOW, interval_days=30
    )
    assert remaining == 1


def test_nickname_throttle_allows_change_after_window():
    """Verify no wait is required once the window has elapsed or was never started."""
    assert access.nickname_change_remaining_days(
        NOW - timedelta(days=30), now=NOW, interval_days=30
    ) == 0
    assert access.nickname_change_remaining_days(None, now=NOW, interval_days=30) == 0
    access.ensure_nickname_change_allowed(None, now=NOW, interval_days=30)


def test_nickname_throttle_accepts_naive_timestamps():
    """Verify timestamps read back without tzinfo are treated as UTC."""
    naive = (NOW - timedelta(days=10)).replace(tzinfo=None)
    assert access.nickname_change_remaining_days(naive, now=NOW, interval_days=30) == 20


def test_owner_and_admin_can_manage_event():
    """Verify the organizer and admins pass the ownership gate."""
    event = _event()

    assert access.ensure_can_manage_event(context_for("organizer-1"), event) is event
    assert access.ensure_can_manage_event(context_for("someone", admin=True), event) is event


def test_non_owner_sees_missing_event():
    """Verify a non-owner is told the event does not exist."""
    with pytest.raises(NotFoundError):
        access.ensure_can_manage_event(context_for("intruder"), _event())
    with pytest.raises(NotFoundError):
        access.ensure_can_manage_event(context_for("organizer-1"), None)


def test_anonymous_caller_is_rejected():
    """Verify anonymous callers cannot reach ownership-gated operations."""
    with pytest.raises(AuthenticationError):
        access.ensure_can_manage_event(context_for(None), _event())


def test_event_creation_permission():
    """Verify event creation needs the explicit grant or the admin role."""
    assert access.require_event_creator(context_for("organizer-1")) == "organizer-1"
    assert access.require_event_creator(context_for("boss", admin=True, can_create=False)) == "boss"
    with pytest.raises(AuthorizationError):
        access.require_event_creator(context_for("player", can_create=False))


def test_require_admin():
    """Verify only admins pass the admin gate."""
    assert access.require_admin(context_for("boss", admin=True)) == "boss"
    with pytest.raises(AuthorizationError):
        access.require_admin(context_for("organizer-1"))


def test_context_for_user_maps_role_and_permission():
    """Verify the request context mirrors the stored profile."""
    admin = access.context_for_user(User(id="boss", email="b@example.com", role="ADMIN", can_create_events=False))
    player = access.context_for_user(User(id="p1", role="user", can_create_events=False))

    assert admin.is_admin
    assert admin.may_create_events
    assert not player.is_admin
    assert not player.may_create_events
