from __future__ import annotations

from datetime import timedelta

import pytest

from conftest import NOW, context_for, make_event, make_user
from pitchfund import schemas
from pitchfund.domain.errors import AuthorizationError, NotFoundError, RateLimitedError, ValidationError
from pitchfund.services.profile_service import ProfileService


@pytest.fixture
def service(db_session, test_settings, clock) -> ProfileService:
    return ProfileService(db_session, config=test_settings, clock=clock)


def test_nickname_change_within_window_is_throttled(db_session, service):
    """Verify a change ten days after the previous one reports twenty days remaining."""
    make_user(db_session, "player-1", nickname="striker", nickname_last_changed=NOW - timedelta(days=10))

    with pytest.raises(RateLimitedError) as excinfo:
        service.update_profile(context_for("player-1"), schemas.ProfileUpdate(nickname="keeper"))

    assert excinfo.value.remaining_days == 20
    assert "20 days remaining" in excinfo.value.message


def test_nickname_change_after_window(db_session, service, clock):
    """Verify a change is accepted once the window has passed and restarts it."""
    make_user(db_session, "player-1", nickname="striker", nickname_last_changed=NOW - timedelta(days=31))

    profile = service.update_profile(context_for("player-1"), schemas.ProfileUpdate(nickname="keeper"))

    assert profile.nickname == "keeper"
    assert profile.nickname_last_changed.replace(tzinfo=None) == clock.now.replace(tzinfo=None)


def test_same_nickname_is_not_a_change(db_session, service):
    """Verify resubmitting the current nickname does not trip the throttle."""
    make_user(db_session, "player-1", nickname="striker", nickname_last_changed=NOW - timedelta(days=1))

    profile = service.update_profile(
        context_for("player-1"), schemas.ProfileUpdate(nickname="striker", bio="Left foot")
    )

    assert profile.bio == "Left foot"


def test_nickname_must_be_unique_ignoring_case(db_session, service):
    """Verify a nickname held by another user is refused regardless of case."""
    make_user(db_session, "player-1", nickname="Striker")
    make_user(db_session, "player-2")

    with pytest.raises(ValidationError) as excinfo:
        service.update_profile(context_for("player-2"), schemas.ProfileUpdate(nickname="striker"))

    assert excinfo.value.message == "Nickname already taken"


def test_admin_toggles_event_permission(db_session, service):
    """Verify admins grant and revoke event creation."""
    make_user(db_session, "player-1", can_create_events=False)
    admin = context_for("boss", admin=True)

    granted = service.set_event_permission(admin, "player-1", True)
    revoked = service.set_event_permission(admin, "player-1", False)

    assert granted.message == "Permission granted successfully"
    assert granted.user.can_create_events is True
    assert revoked.message == "Permission revoked successfully"
    assert revoked.user.can_create_events is False


def test_permission_toggle_requires_admin(db_session, service):
    """Verify non-admins cannot change permissions and unknown users are reported."""
    make_user(db_session, "player-1", can_create_events=False)

    with pytest.raises(AuthorizationError):
        service.set_event_permission(context_for("organizer-1"), "player-1", True)
    with pytest.raises(NotFoundError):
        service.set_event_permission(context_for("boss", admin=True), "ghost", True)


def test_list_users_with_search(db_session, service):
    """Verify the admin user list filters by email, name or nickname."""
    make_user(db_session, "player-1", full_name="Anna Nowak")
    make_user(db_session, "player-2", full_name="Jan Kowalski")

    result = service.list_users(context_for("boss", admin=True), search="nowak")

    assert [user.id for user in result.items] == ["player-1"]


def test_public_profile_resolves_nickname_ignoring_case(db_session, service):
    """Verify a public profile lists the organizer's own events, latest first."""
    organizer = make_user(db_session, nickname="Striker", bio="Sunday league regular")
    other = make_user(db_session, "organizer-2", nickname="keeper")
    make_event(db_session, organizer, name="Early game")
    make_event(
        db_session,
        organizer,
        name="Late game",
        starts_at=NOW + timedelta(days=5),
        ends_at=NOW + timedelta(days=5, hours=1),
    )
    make_event(db_session, other, name="Someone else's game")

    profile = service.get_public_profile("striker")

    assert profile.nickname == "Striker"
    assert profile.bio == "Sunday league regular"
    assert profile.events.total == 2
    assert [item.name for item in profile.events.items] == ["Late game", "Early game"]


def test_public_profile_of_player_has_no_events(db_session, service):
    """Verify users without event rights show an empty event list."""
    make_user(db_session, "player-1", nickname="winger", can_create_events=False)

    profile = service.get_public_profile("winger")

    assert profile.events.total == 0
    assert not profile.can_create_events


def test_public_profile_unknown_nickname(service):
    """Verify an unknown nickname is reported as a missing user."""
    with pytest.raises(NotFoundError):
        service.get_public_profile("nobody")
