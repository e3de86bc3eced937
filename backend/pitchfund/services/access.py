"""Coarse authorization checks shared by every event-scoped operation."""

from __future__ import annotations

import math
from datetime import datetime, timedelta

from pitchfund.domain import RequestContext, Role
from pitchfund.domain.errors import (
    AuthenticationError,
    AuthorizationError,
    NotFoundError,
    RateLimitedError,
)
from pitchfund.models import Event, User, as_utc

_SECONDS_PER_DAY = 24 * 60 * 60


def context_for_user(user: User) -> RequestContext:
    role = Role.ADMIN if (user.role or "").lower() == Role.ADMIN.value else Role.USER
    return RequestContext(
        user_id=user.id,
        email=user.email,
        role=role,
        can_create_events=bool(user.can_create_events),
    )


def require_authenticated(context: RequestContext) -> str:
    if not context.is_authenticated or context.user_id is None:
        raise AuthenticationError()
    return context.user_id


def require_admin(context: RequestContext) -> str:
    user_id = require_authenticated(context)
    if not context.is_admin:
        raise AuthorizationError("Admin access required")
    return user_id


def require_event_creator(context: RequestContext) -> str:
    user_id = require_authenticated(context)
    if not context.may_create_events:
        raise AuthorizationError("You do not have permission to create events")
    return user_id


def can_manage_event(context: RequestContext, event: Event) -> bool:
    if not context.is_authenticated:
        return False
    return context.is_admin or context.user_id == event.organizer_id


def ensure_can_manage_event(context: RequestContext, event: Event | None) -> Event:
    """Return the event if the caller owns it or is an admin.

    Anything else is reported as a missing event so ownership never leaks.
    """

    require_authenticated(context)
    if event is None or not can_manage_event(context, event):
        raise NotFoundError("Event")
    return event


def nickname_change_remaining_days(
    last_changed: datetime | None,
    *,
    now: datetime,
    interval_days: int,
) -> int:
    """Days left before another nickname change is allowed; 0 when allowed now."""

    if last_changed is None or interval_days <= 0:
        return 0
    elapsed = as_utc(now) - as_utc(last_changed)
    window = timedelta(days=interval_days)
    if elapsed >= window:
        return 0
    remaining_seconds = (window - elapsed).total_seconds()
    return max(1, math.ceil(remaining_seconds / _SECONDS_PER_DAY))


def ensure_nickname_change_allowed(
    last_changed: datetime | None,
    *,
    now: datetime,
    interval_days: int,
) -> None:
    remaining = nickname_change_remaining_days(
        last_changed, now=now, interval_days=interval_days
    )
    if remaining:
        raise RateLimitedError(remaining)


__all__ = [
    "can_manage_event",
    "context_for_user",
    "ensure_can_manage_event",
    "ensure_nickname_change_allowed",
    "nickname_change_remaining_days",
    "require_admin",
    "require_authenticated",
    "require_event_creator",
]
