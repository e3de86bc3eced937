"""Profile edits and the admin tools for granting event-creation rights."""

from __future__ import annotations

from datetime import datetime
from typing import Callable

from loguru import logger
from sqlalchemy.orm import Session

from pitchfund import schemas
from pitchfund.core.config import Settings, settings as default_settings
from pitchfund.domain import RequestContext
from pitchfund.domain.errors import NotFoundError, ValidationError
from pitchfund.models import User, utcnow
from pitchfund.repositories import UserRepository

from .access import ensure_nickname_change_allowed, require_admin, require_authenticated
from .event_service import EventService


class ProfileService:
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
        self._users = UserRepository(session)

    def get_profile(self, context: RequestContext) -> schemas.Profile:
        user_id = require_authenticated(context)
        user = self._users.ensure_user(user_id, email=context.email)
        self._session.commit()
        return schemas.Profile.model_validate(user)

    def get_public_profile(self, nickname: str) -> schemas.PublicProfile:
        user = self._users.find_by_nickname(nickname.strip())
        if user is None:
            raise NotFoundError("User")
        if user.can_create_events:
            events = EventService(
                self._session, config=self._settings, clock=self._clock
            ).list_organized_by(user.id)
        else:
            events = schemas.EventList(total=0, items=[])
        return schemas.PublicProfile(
            nickname=user.nickname,
            full_name=user.full_name,
            avatar_url=user.avatar_url,
            bio=user.bio,
            can_create_events=user.can_create_events,
            created_at=user.created_at,
            events=events,
        )

    def update_profile(
        self, context: RequestContext, update: schemas.ProfileUpdate
    ) -> schemas.Profile:
        user_id = require_authenticated(context)
        try:
            user = self._users.ensure_user(user_id, email=context.email)
            if update.nickname is not None:
                self._apply_nickname(user, update.nickname)
            if update.full_name is not None:
                user.full_name = update.full_name.strip() or None
            if update.bio is not None:
                user.bio = update.bio.strip() or None
            if update.avatar_url is not None:
                user.avatar_url = update.avatar_url.strip() or None
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise
        return schemas.Profile.model_validate(user)

    def _apply_nickname(self, user: User, nickname: str) -> None:
        nickname = nickname.strip()
        if user.nickname and user.nickname == nickname:
            return
        ensure_nickname_change_allowed(
            user.nickname_last_changed,
            now=self._clock(),
            interval_days=self._settings.nickname_change_interval_days,
        )
        if self._users.find_by_nickname(nickname, exclude_id=user.id) is not None:
            raise ValidationError("Nickname already taken")
        previous = user.nickname
        user.nickname = nickname
        user.nickname_last_changed = self._clock()
        logger.info("User {} changed nickname from {} to {}", user.id, previous, nickname)

    # ------------------------------------------------------------------
    # Administration

    def list_users(
        self, context: RequestContext, *, search: str | None = None, limit: int = 100
    ) -> schemas.UserList:
        require_admin(context)
        users = self._users.list_users(search=search, limit=limit)
        items = [schemas.Profile.model_validate(user) for user in users]
        return schemas.UserList(total=len(items), items=items)

    def set_event_permission(
        self, context: RequestContext, user_id: str, can_create_events: bool
    ) -> schemas.PermissionResult:
        admin_id = require_admin(context)
        try:
            user = self._users.get(user_id)
            if user is None:
                raise NotFoundError("User")
            user.can_create_events = can_create_events
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise

        verb = "granted" if can_create_events else "revoked"
        logger.info("Admin {} {} event creation for user {}", admin_id, verb, user_id)
        return schemas.PermissionResult(
            user=schemas.Profile.model_validate(user),
            message=f"Permission {verb} successfully",
        )


__all__ = ["ProfileService"]
