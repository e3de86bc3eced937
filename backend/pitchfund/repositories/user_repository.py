"""User profile and payout-account persistence."""

from __future__ import annotations

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from pitchfund.models import User


class UserRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, user_id: str) -> User | None:
        return self._session.get(User, user_id)

    def ensure_user(self, user_id: str, *, email: str | None = None) -> User:
        """Return the profile row for an authenticated subject, creating it on first sight."""

        existing = self._session.get(User, user_id)
        if existing is None:
            existing = User(id=user_id, email=email)
            self._session.add(existing)
            self._session.flush()
        elif email and not existing.email:
            existing.email = email
        return existing

    def find_by_nickname(self, nickname: str, *, exclude_id: str | None = None) -> User | None:
        query = select(User).where(func.lower(User.nickname) == nickname.lower())
        if exclude_id is not None:
            query = query.where(User.id != exclude_id)
        return self._session.execute(query.limit(1)).scalar_one_or_none()

    def list_users(self, *, search: str | None = None, limit: int = 100) -> list[User]:
        query = select(User)
        if search:
            pattern = f"%{search.strip().lower()}%"
            query = query.where(
                or_(
                    func.lower(User.email).like(pattern),
                    func.lower(User.full_name).like(pattern),
                    func.lower(User.nickname).like(pattern),
                )
            )
        query = query.order_by(User.created_at.desc()).limit(limit)
        return list(self._session.execute(query).scalars().all())


__all__ = ["UserRepository"]
