"""Event chat persistence."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from pitchfund.models import ChatMessage


class ChatRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def add(self, message: ChatMessage) -> ChatMessage:
        self._session.add(message)
        self._session.flush()
        return message

    def list_for_event(self, event_id: int, *, limit: int = 200) -> list[ChatMessage]:
        query = (
            select(ChatMessage)
            .options(selectinload(ChatMessage.user))
            .where(ChatMessage.event_id == event_id, ChatMessage.is_deleted.is_(False))
            .order_by(ChatMessage.created_at.asc(), ChatMessage.id.asc())
            .limit(limit)
        )
        return list(self._session.execute(query).scalars().all())


__all__ = ["ChatRepository"]
