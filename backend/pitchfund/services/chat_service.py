"""Event chat limited to the organizer, admins and paid participants."""

from __future__ import annotations

from loguru import logger
from sqlalchemy.orm import Session

from pitchfund import schemas
from pitchfund.core.config import Settings, settings as default_settings
from pitchfund.domain import RequestContext
from pitchfund.domain.errors import AuthorizationError, NotFoundError, ValidationError
from pitchfund.models import ChatMessage, Event
from pitchfund.repositories import ChatRepository, EventRepository, ParticipantRepository

from .access import can_manage_event, require_authenticated
from .realtime import CHAT_MESSAGE, Broker, RealtimeMessage, chat_channel


class ChatService:
    def __init__(
        self,
        session: Session,
        broker: Broker,
        *,
        config: Settings | None = None,
    ) -> None:
        self._session = session
        self._broker = broker
        self._settings = config or default_settings
        self._events = EventRepository(session)
        self._participants = ParticipantRepository(session)
        self._chat = ChatRepository(session)

    def list_messages(self, context: RequestContext, event_id: int) -> schemas.ChatMessageList:
        self._ensure_member(context, event_id)
        items = [self._serialize(message) for message in self._chat.list_for_event(event_id)]
        return schemas.ChatMessageList(total=len(items), items=items)

    def post_message(
        self, context: RequestContext, event_id: int, text: str
    ) -> schemas.ChatMessage:
        user_id = require_authenticated(context)
        body = text.strip()
        if not body:
            raise ValidationError("message must not be blank")
        if len(body) > self._settings.chat_message_max_length:
            raise ValidationError(
                f"message cannot exceed {self._settings.chat_message_max_length} characters"
            )

        try:
            self._ensure_member(context, event_id)
            message = self._chat.add(ChatMessage(event_id=event_id, user_id=user_id, message=body))
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise

        payload = self._serialize(message)
        logger.debug("Chat message {} posted to event {}", message.id, event_id)
        self._broker.publish(
            RealtimeMessage(
                channel=chat_channel(event_id),
                kind=CHAT_MESSAGE,
                payload=payload.model_dump(mode="json", by_alias=True),
            )
        )
        return payload

    def _ensure_member(self, context: RequestContext, event_id: int) -> Event:
        user_id = require_authenticated(context)
        event = self._events.get_event(event_id)
        if event is None:
            raise NotFoundError("Event")
        if can_manage_event(context, event):
            return event
        if not self._participants.is_linked_participant(event_id, user_id):
            raise AuthorizationError("Only participants can access the event chat")
        return event

    @staticmethod
    def _serialize(message: ChatMessage) -> schemas.ChatMessage:
        author = (
            schemas.OrganizerSummary.model_validate(message.user)
            if message.user is not None
            else None
        )
        return schemas.ChatMessage(
            id=message.id,
            event_id=message.event_id,
            user_id=message.user_id,
            message=message.message,
            created_at=message.created_at,
            author=author,
        )


__all__ = ["ChatService"]
