"""Repository abstractions for database interactions."""

from .chat_repository import ChatRepository
from .event_repository import EventRepository
from .participant_repository import ParticipantRepository
from .types import EventSummaryRecord
from .user_repository import UserRepository

__all__ = [
    "ChatRepository",
    "EventRepository",
    "EventSummaryRecord",
    "ParticipantRepository",
    "UserRepository",
]
