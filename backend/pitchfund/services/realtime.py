"""In-process publish/subscribe for live event updates and chat."""

from __future__ import annotations

import threading
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from functools import lru_cache
from typing import Any, Callable, Protocol

from loguru import logger

from pitchfund.models import utcnow

PARTICIPANT_ADDED = "participant.added"
PARTICIPANT_REMOVED = "participant.removed"
CHAT_MESSAGE = "chat.message"


def event_channel(event_id: int) -> str:
    return f"event:{event_id}"


def chat_channel(event_id: int) -> str:
    return f"chat:{event_id}"


@dataclass(slots=True, frozen=True)
class RealtimeMessage:
    channel: str
    kind: str
    payload: dict[str, Any] = field(default_factory=dict)
    sent_at: datetime = field(default_factory=utcnow)


Handler = Callable[[RealtimeMessage], None]


class Broker(Protocol):
    def publish(self, message: RealtimeMessage) -> None:
        ...

    def subscribe(self, channel: str, handler: Handler) -> Callable[[], None]:
        ...


class InMemoryBroker:
    """Fan messages out to subscribers of the same process.

    Delivery is fire-and-forget: a failing handler is logged and skipped.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._handlers: dict[str, list[Handler]] = defaultdict(list)

    def publish(self, message: RealtimeMessage) -> None:
        with self._lock:
            handlers = list(self._handlers.get(message.channel, ()))
        for handler in handlers:
            try:
                handler(message)
            except Exception:
                logger.exception(
                    "Realtime handler failed for {} on {}", message.kind, message.channel
                )

    def subscribe(self, channel: str, handler: Handler) -> Callable[[], None]:
        with self._lock:
            self._handlers[channel].append(handler)

        def unsubscribe() -> None:
            with self._lock:
                handlers = self._handlers.get(channel)
                if handlers and handler in handlers:
                    handlers.remove(handler)
                if not handlers:
                    self._handlers.pop(channel, None)

        return unsubscribe

    def subscriber_count(self, channel: str) -> int:
        with self._lock:
            return len(self._handlers.get(channel, ()))


@lru_cache
def get_broker() -> InMemoryBroker:
    return InMemoryBroker()


__all__ = [
    "Broker",
    "CHAT_MESSAGE",
    "InMemoryBroker",
    "PARTICIPANT_ADDED",
    "PARTICIPANT_REMOVED",
    "RealtimeMessage",
    "chat_channel",
    "event_channel",
    "get_broker",
]
