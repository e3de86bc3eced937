"""Shared repository result types."""

from __future__ import annotations

from dataclasses import dataclass

from pitchfund.models import Event


@dataclass(slots=True)
class EventSummaryRecord:
    """Pair an event with its succeeded participant count for listing operations."""

    event: Event
    paid_participants: int = 0


__all__ = ["EventSummaryRecord"]
