"""Lifecycle events and the sinks that receive them.

Delivery is fire-and-forget: :func:`emit_safely` logs sink failures and never
lets them reach the executor.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from .persistence.models import utcnow

logger = logging.getLogger(__name__)


class WorkflowEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    workflow_id: str
    name: str
    occurred_at: datetime = Field(default_factory=utcnow)

    @property
    def event_type(self) -> str:
        return type(self).__name__


class WorkflowStarted(WorkflowEvent):
    context: Dict[str, Any] = Field(default_factory=dict)


class WorkflowCompleted(WorkflowEvent):
    result: Dict[str, Any] = Field(default_factory=dict)


class WorkflowFailed(WorkflowEvent):
    error: str
    context: Dict[str, Any] = Field(default_factory=dict)


class WorkflowCancelled(WorkflowEvent):
    reason: str = ""


class WorkflowPaused(WorkflowEvent):
    step_id: Optional[str] = None


class StepCompleted(WorkflowEvent):
    step_id: str
    data: Dict[str, Any] = Field(default_factory=dict)


class StepFailed(WorkflowEvent):
    step_id: str
    error: str
    attempt_number: int = 1


class EventSink(Protocol):
    """Receives lifecycle events."""

    def emit(self, event: WorkflowEvent) -> None:
        """Deliver ``event``."""


class NullEventSink:
    """Discard every event."""

    def emit(self, event: WorkflowEvent) -> None:
        return None


class LoggingEventSink:
    """Write each event to a logger at ``level``."""

    def __init__(self, level: int = logging.INFO, log: Optional[logging.Logger] = None) -> None:
        self.level = level
        self._logger = log or logger

    def emit(self, event: WorkflowEvent) -> None:
        self._logger.log(
            self.level,
            f"{event.event_type} workflow={event.workflow_id} name={event.name}",
        )


E = TypeVar("E", bound=WorkflowEvent)


class CollectingEventSink:
    """Keep events in memory; handy for assertions."""

    def __init__(self) -> None:
        self.events: List[WorkflowEvent] = []

    def emit(self, event: WorkflowEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: Type[E]) -> List[E]:
        return [e for e in self.events if isinstance(e, event_type)]

    @property
    def types(self) -> List[str]:
        return [e.event_type for e in self.events]

    def clear(self) -> None:
        self.events.clear()


def emit_safely(sink: EventSink, event: WorkflowEvent) -> None:
    try:
        sink.emit(event)
    except Exception:
        logger.exception(f"Event sink failed to deliver {event.event_type}")


__all__ = [
    "WorkflowEvent",
    "WorkflowStarted",
    "WorkflowCompleted",
    "WorkflowFailed",
    "WorkflowCancelled",
    "WorkflowPaused",
    "StepCompleted",
    "StepFailed",
    "EventSink",
    "NullEventSink",
    "LoggingEventSink",
    "CollectingEventSink",
    "emit_safely",
]
