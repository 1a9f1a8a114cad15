"""Workflow lifecycle states and the transition-legality table."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from .exceptions import InvalidStateTransitionError


class WorkflowState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    WAITING = "waiting"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_active(self) -> bool:
        return self in ACTIVE_STATES

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES

    @property
    def label(self) -> str:
        return self.value.capitalize()

    def allowed_transitions(self) -> frozenset["WorkflowState"]:
        return ALLOWED_TRANSITIONS.get(self, frozenset())

    def can_transition_to(self, target: "WorkflowState") -> bool:
        return target in self.allowed_transitions()


ACTIVE_STATES = frozenset(
    {
        WorkflowState.PENDING,
        WorkflowState.RUNNING,
        WorkflowState.WAITING,
        WorkflowState.PAUSED,
    }
)

TERMINAL_STATES = frozenset(
    {WorkflowState.COMPLETED, WorkflowState.FAILED, WorkflowState.CANCELLED}
)

ALLOWED_TRANSITIONS: dict[WorkflowState, frozenset[WorkflowState]] = {
    WorkflowState.PENDING: frozenset({WorkflowState.RUNNING, WorkflowState.CANCELLED}),
    WorkflowState.RUNNING: frozenset(
        {
            WorkflowState.WAITING,
            WorkflowState.PAUSED,
            WorkflowState.COMPLETED,
            WorkflowState.FAILED,
            WorkflowState.CANCELLED,
        }
    ),
    WorkflowState.WAITING: frozenset(
        {WorkflowState.RUNNING, WorkflowState.FAILED, WorkflowState.CANCELLED}
    ),
    WorkflowState.PAUSED: frozenset({WorkflowState.RUNNING, WorkflowState.CANCELLED}),
}


def ensure_transition(
    current: WorkflowState, target: WorkflowState, instance_id: Optional[str] = None
) -> WorkflowState:
    """Return ``target`` if moving there from ``current`` is legal."""
    if not current.can_transition_to(target):
        subject = f"workflow '{instance_id}'" if instance_id else "workflow"
        raise InvalidStateTransitionError(
            f"Illegal transition for {subject}: {current.value} -> {target.value}",
            current,
            target,
            instance_id,
        )
    return target


__all__ = [
    "WorkflowState",
    "ACTIVE_STATES",
    "TERMINAL_STATES",
    "ALLOWED_TRANSITIONS",
    "ensure_transition",
]
