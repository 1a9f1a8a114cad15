"""Data models for persisted workflow state."""

from __future__ import annotations

import copy
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ..definition import WorkflowDefinition
from ..exceptions import InvalidWorkflowStateError
from ..state import WorkflowState, ensure_transition


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class StepFailure(BaseModel):
    """Record of a step that exhausted its attempts."""

    step_id: str
    error: str
    failed_at: datetime = Field(default_factory=utcnow)


class InstanceSummary(BaseModel):
    """Lightweight view of an instance for status queries and listings."""

    id: str
    definition_name: str
    definition_version: str
    state: WorkflowState
    current_step_id: Optional[str] = None
    completed_steps: List[str] = Field(default_factory=list)
    progress: float = 0.0
    error_message: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class InstanceFilter(BaseModel):
    """Criteria for ``find_instances``. Unset fields do not filter."""

    state: Optional[WorkflowState] = None
    definition_name: Optional[str] = None
    created_before: Optional[datetime] = None
    created_after: Optional[datetime] = None
    limit: int = Field(default=100, ge=1)
    offset: int = Field(default=0, ge=0)

    def matches(self, instance: "WorkflowInstance") -> bool:
        if self.state is not None and instance.state is not self.state:
            return False
        if (
            self.definition_name is not None
            and instance.definition.name != self.definition_name
        ):
            return False
        created = as_utc(instance.created_at)
        if self.created_before is not None and created >= as_utc(self.created_before):
            return False
        if self.created_after is not None and created <= as_utc(self.created_after):
            return False
        return True


class WorkflowInstance(BaseModel):
    """One execution of a workflow definition.

    Mutated by the executor during a run and by the engine for cancel and
    pause. Once the state is terminal, the data and step bookkeeping no
    longer change.
    """

    id: str
    definition: WorkflowDefinition
    state: WorkflowState = WorkflowState.PENDING
    data: Dict[str, Any] = Field(default_factory=dict)
    current_step_id: Optional[str] = None
    completed_steps: List[str] = Field(default_factory=list)
    failed_steps: List[StepFailure] = Field(default_factory=list)
    skipped_steps: List[str] = Field(default_factory=list)
    error_message: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    # ------------------------------------------------------------------
    # Lifecycle
    def touch(self) -> None:
        self.updated_at = utcnow()

    def transition_to(self, target: WorkflowState) -> None:
        self.state = ensure_transition(self.state, target, self.id)
        self.touch()

    def fail(self, message: str) -> None:
        self.transition_to(WorkflowState.FAILED)
        self.error_message = message

    def _ensure_mutable(self) -> None:
        if self.state.is_terminal:
            raise InvalidWorkflowStateError(
                f"Workflow '{self.id}' is {self.state.value} and can no longer change",
                self.state,
                self.state,
                self.id,
            )

    # ------------------------------------------------------------------
    # Data and step bookkeeping
    def merge_data(self, data: Dict[str, Any]) -> None:
        self._ensure_mutable()
        self.data = {**self.data, **copy.deepcopy(data)}
        self.touch()

    def set_current_step(self, step_id: Optional[str]) -> None:
        self._ensure_mutable()
        self.current_step_id = step_id
        self.touch()

    def mark_step_completed(self, step_id: str) -> None:
        self._ensure_mutable()
        self.completed_steps.append(step_id)
        self.touch()

    def mark_step_failed(self, step_id: str, error: str) -> None:
        self._ensure_mutable()
        self.failed_steps.append(StepFailure(step_id=step_id, error=error))
        self.touch()

    def mark_step_skipped(self, step_id: str) -> None:
        self._ensure_mutable()
        self.skipped_steps.append(step_id)
        self.touch()

    def is_step_completed(self, step_id: str) -> bool:
        return step_id in self.completed_steps

    # ------------------------------------------------------------------
    # Views
    @property
    def name(self) -> str:
        return self.definition.name

    @property
    def progress(self) -> float:
        """Percentage of declared steps that completed at least once."""
        total = len(self.definition.steps)
        if not total:
            return 0.0
        done = len(set(self.completed_steps) & set(self.definition.steps))
        return round(done / total * 100, 2)

    def summary(self) -> InstanceSummary:
        return InstanceSummary(
            id=self.id,
            definition_name=self.definition.name,
            definition_version=self.definition.version,
            state=self.state,
            current_step_id=self.current_step_id,
            completed_steps=list(self.completed_steps),
            progress=self.progress,
            error_message=self.error_message,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    def snapshot(self) -> "WorkflowInstance":
        """Deep copy sharing no mutable state with this instance."""
        return self.model_copy(deep=True)

    # ------------------------------------------------------------------
    # Storage records
    def to_record(self) -> Dict[str, Any]:
        """JSON-compatible mapping used by the SQL backends."""
        return {
            "id": self.id,
            "definition_name": self.definition.name,
            "definition_version": self.definition.version,
            "definition": self.definition.to_dict(),
            "state": self.state.value,
            "data": self.data,
            "current_step_id": self.current_step_id,
            "completed_steps": list(self.completed_steps),
            "failed_steps": [f.model_dump(mode="json") for f in self.failed_steps],
            "skipped_steps": list(self.skipped_steps),
            "error_message": self.error_message,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "WorkflowInstance":
        from ..parser import DefinitionParser

        return cls(
            id=record["id"],
            definition=DefinitionParser().parse(record["definition"]),
            state=WorkflowState(record["state"]),
            data=record.get("data") or {},
            current_step_id=record.get("current_step_id"),
            completed_steps=record.get("completed_steps") or [],
            failed_steps=record.get("failed_steps") or [],
            skipped_steps=record.get("skipped_steps") or [],
            error_message=record.get("error_message"),
            created_at=record["created_at"],
            updated_at=record["updated_at"],
        )


__all__ = [
    "InstanceFilter",
    "InstanceSummary",
    "StepFailure",
    "WorkflowInstance",
    "as_utc",
    "utcnow",
]
