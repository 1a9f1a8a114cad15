"""Immutable execution context handed to actions, and the result they return."""

from __future__ import annotations

import copy
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .conditions import MISSING, get_path, set_path
from .persistence.models import WorkflowInstance


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WorkflowContext(BaseModel):
    """Snapshot of instance data and step configuration for one action call.

    Contexts never change; ``with_*`` helpers return new copies.
    """

    model_config = ConfigDict(frozen=True)

    workflow_id: str
    step_id: str
    data: Dict[str, Any] = Field(default_factory=dict)
    config: Dict[str, Any] = Field(default_factory=dict)
    instance: Optional[WorkflowInstance] = Field(default=None, exclude=True, repr=False)
    executed_at: datetime = Field(default_factory=_utcnow)

    def get(self, path: str, default: Any = None) -> Any:
        return get_path(self.data, path, default)

    def get_config(self, path: str, default: Any = None) -> Any:
        return get_path(self.config, path, default)

    def has(self, path: str) -> bool:
        return get_path(self.data, path, MISSING) is not MISSING

    def with_data(self, data: Dict[str, Any]) -> "WorkflowContext":
        """Return a context whose data is ``data`` merged over the current data."""
        return self.model_copy(update={"data": {**self.data, **copy.deepcopy(data)}})

    def with_value(self, path: str, value: Any) -> "WorkflowContext":
        return self.model_copy(update={"data": set_path(self.data, path, value)})

    def with_config(self, config: Dict[str, Any]) -> "WorkflowContext":
        return self.model_copy(update={"config": {**self.config, **config}})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "workflow_id": self.workflow_id,
            "step_id": self.step_id,
            "data": copy.deepcopy(self.data),
            "config": copy.deepcopy(self.config),
            "executed_at": self.executed_at.isoformat(),
        }


class ActionResult(BaseModel):
    """Outcome of one action invocation."""

    model_config = ConfigDict(frozen=True)

    succeeded: bool
    error_message: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _failure_needs_message(self) -> "ActionResult":
        if not self.succeeded and not (self.error_message and self.error_message.strip()):
            raise ValueError("A failed ActionResult requires a non-empty error_message")
        return self

    @classmethod
    def success(
        cls,
        data: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> "ActionResult":
        return cls(succeeded=True, data=dict(data or {}), metadata=dict(metadata or {}))

    @classmethod
    def failure(
        cls, message: str, metadata: Optional[Dict[str, Any]] = None
    ) -> "ActionResult":
        return cls(succeeded=False, error_message=message, metadata=dict(metadata or {}))

    @property
    def is_success(self) -> bool:
        return self.succeeded

    @property
    def is_failure(self) -> bool:
        return not self.succeeded

    def get(self, path: str, default: Any = None) -> Any:
        return get_path(self.data, path, default)

    def with_metadata(self, metadata: Dict[str, Any]) -> "ActionResult":
        return self.model_copy(update={"metadata": {**self.metadata, **metadata}})

    def merge_data(self, data: Dict[str, Any]) -> "ActionResult":
        return self.model_copy(update={"data": {**self.data, **data}})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "succeeded": self.succeeded,
            "error_message": self.error_message,
            "data": dict(self.data),
            "metadata": dict(self.metadata),
        }


__all__ = ["WorkflowContext", "ActionResult"]
