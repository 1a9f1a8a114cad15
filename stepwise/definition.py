"""Immutable workflow definition models."""

from __future__ import annotations

import json
import re
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

TIMEOUT_RE = re.compile(r"^(\d+)([smhd])$")
_TIMEOUT_UNITS = {"s": 1, "m": 60, "h": 3600, "d": 86400}


def parse_timeout(value: str) -> int:
    """Convert a duration such as ``"5m"`` into seconds."""
    match = TIMEOUT_RE.match(value)
    if not match:
        raise ValueError(f"Invalid timeout format: {value!r}")
    amount, unit = match.groups()
    return int(amount) * _TIMEOUT_UNITS[unit]


class StepSpec(BaseModel):
    """One named step of a workflow."""

    model_config = ConfigDict(frozen=True)

    id: str
    action: Optional[str] = None
    parameters: Dict[str, Any] = Field(default_factory=dict)
    timeout: Optional[str] = None
    retry_attempts: int = 0
    conditions: List[str] = Field(default_factory=list)
    compensation: Optional[str] = None

    @property
    def has_action(self) -> bool:
        return self.action is not None

    @property
    def has_compensation(self) -> bool:
        return self.compensation is not None

    @property
    def timeout_seconds(self) -> Optional[int]:
        return parse_timeout(self.timeout) if self.timeout else None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"id": self.id}
        if self.action is not None:
            data["action"] = self.action
        if self.parameters:
            data["parameters"] = dict(self.parameters)
        if self.timeout is not None:
            data["timeout"] = self.timeout
        if self.retry_attempts:
            data["retry_attempts"] = self.retry_attempts
        if self.conditions:
            data["conditions"] = list(self.conditions)
        if self.compensation is not None:
            data["compensation"] = self.compensation
        return data


class Transition(BaseModel):
    """A directed edge between two steps, optionally guarded by a condition."""

    model_config = ConfigDict(frozen=True)

    from_step: str
    to_step: str
    condition: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def is_conditional(self) -> bool:
        return self.condition is not None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"from": self.from_step, "to": self.to_step}
        if self.condition is not None:
            data["condition"] = self.condition
        if self.metadata:
            data["metadata"] = dict(self.metadata)
        return data


class WorkflowDefinition(BaseModel):
    """Validated, immutable workflow graph.

    Instances are produced by :class:`stepwise.parser.DefinitionParser` or
    :class:`stepwise.builder.WorkflowBuilder`; both guarantee that every
    transition endpoint names a declared step.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    version: str = "1.0"
    steps: Dict[str, StepSpec]
    transitions: List[Transition] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def step_ids(self) -> List[str]:
        return list(self.steps)

    def get_step(self, step_id: str) -> Optional[StepSpec]:
        return self.steps.get(step_id)

    def has_step(self, step_id: str) -> bool:
        return step_id in self.steps

    def entry_step(self) -> StepSpec:
        """First declared step without incoming transitions, else the first step."""
        targets = {t.to_step for t in self.transitions}
        for step in self.steps.values():
            if step.id not in targets:
                return step
        return next(iter(self.steps.values()))

    def outgoing(self, step_id: str) -> List[Transition]:
        """Transitions leaving ``step_id`` in declaration order."""
        return [t for t in self.transitions if t.from_step == step_id]

    def is_last_step(self, step_id: str) -> bool:
        return not self.outgoing(step_id)

    def steps_after(self, step_id: str) -> List[StepSpec]:
        """Steps declared after ``step_id``."""
        ids = self.step_ids
        if step_id not in ids:
            return []
        return [self.steps[i] for i in ids[ids.index(step_id) + 1 :]]

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the native-map input format accepted by the parser."""
        return {
            "name": self.name,
            "version": self.version,
            "steps": [step.to_dict() for step in self.steps.values()],
            "transitions": [t.to_dict() for t in self.transitions],
            "metadata": dict(self.metadata),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


__all__ = ["StepSpec", "Transition", "WorkflowDefinition", "parse_timeout", "TIMEOUT_RE"]
