"""Fluent construction of workflow definitions.

Example::

    definition = (
        WorkflowBuilder.create("order-processing")
        .description("Validate and charge an order")
        .start_with("validate_order", {"strict": True})
        .then("charge_payment", retry_attempts=3)
        .when("order.total > 1000", lambda b: b.then("manual_review"))
        .log("Order {{ order.id }} processed")
        .build()
    )

Steps are linked in the order they are added; pass ``link=False`` to
``add_step`` and wire edges with ``transition`` for branching graphs.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Union

from .definition import WorkflowDefinition
from .exceptions import InvalidDefinitionError
from .parser import IDENTIFIER_RE, DefinitionParser

MAX_RETRY_ATTEMPTS = 10

Timeout = Union[int, str, None]


class WorkflowBuilder:
    def __init__(self, name: str) -> None:
        if not isinstance(name, str) or not name.strip():
            raise InvalidDefinitionError.invalid_name(name, "Name must be a non-empty string")
        if not IDENTIFIER_RE.match(name):
            raise InvalidDefinitionError.invalid_name(
                name,
                "Name must start with a letter and contain only letters, numbers, "
                "hyphens, and underscores",
            )
        self._name = name
        self._version = "1.0"
        self._description: Optional[str] = None
        self._metadata: Dict[str, Any] = {}
        self._steps: List[Dict[str, Any]] = []
        self._transitions: List[Dict[str, Any]] = []
        self._conditions: List[str] = []

    @classmethod
    def create(cls, name: str) -> "WorkflowBuilder":
        return cls(name)

    def description(self, description: str) -> "WorkflowBuilder":
        self._description = description
        return self

    def version(self, version: str) -> "WorkflowBuilder":
        self._version = version
        return self

    def with_metadata(self, metadata: Dict[str, Any]) -> "WorkflowBuilder":
        self._metadata.update(metadata)
        return self

    # ------------------------------------------------------------------
    # Steps
    def add_step(
        self,
        id: str,
        action: Optional[str] = None,
        parameters: Optional[Dict[str, Any]] = None,
        timeout: Timeout = None,
        retry_attempts: int = 0,
        conditions: Optional[List[str]] = None,
        compensation: Optional[str] = None,
        link: bool = True,
    ) -> "WorkflowBuilder":
        """Append a step, linked from the previous one unless ``link`` is false."""
        if not isinstance(id, str) or not IDENTIFIER_RE.match(id):
            raise InvalidDefinitionError.invalid_step_id(id)
        if any(step["id"] == id for step in self._steps):
            raise InvalidDefinitionError.duplicate_step_id(id)
        if (
            isinstance(retry_attempts, bool)
            or not isinstance(retry_attempts, int)
            or not 0 <= retry_attempts <= MAX_RETRY_ATTEMPTS
        ):
            raise InvalidDefinitionError.invalid_retry_attempts(retry_attempts, id)

        step: Dict[str, Any] = {"id": id, "retry_attempts": retry_attempts}
        if action is not None:
            step["action"] = action
        if parameters:
            step["parameters"] = dict(parameters)
        if timeout is not None:
            step["timeout"] = self._normalize_timeout(timeout, id)
        step_conditions = [*self._conditions, *(conditions or [])]
        for condition in step_conditions:
            self._check_condition(condition)
        if step_conditions:
            step["conditions"] = step_conditions
        if compensation is not None:
            step["compensation"] = compensation

        previous = self._steps[-1]["id"] if self._steps else None
        self._steps.append(step)
        if link and previous is not None:
            self._transitions.append({"from": previous, "to": id})
        return self

    def start_with(
        self,
        action: str,
        parameters: Optional[Dict[str, Any]] = None,
        id: Optional[str] = None,
        **options: Any,
    ) -> "WorkflowBuilder":
        return self.add_step(id or self._next_id(), action, parameters, **options)

    def then(
        self,
        action: str,
        parameters: Optional[Dict[str, Any]] = None,
        id: Optional[str] = None,
        **options: Any,
    ) -> "WorkflowBuilder":
        return self.add_step(id or self._next_id(), action, parameters, **options)

    def transition(
        self, from_step: str, to_step: str, condition: Optional[str] = None
    ) -> "WorkflowBuilder":
        transition: Dict[str, Any] = {"from": from_step, "to": to_step}
        if condition is not None:
            self._check_condition(condition)
            transition["condition"] = condition
        self._transitions.append(transition)
        return self

    def when(
        self, condition: str, callback: Callable[["WorkflowBuilder"], Any]
    ) -> "WorkflowBuilder":
        """Steps added inside ``callback`` only run when ``condition`` holds."""
        self._check_condition(condition)
        self._conditions.append(condition)
        try:
            callback(self)
        finally:
            self._conditions.pop()
        return self

    # ------------------------------------------------------------------
    # Built-in action shortcuts
    def log(
        self, message: str, level: str = "info", id: Optional[str] = None
    ) -> "WorkflowBuilder":
        return self.add_step(
            id or self._next_id(), "log", {"message": message, "level": level}
        )

    def delay(
        self,
        seconds: int = 0,
        minutes: int = 0,
        hours: int = 0,
        id: Optional[str] = None,
    ) -> "WorkflowBuilder":
        total = seconds + minutes * 60 + hours * 3600
        if total <= 0:
            raise InvalidDefinitionError(
                "Delay requires a positive duration",
                field="delay",
                suggestions=["Pass seconds, minutes or hours greater than zero"],
                seconds=seconds,
                minutes=minutes,
                hours=hours,
            )
        return self.add_step(id or self._next_id(), "delay", {"seconds": total})

    def http(
        self,
        url: str,
        method: str = "GET",
        data: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        id: Optional[str] = None,
        **options: Any,
    ) -> "WorkflowBuilder":
        parameters: Dict[str, Any] = {"url": url, "method": method.upper()}
        if data:
            parameters["data"] = data
        if headers:
            parameters["headers"] = headers
        return self.add_step(id or self._next_id(), "http", parameters, **options)

    def condition(
        self,
        expression: str,
        on_true: Optional[str] = None,
        on_false: Optional[str] = None,
        id: Optional[str] = None,
    ) -> "WorkflowBuilder":
        self._check_condition(expression)
        parameters: Dict[str, Any] = {"condition": expression}
        if on_true is not None:
            parameters["on_true"] = on_true
        if on_false is not None:
            parameters["on_false"] = on_false
        return self.add_step(id or self._next_id(), "condition", parameters)

    # ------------------------------------------------------------------
    def to_dict(self) -> Dict[str, Any]:
        metadata = dict(self._metadata)
        if self._description:
            metadata["description"] = self._description
        return {
            "name": self._name,
            "version": self._version,
            "steps": [dict(step) for step in self._steps],
            "transitions": [dict(t) for t in self._transitions],
            "metadata": metadata,
        }

    def build(self) -> WorkflowDefinition:
        if not self._steps:
            raise InvalidDefinitionError.empty_workflow(self._name)
        return DefinitionParser().parse(self.to_dict())

    # ------------------------------------------------------------------
    def _next_id(self) -> str:
        taken = {step["id"] for step in self._steps}
        index = len(self._steps) + 1
        while f"step_{index}" in taken:
            index += 1
        return f"step_{index}"

    @staticmethod
    def _check_condition(condition: Any) -> None:
        if not isinstance(condition, str) or not condition.strip():
            raise InvalidDefinitionError.invalid_condition(condition, "conditions")

    @staticmethod
    def _normalize_timeout(timeout: Union[int, str], step_id: str) -> str:
        if isinstance(timeout, bool):
            raise InvalidDefinitionError.invalid_timeout(timeout, step_id)
        if isinstance(timeout, int):
            if timeout <= 0:
                raise InvalidDefinitionError.invalid_timeout(timeout, step_id)
            return f"{timeout}s"
        if isinstance(timeout, str) and timeout[:-1].isdigit() and int(timeout[:-1]) > 0:
            return timeout
        raise InvalidDefinitionError.invalid_timeout(timeout, step_id)


__all__ = ["WorkflowBuilder", "MAX_RETRY_ATTEMPTS"]
