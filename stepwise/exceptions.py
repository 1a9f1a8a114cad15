"""Error taxonomy for stepwise workflows.

Every error carries a machine-readable ``context`` mapping and a
human-readable ``user_message``. Callers should branch on the exception type,
never on the message text.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional

if TYPE_CHECKING:
    from .state import WorkflowState

IDENTIFIER_RULE = r"^[A-Za-z][A-Za-z0-9_-]*$"
_EXCERPT_LIMIT = 10


def _excerpt(definition: Any) -> Dict[str, Any]:
    """Return a shallow, size-bounded view of a raw definition."""
    if not isinstance(definition, dict):
        return {"raw": repr(definition)[:200]}
    excerpt: Dict[str, Any] = {}
    for key in list(definition)[:_EXCERPT_LIMIT]:
        value = definition[key]
        if isinstance(value, (dict, list)):
            excerpt[key] = f"<{type(value).__name__} of {len(value)}>"
        else:
            excerpt[key] = value
    return excerpt


class WorkflowError(Exception):
    """Base class for all stepwise errors."""

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        suggestions: Optional[List[str]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = dict(context or {})
        self._suggestions: List[str] = list(suggestions or [])

    @property
    def user_message(self) -> str:
        return self.message

    @property
    def suggestions(self) -> List[str]:
        return self._suggestions or [
            "Check the workflow definition for errors",
            "Verify that every referenced action is registered",
            "Review the execution logs for additional context",
        ]

    def context_value(self, key: str, default: Any = None) -> Any:
        return self.context.get(key, default)

    def debug_info(self) -> Dict[str, Any]:
        """Structured view of the error for logs and API responses."""
        return {
            "error_type": type(self).__name__,
            "message": self.message,
            "context": self.context,
            "suggestions": self.suggestions,
            "cause": repr(self.__cause__) if self.__cause__ else None,
        }


class InvalidDefinitionError(WorkflowError):
    """Raised when a workflow definition fails structural validation."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        definition: Any = None,
        suggestions: Optional[List[str]] = None,
        **extra: Any,
    ) -> None:
        context = {"field": field, "definition": _excerpt(definition or {})}
        context.update(extra)
        super().__init__(message, context, suggestions)
        self.field = field

    @property
    def user_message(self) -> str:
        return (
            "The workflow definition contains errors and cannot be processed. "
            f"{self.message}"
        )

    @classmethod
    def invalid_json(cls, error: str, raw: str) -> "InvalidDefinitionError":
        return cls(
            f"Invalid JSON definition: {error}",
            field=None,
            definition={"raw": raw[:200]},
            suggestions=[
                "Make sure the definition is a valid JSON document",
                "Pass a mapping instead of a string to skip deserialization",
            ],
        )

    @classmethod
    def missing_required_field(
        cls, field: str, definition: Any
    ) -> "InvalidDefinitionError":
        return cls(
            f"Required field '{field}' is missing from workflow definition",
            field=field,
            definition=definition,
            suggestions=[
                f"Add a '{field}' field to the definition",
                "Required fields are 'name' and 'steps'",
            ],
        )

    @classmethod
    def invalid_name(
        cls, name: Any, reason: Optional[str] = None, definition: Any = None
    ) -> "InvalidDefinitionError":
        message = f"Invalid workflow name: '{name}'"
        if reason:
            message += f". {reason}"
        return cls(
            message,
            field="name",
            definition=definition,
            suggestions=[
                "Use a name that starts with a letter",
                "Only use letters, numbers, hyphens and underscores",
                'Examples: "user-onboarding", "order_processing", "documentApproval"',
            ],
            provided_name=name,
            validation_rule=IDENTIFIER_RULE,
        )

    @classmethod
    def empty_workflow(cls, name: Any, definition: Any = None) -> "InvalidDefinitionError":
        return cls(
            f"Workflow '{name}' must have at least one step",
            field="steps",
            definition=definition,
            suggestions=[
                "Add at least one step to the 'steps' collection",
                "Steps may be a list of objects with an 'id' or a mapping keyed by id",
            ],
        )

    @classmethod
    def invalid_step_id(
        cls, step_id: Any, definition: Any = None
    ) -> "InvalidDefinitionError":
        return cls(
            f"Invalid step ID: '{step_id}'",
            field="steps.id",
            definition=definition,
            suggestions=[
                "Step ids must start with a letter",
                "Only use letters, numbers, hyphens and underscores",
                'Examples: "send_email", "validate_input", "process_payment"',
            ],
            provided_step_id=step_id,
            validation_rule=IDENTIFIER_RULE,
        )

    @classmethod
    def duplicate_step_id(
        cls, step_id: str, definition: Any = None
    ) -> "InvalidDefinitionError":
        return cls(
            f"Duplicate step ID: '{step_id}'. Step IDs must be unique within a workflow",
            field="steps.id",
            definition=definition,
            suggestions=[
                "Use unique step identifiers within each workflow",
                'Add a suffix to disambiguate, e.g. "send_email_welcome"',
            ],
            duplicate_step_id=step_id,
        )

    @classmethod
    def invalid_step(
        cls, step_id: str, reason: str, field: str, definition: Any = None
    ) -> "InvalidDefinitionError":
        return cls(
            f"Step '{step_id}' has invalid configuration: {reason}",
            field=f"steps.{step_id}.{field}",
            definition=definition,
            suggestions=[f"Fix the '{field}' field of step '{step_id}'"],
            step_id=step_id,
        )

    @classmethod
    def invalid_retry_attempts(
        cls, attempts: Any, step_id: Optional[str] = None, definition: Any = None
    ) -> "InvalidDefinitionError":
        where = f" for step '{step_id}'" if step_id else ""
        return cls(
            f"Invalid retry attempts{where}: {attempts!r}. Must be a non-negative integer",
            field=f"steps.{step_id}.retry_attempts" if step_id else "retry_attempts",
            definition=definition,
            suggestions=[
                "Use a value between 0 and 10 for retry attempts",
                "Use 0 for no retries and 3 for moderate resilience",
            ],
            provided_attempts=attempts,
            valid_range="0-10",
        )

    @classmethod
    def invalid_timeout(
        cls, timeout: Any, step_id: Optional[str] = None, definition: Any = None
    ) -> "InvalidDefinitionError":
        where = f" for step '{step_id}'" if step_id else ""
        return cls(
            f"Invalid timeout{where}: {timeout!r}",
            field=f"steps.{step_id}.timeout" if step_id else "timeout",
            definition=definition,
            suggestions=[
                'Use a duration string such as "30s", "5m", "2h" or "1d"',
                "Builder timeouts may also be positive integers (seconds)",
            ],
            provided_timeout=timeout,
        )

    @classmethod
    def invalid_transition(
        cls, index: int, reason: str, definition: Any = None
    ) -> "InvalidDefinitionError":
        return cls(
            f"Transition #{index} is invalid: {reason}",
            field=f"transitions[{index}]",
            definition=definition,
            suggestions=[
                "Each transition needs non-empty 'from' and 'to' step ids",
                "Optional keys are 'condition' (string) and 'metadata' (mapping)",
            ],
        )

    @classmethod
    def unknown_transition_step(
        cls, index: int, endpoint: str, step_id: Any, known: Iterable[str], definition: Any = None
    ) -> "InvalidDefinitionError":
        known = list(known)
        return cls(
            f"Transition #{index} references unknown step: {step_id}",
            field=f"transitions[{index}].{endpoint}",
            definition=definition,
            suggestions=[
                "Transition endpoints must name declared steps",
                "Declared steps: " + ", ".join(known),
            ],
            unknown_step_id=step_id,
            known_steps=known,
        )

    @classmethod
    def invalid_condition(
        cls, condition: Any, field: str = "condition", definition: Any = None
    ) -> "InvalidDefinitionError":
        return cls(
            f"Invalid condition expression: {condition!r}. Condition cannot be empty",
            field=field,
            definition=definition,
            suggestions=[
                'Use "<left> <operator> <right>", e.g. "order.amount > 1000"',
                "Supported operators: =, !=, >, <, >=, <=, is, is not",
                'Use dot notation for nested values: "user.profile.type"',
            ],
            provided_condition=condition,
        )

    @classmethod
    def invalid_field_type(
        cls, field: str, expected: str, value: Any, definition: Any = None
    ) -> "InvalidDefinitionError":
        return cls(
            f"Field '{field}' must be {expected}, got {type(value).__name__}",
            field=field,
            definition=definition,
            suggestions=[f"Provide '{field}' as {expected}"],
        )


class InvalidStateTransitionError(WorkflowError):
    """Raised on an illegal workflow lifecycle move."""

    def __init__(
        self,
        message: str,
        current_state: "WorkflowState",
        attempted_state: "WorkflowState",
        instance_id: Optional[str] = None,
    ) -> None:
        self.current_state = current_state
        self.attempted_state = attempted_state
        self.instance_id = instance_id
        self.valid_transitions = sorted(
            s.value for s in current_state.allowed_transitions()
        )
        super().__init__(
            message,
            {
                "instance_id": instance_id,
                "current_state": current_state.value,
                "attempted_state": attempted_state.value,
                "valid_transitions": self.valid_transitions,
            },
        )

    @property
    def user_message(self) -> str:
        return (
            f"Cannot transition workflow from '{self.current_state.label}' state "
            f"to '{self.attempted_state.label}' state. This transition is not "
            "allowed by the workflow lifecycle rules."
        )

    @property
    def suggestions(self) -> List[str]:
        from .state import WorkflowState

        if self.valid_transitions:
            suggestions = [
                f"Valid transitions from '{self.current_state.value}' are: "
                + ", ".join(self.valid_transitions)
            ]
        else:
            suggestions = [
                f"No transitions are available from '{self.current_state.value}'"
            ]
        if self.current_state is WorkflowState.COMPLETED:
            suggestions.append(
                "Completed workflows cannot be modified; start a new instance instead"
            )
        elif self.current_state is WorkflowState.FAILED:
            suggestions.append("Fix the underlying issue and start a new instance")
        elif self.current_state is WorkflowState.CANCELLED:
            suggestions.append("Cancelled workflows cannot be resumed")
        return suggestions


class InvalidWorkflowStateError(InvalidStateTransitionError):
    """Raised when an engine operation is not allowed in the instance's state."""

    @classmethod
    def cannot_resume(
        cls, instance_id: str, state: "WorkflowState"
    ) -> "InvalidWorkflowStateError":
        from .state import WorkflowState

        return cls(
            f"Cannot resume workflow '{instance_id}' because it is already {state.value}",
            state,
            WorkflowState.RUNNING,
            instance_id,
        )

    @classmethod
    def already_exists(
        cls, instance_id: str, state: "WorkflowState"
    ) -> "InvalidWorkflowStateError":
        from .state import WorkflowState

        return cls(
            f"Cannot start workflow '{instance_id}' because an instance with this id "
            f"already exists ({state.value})",
            state,
            WorkflowState.PENDING,
            instance_id,
        )


class WorkflowInstanceNotFoundError(WorkflowError):
    """Raised when a storage backend has no record for an instance id."""

    def __init__(self, instance_id: str, storage_type: Optional[str] = None) -> None:
        self.instance_id = instance_id
        super().__init__(
            f"Workflow instance '{instance_id}' was not found",
            {"instance_id": instance_id, "storage_type": storage_type},
            [
                "Check the instance id for typos",
                "Make sure the engine uses the same storage backend that started it",
            ],
        )


class ActionNotFoundError(WorkflowError):
    """Raised when an action reference cannot be resolved."""

    def __init__(
        self,
        action: str,
        step_id: Optional[str] = None,
        available: Optional[Iterable[str]] = None,
    ) -> None:
        self.action = action
        self.step_id = step_id
        self.available = sorted(available or [])
        where = f" for step '{step_id}'" if step_id else ""
        super().__init__(
            f"Action '{action}'{where} could not be resolved",
            {"action": action, "step_id": step_id, "available_actions": self.available},
        )

    @property
    def suggestions(self) -> List[str]:
        suggestions = [
            f"Register '{self.action}' with ActionRegistry.register() before running",
            "Check the action name spelling in the step definition",
        ]
        if self.available:
            suggestions.append("Available actions: " + ", ".join(self.available))
        return suggestions


class StepExecutionError(WorkflowError):
    """An action raised or returned a failed result."""

    def __init__(
        self,
        message: str,
        step_id: str,
        attempt_number: int = 1,
        retry_attempts: int = 0,
        action: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.step_id = step_id
        self.attempt_number = attempt_number
        self.retry_attempts = retry_attempts
        self.action = action
        data = {
            "step_id": step_id,
            "action": action,
            "attempt_number": attempt_number,
            "retry_attempts": retry_attempts,
        }
        data.update(context or {})
        super().__init__(message, data)

    @property
    def can_retry(self) -> bool:
        return self.attempt_number <= self.retry_attempts

    @property
    def user_message(self) -> str:
        return (
            f"The workflow step '{self.step_id}' failed to execute. This may be due "
            "to invalid input data, external service issues, or configuration problems."
        )

    @property
    def suggestions(self) -> List[str]:
        suggestions = ["Check the step parameters and the workflow data"]
        if self.can_retry:
            remaining = self.retry_attempts - self.attempt_number + 1
            suggestions.append(
                f"This step will be retried automatically ({remaining} attempts remaining)"
            )
        elif self.retry_attempts:
            suggestions.append("All retry attempts have been exhausted")
        else:
            suggestions.append(
                "Consider setting 'retry_attempts' on the step if the failure is transient"
            )
        return suggestions

    @classmethod
    def from_exception(
        cls,
        exc: BaseException,
        step_id: str,
        attempt_number: int,
        retry_attempts: int,
        action: Optional[str] = None,
    ) -> "StepExecutionError":
        error = cls(
            f"Step '{step_id}' failed: {exc}",
            step_id,
            attempt_number,
            retry_attempts,
            action,
            {
                "error_type": "exception",
                "original_exception": type(exc).__name__,
                "original_message": str(exc),
            },
        )
        error.__cause__ = exc
        return error

    @classmethod
    def action_failed(
        cls,
        error_message: str,
        step_id: str,
        attempt_number: int,
        retry_attempts: int,
        action: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> "StepExecutionError":
        return cls(
            f"Action execution failed in step '{step_id}': {error_message}",
            step_id,
            attempt_number,
            retry_attempts,
            action,
            {
                "error_type": "action_failed",
                "action_error": error_message,
                "result_metadata": dict(metadata or {}),
            },
        )

    @classmethod
    def invalid_result(
        cls,
        result: Any,
        step_id: str,
        attempt_number: int,
        retry_attempts: int,
        action: Optional[str] = None,
    ) -> "StepExecutionError":
        return cls(
            f"Action in step '{step_id}' returned {type(result).__name__} "
            "instead of an ActionResult",
            step_id,
            attempt_number,
            retry_attempts,
            action,
            {"error_type": "invalid_result"},
        )

    @classmethod
    def precondition_failed(cls, step_id: str, condition: str) -> "StepExecutionError":
        return cls(
            f"Precondition '{condition}' of step '{step_id}' is not satisfied",
            step_id,
            context={"error_type": "precondition_failed", "condition": condition},
        )

    @classmethod
    def step_limit_exceeded(cls, step_id: str, limit: int) -> "StepExecutionError":
        return cls(
            f"Workflow exceeded {limit} step executions at step '{step_id}'",
            step_id,
            context={"error_type": "step_limit_exceeded", "max_steps": limit},
        )


class EvaluationError(WorkflowError):
    """Raised for malformed or non-evaluable condition expressions."""

    def __init__(self, message: str, expression: Any = None, **extra: Any) -> None:
        self.expression = expression
        context = {"expression": expression}
        context.update(extra)
        super().__init__(
            message,
            context,
            [
                'Use "<left> <operator> <right>" with whitespace around the operator',
                "Supported operators: =, !=, >, <, >=, <=, is, is not",
                "Ordering operators need two numbers or two strings",
            ],
        )


__all__ = [
    "WorkflowError",
    "InvalidDefinitionError",
    "InvalidStateTransitionError",
    "InvalidWorkflowStateError",
    "WorkflowInstanceNotFoundError",
    "ActionNotFoundError",
    "StepExecutionError",
    "EvaluationError",
]
