"""Stepwise: declarative, resumable workflow orchestration."""

from .actions import ActionRegistry, BaseAction, WorkflowAction, default_registry
from .builder import WorkflowBuilder
from .conditions import evaluate
from .config import StepwiseConfig, load_config
from .context import ActionResult, WorkflowContext
from .definition import StepSpec, Transition, WorkflowDefinition
from .engine import WorkflowEngine
from .events import CollectingEventSink, EventSink, LoggingEventSink, NullEventSink
from .exceptions import (
    ActionNotFoundError,
    EvaluationError,
    InvalidDefinitionError,
    InvalidStateTransitionError,
    InvalidWorkflowStateError,
    StepExecutionError,
    WorkflowError,
    WorkflowInstanceNotFoundError,
)
from .executor import WorkflowExecutor
from .parser import DefinitionParser
from .persistence import InstanceFilter, WorkflowInstance, get_repository
from .state import WorkflowState

__version__ = "0.1.0"
__all__ = [
    "ActionNotFoundError",
    "ActionRegistry",
    "ActionResult",
    "BaseAction",
    "CollectingEventSink",
    "DefinitionParser",
    "EvaluationError",
    "EventSink",
    "InstanceFilter",
    "InvalidDefinitionError",
    "InvalidStateTransitionError",
    "InvalidWorkflowStateError",
    "LoggingEventSink",
    "NullEventSink",
    "StepExecutionError",
    "StepSpec",
    "StepwiseConfig",
    "Transition",
    "WorkflowAction",
    "WorkflowBuilder",
    "WorkflowContext",
    "WorkflowDefinition",
    "WorkflowEngine",
    "WorkflowError",
    "WorkflowExecutor",
    "WorkflowInstance",
    "WorkflowInstanceNotFoundError",
    "WorkflowState",
    "default_registry",
    "evaluate",
    "get_repository",
    "load_config",
]
