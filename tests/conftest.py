"""Shared actions and fixtures for the stepwise test-suite."""

from __future__ import annotations

from collections import defaultdict
from typing import Any, Dict, List

import pytest

from stepwise import (
    ActionRegistry,
    ActionResult,
    BaseAction,
    CollectingEventSink,
    StepwiseConfig,
    WorkflowContext,
    WorkflowEngine,
    default_registry,
)
from stepwise.persistence import InMemoryWorkflowRepository


class CallLog:
    """Records every action invocation as ``(action, step_id)``."""

    def __init__(self) -> None:
        self.calls: List[tuple] = []
        self.attempts: Dict[str, int] = defaultdict(int)

    def record(self, action: str, context: WorkflowContext) -> None:
        self.calls.append((action, context.step_id))
        self.attempts[context.step_id] += 1

    def steps(self, action: str | None = None) -> List[str]:
        return [step for name, step in self.calls if action is None or name == action]


class RecordAction(BaseAction):
    """Succeeds, returning ``config["output"]`` as result data."""

    def __init__(self, config: Dict[str, Any], log: CallLog) -> None:
        super().__init__(config)
        self.log = log

    async def handle(self, context: WorkflowContext) -> ActionResult:
        self.log.record("record", context)
        return ActionResult.success(self.get_config("output", {}))


class FlakyAction(BaseAction):
    """Fails the first ``fail_times`` attempts of each step, then succeeds."""

    def __init__(self, config: Dict[str, Any], log: CallLog) -> None:
        super().__init__(config)
        self.log = log

    async def handle(self, context: WorkflowContext) -> ActionResult:
        self.log.record("flaky", context)
        if self.log.attempts[context.step_id] <= self.get_config("fail_times", 1):
            return ActionResult.failure("transient failure")
        return ActionResult.success({"recovered": True})


class FailAction(BaseAction):
    def __init__(self, config: Dict[str, Any], log: CallLog) -> None:
        super().__init__(config)
        self.log = log

    async def handle(self, context: WorkflowContext) -> ActionResult:
        self.log.record("fail", context)
        return ActionResult.failure(self.get_config("message", "boom"))


class RaiseAction:
    """Implements the action protocol directly and raises."""

    name = "raise"
    description = "Always raises"

    def __init__(self, config: Dict[str, Any], log: CallLog) -> None:
        self.log = log

    def can_execute(self, context: WorkflowContext) -> bool:
        return True

    async def execute(self, context: WorkflowContext) -> ActionResult:
        self.log.record("raise", context)
        raise RuntimeError("action exploded")


class CompensateAction(BaseAction):
    def __init__(self, config: Dict[str, Any], log: CallLog) -> None:
        super().__init__(config)
        self.log = log

    async def handle(self, context: WorkflowContext) -> ActionResult:
        self.log.record("compensate", context)
        if self.get_config("fail_compensation"):
            raise RuntimeError("compensation failed")
        return ActionResult.success()


@pytest.fixture
def call_log() -> CallLog:
    return CallLog()


@pytest.fixture
def registry(call_log: CallLog) -> ActionRegistry:
    registry = default_registry()
    for name, cls in {
        "record": RecordAction,
        "flaky": FlakyAction,
        "fail": FailAction,
        "raise": RaiseAction,
        "compensate": CompensateAction,
    }.items():
        registry.register(name, lambda config, cls=cls: cls(config, call_log))
    return registry


@pytest.fixture
def repository() -> InMemoryWorkflowRepository:
    return InMemoryWorkflowRepository()


@pytest.fixture
def events() -> CollectingEventSink:
    return CollectingEventSink()


@pytest.fixture
def config() -> StepwiseConfig:
    return StepwiseConfig()


@pytest.fixture
def engine(repository, registry, events, config) -> WorkflowEngine:
    return WorkflowEngine(
        repository=repository, registry=registry, events=events, config=config
    )
