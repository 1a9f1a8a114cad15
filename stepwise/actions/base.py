"""Action contract and a convenience base class."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Protocol, runtime_checkable

from ..conditions import get_path
from ..context import ActionResult, WorkflowContext

logger = logging.getLogger(__name__)


@runtime_checkable
class WorkflowAction(Protocol):
    """Unit of work bound to a step."""

    @property
    def name(self) -> str: ...

    @property
    def description(self) -> str: ...

    def can_execute(self, context: WorkflowContext) -> bool: ...

    async def execute(self, context: WorkflowContext) -> ActionResult: ...


class BaseAction:
    """Holds step configuration and wraps :meth:`handle` with logging.

    Subclasses implement ``handle``; anything it raises is turned into a
    failed :class:`ActionResult` so the executor can apply the retry policy.
    """

    description = "Base workflow action"

    def __init__(self, config: Optional[Dict[str, Any]] = None) -> None:
        self.config: Dict[str, Any] = dict(config or {})

    @property
    def name(self) -> str:
        return type(self).__name__

    def get_config(self, path: str, default: Any = None) -> Any:
        return get_path(self.config, path, default)

    def can_execute(self, context: WorkflowContext) -> bool:
        return True

    async def execute(self, context: WorkflowContext) -> ActionResult:
        logger.info(
            f"Executing action {self.name} for workflow={context.workflow_id} "
            f"step={context.step_id}"
        )
        if not self.can_execute(context):
            return ActionResult.failure("Prerequisites not met")
        try:
            result = await self.handle(context)
        except Exception as exc:
            logger.error(f"Action {self.name} failed: {exc}")
            return ActionResult.failure(str(exc) or type(exc).__name__)
        logger.info(f"Action {self.name} completed")
        return result

    async def handle(self, context: WorkflowContext) -> ActionResult:
        raise NotImplementedError
