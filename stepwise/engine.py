"""High level entry point: start, resume, cancel, pause and query workflows."""

from __future__ import annotations

import copy
import logging
import uuid
from typing import Any, Dict, List, Optional

from .actions import ActionRegistry, default_registry
from .config import StepwiseConfig, load_config
from .events import (
    EventSink,
    LoggingEventSink,
    NullEventSink,
    WorkflowCancelled,
    WorkflowPaused,
    WorkflowStarted,
    emit_safely,
)
from .exceptions import InvalidWorkflowStateError, WorkflowInstanceNotFoundError
from .executor import WorkflowExecutor
from .parser import DefinitionParser, RawDefinition
from .persistence import (
    InstanceFilter,
    InstanceSummary,
    WorkflowInstance,
    WorkflowRepository,
    get_repository,
)
from .state import WorkflowState

logger = logging.getLogger(__name__)


class WorkflowEngine:
    """Coordinate parsing, instance creation and execution.

    Every collaborator can be injected; missing ones are built from ``config``
    when the engine is constructed.
    """

    def __init__(
        self,
        repository: Optional[WorkflowRepository] = None,
        registry: Optional[ActionRegistry] = None,
        events: Optional[EventSink] = None,
        config: Optional[StepwiseConfig] = None,
        parser: Optional[DefinitionParser] = None,
    ) -> None:
        self.config = config or load_config()
        self.repository = repository if repository is not None else get_repository(
            config=self.config
        )
        self.registry = registry if registry is not None else default_registry()
        if events is None:
            events = LoggingEventSink() if self.config.events.enabled else NullEventSink()
        self.events = events
        self.parser = parser or DefinitionParser()
        self.executor = WorkflowExecutor(
            self.repository, self.registry, self.events, self.config.executor
        )

    async def start(
        self,
        workflow_id: Optional[str],
        definition: RawDefinition,
        context: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Create an instance seeded with ``context`` and run it.

        Returns the instance id, generated when ``workflow_id`` is empty.
        Step failures leave the instance FAILED without raising.
        """
        parsed = self.parser.parse(definition)
        instance_id = workflow_id or str(uuid.uuid4())
        if await self.repository.exists(instance_id):
            existing = await self.repository.load(instance_id)
            raise InvalidWorkflowStateError.already_exists(instance_id, existing.state)

        instance = WorkflowInstance(
            id=instance_id, definition=parsed, data=copy.deepcopy(context or {})
        )
        await self.repository.save(instance)
        logger.info(f"Starting workflow {parsed.name} as {instance_id}")
        emit_safely(
            self.events,
            WorkflowStarted(
                workflow_id=instance_id,
                name=parsed.name,
                context=copy.deepcopy(context or {}),
            ),
        )
        await self.executor.run(instance)
        return instance_id

    async def resume(self, workflow_id: str) -> WorkflowInstance:
        instance = await self.repository.load(workflow_id)
        if instance.state.is_terminal:
            raise InvalidWorkflowStateError.cannot_resume(workflow_id, instance.state)
        logger.info(f"Resuming workflow {workflow_id} at {instance.current_step_id}")
        return await self.executor.run(instance)

    async def cancel(self, workflow_id: str, reason: str = "") -> WorkflowInstance:
        """Mark an active instance CANCELLED; an in-flight action is not interrupted."""
        instance = await self.repository.load(workflow_id)
        instance.transition_to(WorkflowState.CANCELLED)
        if reason:
            instance.error_message = reason
        await self.repository.save(instance)
        logger.info(f"Workflow {workflow_id} cancelled: {reason or 'no reason given'}")
        emit_safely(
            self.events,
            WorkflowCancelled(
                workflow_id=workflow_id, name=instance.definition.name, reason=reason
            ),
        )
        return instance

    async def pause(self, workflow_id: str) -> WorkflowInstance:
        instance = await self.repository.load(workflow_id)
        instance.transition_to(WorkflowState.PAUSED)
        await self.repository.save(instance)
        logger.info(f"Workflow {workflow_id} paused at {instance.current_step_id}")
        emit_safely(
            self.events,
            WorkflowPaused(
                workflow_id=workflow_id,
                name=instance.definition.name,
                step_id=instance.current_step_id,
            ),
        )
        return instance

    async def get_instance(self, workflow_id: str) -> WorkflowInstance:
        return await self.repository.load(workflow_id)

    async def get_status(self, workflow_id: str) -> InstanceSummary:
        return (await self.repository.load(workflow_id)).summary()

    async def list_instances(
        self, filters: Optional[InstanceFilter] = None, **criteria: Any
    ) -> List[InstanceSummary]:
        """List instances matching ``filters`` or keyword criteria."""
        if filters is None:
            filters = InstanceFilter(**criteria)
        return [i.summary() for i in await self.repository.find_instances(filters)]

    async def exists(self, workflow_id: str) -> bool:
        return await self.repository.exists(workflow_id)

    async def delete(self, workflow_id: str) -> None:
        if not await self.repository.delete(workflow_id):
            raise WorkflowInstanceNotFoundError(workflow_id)


__all__ = ["WorkflowEngine"]
