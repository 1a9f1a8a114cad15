"""In-memory implementation of the workflow repository."""

from __future__ import annotations

from typing import Dict

from ..exceptions import WorkflowInstanceNotFoundError
from .models import InstanceFilter, WorkflowInstance
from .repository import WorkflowRepository


class InMemoryWorkflowRepository(WorkflowRepository):
    """Store workflow state in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts. Instances are deep-copied on the way
    in and out so callers never share mutable state with the store.
    """

    def __init__(self) -> None:
        self._instances: Dict[str, WorkflowInstance] = {}

    # ------------------------------------------------------------------
    async def save(self, instance: WorkflowInstance) -> None:
        self._instances[instance.id] = instance.snapshot()

    async def load(self, instance_id: str) -> WorkflowInstance:
        instance = self._instances.get(instance_id)
        if instance is None:
            raise WorkflowInstanceNotFoundError(instance_id, "memory")
        return instance.snapshot()

    async def find_instances(
        self, filters: InstanceFilter | None = None
    ) -> list[WorkflowInstance]:
        filters = filters or InstanceFilter()
        matched = sorted(
            (i for i in self._instances.values() if filters.matches(i)),
            key=lambda i: i.created_at,
        )
        window = matched[filters.offset : filters.offset + filters.limit]
        return [i.snapshot() for i in window]

    async def delete(self, instance_id: str) -> bool:
        return self._instances.pop(instance_id, None) is not None

    async def exists(self, instance_id: str) -> bool:
        return instance_id in self._instances
