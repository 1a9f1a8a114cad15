"""Repository abstraction for workflow state persistence."""

from __future__ import annotations

from typing import Protocol

from .models import InstanceFilter, WorkflowInstance


class WorkflowRepository(Protocol):
    """Protocol for workflow state persistence backends.

    Backends store snapshots: mutating an instance after ``save`` or after
    ``load`` never affects what is stored until the next ``save``.
    """

    async def save(self, instance: WorkflowInstance) -> None:
        """Insert or replace the stored state of ``instance``."""

    async def load(self, instance_id: str) -> WorkflowInstance:
        """Return the stored instance or raise ``WorkflowInstanceNotFoundError``."""

    async def find_instances(
        self, filters: InstanceFilter | None = None
    ) -> list[WorkflowInstance]:
        """Return instances matching ``filters`` ordered by creation time."""

    async def delete(self, instance_id: str) -> bool:
        """Remove an instance; return whether anything was deleted."""

    async def exists(self, instance_id: str) -> bool:
        """Return whether an instance with this id is stored."""
