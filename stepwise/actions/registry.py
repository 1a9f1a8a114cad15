"""Explicit name -> factory mapping used to resolve step actions."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterator, List, Optional

from ..exceptions import ActionNotFoundError
from .base import WorkflowAction

logger = logging.getLogger(__name__)

ActionFactory = Callable[[Dict[str, Any]], WorkflowAction]


class ActionRegistry:
    """Resolve action references to action instances.

    A factory receives the rendered step parameters and returns a fresh
    action. Action classes whose constructor takes a config mapping can be
    registered directly.
    """

    def __init__(self, factories: Optional[Dict[str, ActionFactory]] = None) -> None:
        self._factories: Dict[str, ActionFactory] = dict(factories or {})

    def register(self, name: str, factory: ActionFactory) -> None:
        if not isinstance(name, str) or not name.strip():
            raise ValueError("Action name must be a non-empty string")
        if not callable(factory):
            raise TypeError(f"Factory for action '{name}' is not callable")
        if name in self._factories:
            logger.debug(f"Replacing action factory for '{name}'")
        self._factories[name] = factory

    def register_action(self, name: str) -> Callable[[ActionFactory], ActionFactory]:
        """Decorator form of :meth:`register`."""

        def decorator(factory: ActionFactory) -> ActionFactory:
            self.register(name, factory)
            return factory

        return decorator

    def unregister(self, name: str) -> None:
        self._factories.pop(name, None)

    def resolve(
        self,
        reference: str,
        config: Optional[Dict[str, Any]] = None,
        step_id: Optional[str] = None,
    ) -> WorkflowAction:
        factory = self._factories.get(reference)
        if factory is None:
            raise ActionNotFoundError(reference, step_id, self.names())
        return factory(dict(config or {}))

    def names(self) -> List[str]:
        return sorted(self._factories)

    def copy(self) -> "ActionRegistry":
        return ActionRegistry(self._factories)

    def __contains__(self, name: object) -> bool:
        return name in self._factories

    def __iter__(self) -> Iterator[str]:
        return iter(self.names())

    def __len__(self) -> int:
        return len(self._factories)


def default_registry() -> ActionRegistry:
    """A new registry holding the built-in actions."""
    from .builtin import BUILTIN_ACTIONS

    return ActionRegistry(BUILTIN_ACTIONS)
