"""Action contract, registry and built-in actions."""

from __future__ import annotations

from .base import BaseAction, WorkflowAction
from .builtin import BUILTIN_ACTIONS, ConditionAction, DelayAction, HttpAction, LogAction
from .registry import ActionFactory, ActionRegistry, default_registry

__all__ = [
    "ActionFactory",
    "ActionRegistry",
    "BaseAction",
    "BUILTIN_ACTIONS",
    "ConditionAction",
    "DelayAction",
    "HttpAction",
    "LogAction",
    "WorkflowAction",
    "default_registry",
]
