"""Built-in actions: log, delay, condition and http."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx

from ..conditions import evaluate, render_template, render_templates
from ..context import ActionResult, WorkflowContext
from ..exceptions import EvaluationError
from ..persistence.models import utcnow
from .base import BaseAction

logger = logging.getLogger(__name__)

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}


class LogAction(BaseAction):
    """Write a templated message to the ``stepwise.actions`` logger."""

    description = "Writes a message to the workflow log"

    @property
    def name(self) -> str:
        return "Log"

    async def handle(self, context: WorkflowContext) -> ActionResult:
        message = self.get_config("message", "Workflow step executed")
        level_name = str(self.get_config("level", "info")).lower()
        if level_name not in _LEVELS:
            return ActionResult.failure(f"Unsupported log level: {level_name}")
        rendered = render_template(str(message), context.data)
        logger.log(
            _LEVELS[level_name],
            f"[workflow={context.workflow_id} step={context.step_id}] {rendered}",
        )
        return ActionResult.success(
            {
                "logged_message": rendered,
                "logged_level": level_name,
                "logged_at": utcnow().isoformat(),
            }
        )


class DelayAction(BaseAction):
    """Sleep for ``seconds`` plus ``microseconds`` without blocking the loop."""

    description = "Adds a delay to workflow execution"

    @property
    def name(self) -> str:
        return "Delay"

    async def handle(self, context: WorkflowContext) -> ActionResult:
        seconds = self.get_config("seconds", 1)
        microseconds = self.get_config("microseconds", 0)
        if not _non_negative_number(seconds):
            return ActionResult.failure("Invalid delay seconds specified")
        if not _non_negative_number(microseconds):
            return ActionResult.failure("Invalid delay microseconds specified")

        total = seconds + microseconds / 1_000_000
        if total > 0:
            await asyncio.sleep(total)
        return ActionResult.success(
            {
                "delayed_seconds": seconds,
                "delayed_microseconds": microseconds,
                "delayed_at": utcnow().isoformat(),
            }
        )


def _non_negative_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value >= 0


class ConditionAction(BaseAction):
    """Evaluate ``condition`` against the workflow data.

    The outcome is stored under ``result`` along with ``next_action`` taken from
    ``on_true`` or ``on_false``; transitions can branch on either.
    """

    description = "Evaluates boolean conditions against workflow data"

    @property
    def name(self) -> str:
        return "Condition Check"

    async def handle(self, context: WorkflowContext) -> ActionResult:
        condition = self.get_config("condition")
        if not condition:
            return ActionResult.failure("Condition is required")
        try:
            outcome = evaluate(condition, context.data)
        except EvaluationError as exc:
            return ActionResult.failure(
                f"Condition evaluation failed: {exc}", {"condition": condition}
            )
        return ActionResult.success(
            {
                "condition": condition,
                "result": outcome,
                "next_action": self.get_config("on_true" if outcome else "on_false"),
            }
        )


class HttpAction(BaseAction):
    """Issue an HTTP request with :mod:`httpx`.

    Config: ``url`` (required), ``method`` (default GET), ``data``, ``headers``
    and ``timeout`` in seconds (default 30). ``url`` and ``data`` are rendered
    against the workflow data. Non-2xx responses become failed results.
    """

    description = "Makes HTTP requests to external APIs"
    methods = ("GET", "POST", "PUT", "PATCH", "DELETE")

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(config)
        self._transport = transport

    @property
    def name(self) -> str:
        return "HTTP Request"

    async def handle(self, context: WorkflowContext) -> ActionResult:
        url = self.get_config("url")
        if not url:
            return ActionResult.failure("URL is required for HTTP action")
        method = str(self.get_config("method", "GET")).upper()
        if method not in self.methods:
            return ActionResult.failure(f"Unsupported HTTP method: {method}")

        url = render_template(str(url), context.data)
        data = render_templates(self.get_config("data") or {}, context.data)
        headers = {str(k): str(v) for k, v in (self.get_config("headers") or {}).items()}
        timeout = self.get_config("timeout", 30)

        request: Dict[str, Any] = {"headers": headers}
        if method in ("GET", "DELETE"):
            request["params"] = data
        else:
            request["json"] = data

        try:
            async with httpx.AsyncClient(
                timeout=timeout, transport=self._transport
            ) as client:
                response = await client.request(method, url, **request)
        except httpx.HTTPError as exc:
            return ActionResult.failure(
                f"HTTP request exception: {exc}",
                {"exception": str(exc), "url": url, "method": method},
            )

        if response.is_success:
            return ActionResult.success(
                {
                    "status_code": response.status_code,
                    "response_data": _json_or_text(response),
                    "headers": dict(response.headers),
                    "url": url,
                    "method": method,
                }
            )
        return ActionResult.failure(
            f"HTTP request failed with status {response.status_code}: {response.text}",
            {
                "status_code": response.status_code,
                "response_body": response.text,
                "url": url,
                "method": method,
            },
        )


def _json_or_text(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


BUILTIN_ACTIONS = {
    "log": LogAction,
    "delay": DelayAction,
    "condition": ConditionAction,
    "http": HttpAction,
}
