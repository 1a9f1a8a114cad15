"""Tests for the action registry and the built-in actions."""

import json
import logging

import httpx
import pytest

from stepwise.actions import (
    ActionRegistry,
    BaseAction,
    ConditionAction,
    DelayAction,
    HttpAction,
    LogAction,
    WorkflowAction,
    default_registry,
)
from stepwise.context import ActionResult, WorkflowContext
from stepwise.exceptions import ActionNotFoundError


def _context(**data):
    return WorkflowContext(workflow_id="wf-1", step_id="s1", data=data)


def test_default_registry_contains_builtins():
    registry = default_registry()
    assert registry.names() == ["condition", "delay", "http", "log"]
    assert "log" in registry
    assert isinstance(registry.resolve("log", {"message": "x"}), LogAction)


def test_default_registry_is_not_shared():
    first = default_registry()
    first.register("custom", LogAction)
    assert "custom" not in default_registry()


def test_resolve_unknown_lists_available():
    registry = ActionRegistry({"log": LogAction})
    with pytest.raises(ActionNotFoundError) as exc_info:
        registry.resolve("nope", step_id="a")
    assert exc_info.value.available == ["log"]
    assert exc_info.value.step_id == "a"


def test_register_action_decorator_passes_config():
    registry = ActionRegistry()

    @registry.register_action("greet")
    class Greet(BaseAction):
        async def handle(self, context):
            return ActionResult.success({"greeting": f"hi {self.get_config('who')}"})

    action = registry.resolve("greet", {"who": "ann"})
    assert isinstance(action, Greet)
    assert isinstance(action, WorkflowAction)
    assert action.config == {"who": "ann"}


def test_register_rejects_bad_input():
    registry = ActionRegistry()
    with pytest.raises(ValueError):
        registry.register("", LogAction)
    with pytest.raises(TypeError):
        registry.register("x", "not callable")


@pytest.mark.asyncio
async def test_base_action_turns_exceptions_into_failures():
    class Broken(BaseAction):
        async def handle(self, context):
            raise KeyError("missing")

    result = await Broken().execute(_context())
    assert result.is_failure
    assert "missing" in result.error_message


@pytest.mark.asyncio
async def test_base_action_checks_prerequisites():
    class Guarded(BaseAction):
        def can_execute(self, context):
            return context.has("token")

        async def handle(self, context):
            return ActionResult.success()

    assert (await Guarded().execute(_context())).error_message == "Prerequisites not met"
    assert (await Guarded().execute(_context(token="t"))).is_success


@pytest.mark.asyncio
async def test_log_action_renders_message(caplog):
    action = LogAction({"message": "Order {{ order.id }} ready", "level": "warning"})
    with caplog.at_level(logging.WARNING, logger="stepwise.actions.builtin"):
        result = await action.execute(_context(order={"id": 42}))
    assert result.is_success
    assert result.data["logged_message"] == "Order 42 ready"
    assert "Order 42 ready" in caplog.text


@pytest.mark.asyncio
async def test_log_action_rejects_unknown_level():
    result = await LogAction({"level": "loud"}).execute(_context())
    assert result.is_failure


@pytest.mark.asyncio
async def test_delay_action():
    result = await DelayAction({"seconds": 0, "microseconds": 1000}).execute(_context())
    assert result.is_success
    assert result.data["delayed_microseconds"] == 1000

    invalid = await DelayAction({"seconds": -1}).execute(_context())
    assert invalid.error_message == "Invalid delay seconds specified"


@pytest.mark.asyncio
async def test_condition_action():
    action = ConditionAction(
        {"condition": "amount > 100", "on_true": "review", "on_false": "ship"}
    )
    result = await action.execute(_context(amount=150))
    assert result.data == {"condition": "amount > 100", "result": True, "next_action": "review"}

    missing = await ConditionAction({}).execute(_context())
    assert missing.error_message == "Condition is required"

    broken = await ConditionAction({"condition": "name > 3"}).execute(_context(name="x"))
    assert broken.is_failure
    assert broken.metadata == {"condition": "name > 3"}


@pytest.mark.asyncio
async def test_http_action_success():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(201, json={"id": 9})

    action = HttpAction(
        {
            "url": "https://api.test/users/{{ user.id }}",
            "method": "post",
            "data": {"name": "{{ user.name }}"},
        },
        transport=httpx.MockTransport(handler),
    )
    result = await action.execute(_context(user={"id": 5, "name": "ann"}))
    assert result.is_success
    assert result.data["status_code"] == 201
    assert result.data["response_data"] == {"id": 9}
    assert seen == {
        "method": "POST",
        "url": "https://api.test/users/5",
        "body": {"name": "ann"},
    }


@pytest.mark.asyncio
async def test_http_action_non_2xx_fails():
    action = HttpAction(
        {"url": "https://api.test/x"},
        transport=httpx.MockTransport(lambda r: httpx.Response(503, text="down")),
    )
    result = await action.execute(_context())
    assert result.is_failure
    assert result.metadata["status_code"] == 503
    assert "503" in result.error_message


@pytest.mark.asyncio
async def test_http_action_transport_error_fails():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    action = HttpAction({"url": "https://api.test/x"}, transport=httpx.MockTransport(handler))
    result = await action.execute(_context())
    assert result.is_failure
    assert result.error_message.startswith("HTTP request exception")


@pytest.mark.asyncio
async def test_http_action_requires_url_and_known_method():
    assert (await HttpAction({}).execute(_context())).error_message == (
        "URL is required for HTTP action"
    )
    bad = await HttpAction({"url": "https://x.test", "method": "TRACE"}).execute(_context())
    assert bad.is_failure
