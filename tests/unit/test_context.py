"""Tests for WorkflowContext and ActionResult."""

import pytest
from pydantic import ValidationError

from stepwise.context import ActionResult, WorkflowContext


@pytest.fixture
def context():
    return WorkflowContext(
        workflow_id="wf-1",
        step_id="a",
        data={"user": {"name": "ann", "roles": ["admin"]}},
        config={"retry": {"max": 3}},
    )


def test_read_helpers(context):
    assert context.get("user.name") == "ann"
    assert context.get("user.roles.0") == "admin"
    assert context.get("user.age", 18) == 18
    assert context.get_config("retry.max") == 3
    assert context.has("user.name")
    assert not context.has("user.age")


def test_context_is_frozen(context):
    with pytest.raises(ValidationError):
        context.step_id = "b"


def test_with_helpers_return_new_contexts(context):
    updated = context.with_data({"flag": True})
    assert updated.get("flag") is True
    assert not context.has("flag")

    nested = context.with_value("user.age", 30)
    assert nested.get("user.age") == 30
    assert nested.get("user.name") == "ann"
    assert context.get("user.age") is None

    configured = context.with_config({"timeout": 5})
    assert configured.config == {"retry": {"max": 3}, "timeout": 5}
    assert "timeout" not in context.config


def test_to_dict_excludes_instance(context):
    data = context.to_dict()
    assert set(data) == {"workflow_id", "step_id", "data", "config", "executed_at"}
    assert "instance" not in context.model_dump()


def test_success_and_failure_constructors():
    ok = ActionResult.success({"id": 1}, {"duration": 0.1})
    assert ok.is_success and not ok.is_failure
    assert ok.get("id") == 1
    assert ok.metadata == {"duration": 0.1}

    failed = ActionResult.failure("nope", {"code": 500})
    assert failed.is_failure
    assert failed.error_message == "nope"


@pytest.mark.parametrize("message", [None, "", "   "])
def test_failure_requires_message(message):
    with pytest.raises(ValidationError):
        ActionResult(succeeded=False, error_message=message)


def test_result_transformers_do_not_mutate():
    result = ActionResult.success({"a": 1})
    merged = result.merge_data({"b": 2}).with_metadata({"source": "test"})
    assert merged.data == {"a": 1, "b": 2}
    assert merged.metadata == {"source": "test"}
    assert result.data == {"a": 1}
    assert merged.to_dict() == {
        "succeeded": True,
        "error_message": None,
        "data": {"a": 1, "b": 2},
        "metadata": {"source": "test"},
    }
