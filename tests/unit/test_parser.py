"""Tests for definition validation."""

import json
import logging

import pytest

from stepwise.definition import WorkflowDefinition
from stepwise.exceptions import InvalidDefinitionError
from stepwise.parser import DefinitionParser


def _definition(**overrides):
    base = {
        "name": "order-flow",
        "version": "2.1",
        "steps": [
            {"id": "validate", "action": "log", "parameters": {"message": "hi"}},
            {
                "id": "charge",
                "action": "http",
                "timeout": "30s",
                "retry_attempts": 2,
                "conditions": ["order.total > 0"],
                "compensation": "log",
            },
            {"id": "done"},
        ],
        "transitions": [
            {"from": "validate", "to": "charge"},
            {"from": "charge", "to": "done", "condition": "paid = true"},
        ],
        "metadata": {"owner": "billing"},
    }
    base.update(overrides)
    return base


@pytest.fixture
def parser():
    return DefinitionParser()


def test_parse_builds_definition(parser):
    definition = parser.parse(_definition())
    assert definition.name == "order-flow"
    assert definition.step_ids == ["validate", "charge", "done"]
    charge = definition.get_step("charge")
    assert charge.timeout_seconds == 30
    assert charge.retry_attempts == 2
    assert charge.conditions == ["order.total > 0"]
    assert charge.has_compensation
    assert definition.entry_step().id == "validate"
    assert [t.to_step for t in definition.outgoing("charge")] == ["done"]
    assert definition.metadata == {"owner": "billing"}


def test_round_trip_through_dict_and_json(parser):
    definition = parser.parse(_definition())
    assert parser.parse(definition.to_dict()) == definition
    assert parser.parse(definition.to_json()) == definition


def test_definition_is_returned_as_is(parser):
    definition = parser.parse(_definition())
    assert parser.parse(definition) is definition


def test_id_keyed_steps_are_accepted(parser):
    definition = parser.parse(
        {"name": "keyed", "steps": {"a": {"action": "log"}, "b": {"id": "b"}}}
    )
    assert definition.step_ids == ["a", "b"]
    assert definition.version == "1.0"


def test_config_alias_and_single_string_condition(parser):
    definition = parser.parse(
        {
            "name": "alias",
            "steps": [{"id": "a", "config": {"x": 1}, "conditions": "x = 1"}],
        }
    )
    step = definition.get_step("a")
    assert step.parameters == {"x": 1}
    assert step.conditions == ["x = 1"]


def test_unknown_transition_endpoint_names_the_step(parser):
    raw = _definition(transitions=[{"from": "validate", "to": "ghost"}])
    with pytest.raises(InvalidDefinitionError) as exc_info:
        parser.parse(raw)
    assert "ghost" in str(exc_info.value)


def test_invalid_json(parser):
    with pytest.raises(InvalidDefinitionError) as exc_info:
        parser.parse("{not json")
    assert "Invalid JSON" in str(exc_info.value)


@pytest.mark.parametrize(
    "raw",
    [
        {"steps": [{"id": "a"}]},
        {"name": "", "steps": [{"id": "a"}]},
        {"name": "1bad", "steps": [{"id": "a"}]},
        {"name": "has space", "steps": [{"id": "a"}]},
        {"name": "ok"},
        {"name": "ok", "steps": []},
        {"name": "ok", "steps": "a"},
        {"name": "ok", "steps": [{"action": "log"}]},
        {"name": "ok", "steps": [{"id": "a"}, {"id": "a"}]},
        {"name": "ok", "steps": [{"id": "9a"}]},
        {"name": "ok", "steps": {"a": {"id": "b"}}},
        {"name": "ok", "steps": [{"id": "a", "action": ""}]},
        {"name": "ok", "steps": [{"id": "a", "timeout": "5 minutes"}]},
        {"name": "ok", "steps": [{"id": "a", "timeout": 5}]},
        {"name": "ok", "steps": [{"id": "a", "retry_attempts": -1}]},
        {"name": "ok", "steps": [{"id": "a", "retry_attempts": True}]},
        {"name": "ok", "steps": [{"id": "a", "retry_attempts": "2"}]},
        {"name": "ok", "steps": [{"id": "a", "parameters": [1]}]},
        {"name": "ok", "steps": [{"id": "a", "conditions": [""]}]},
        {"name": "ok", "steps": [{"id": "a", "conditions": {"x": 1}}]},
        {"name": "ok", "steps": [{"id": "a"}], "transitions": {"from": "a"}},
        {"name": "ok", "steps": [{"id": "a"}], "transitions": ["a"]},
        {"name": "ok", "steps": [{"id": "a"}], "transitions": [{"from": "a"}]},
        {"name": "ok", "steps": [{"id": "a"}], "transitions": [{"from": "a", "to": "a", "condition": " "}]},
        {"name": "ok", "steps": [{"id": "a"}], "transitions": [{"from": "a", "to": "a", "metadata": 1}]},
        {"name": "ok", "steps": [{"id": "a"}], "version": 2},
        {"name": "ok", "steps": [{"id": "a"}], "metadata": []},
        ["not", "a", "mapping"],
    ],
)
def test_invalid_definitions_rejected(parser, raw):
    with pytest.raises(InvalidDefinitionError):
        parser.parse(raw)


def test_error_carries_field_and_suggestions(parser):
    with pytest.raises(InvalidDefinitionError) as exc_info:
        parser.parse({"steps": [{"id": "a"}]})
    error = exc_info.value
    assert error.field == "name"
    assert error.suggestions
    assert "definition" in error.context


def test_high_retry_count_only_warns(parser, caplog):
    with caplog.at_level(logging.WARNING, logger="stepwise.parser"):
        definition = parser.parse({"name": "ok", "steps": [{"id": "a", "retry_attempts": 12}]})
    assert definition.get_step("a").retry_attempts == 12
    assert "recommended maximum" in caplog.text


def test_entry_step_skips_transition_targets(parser):
    definition = parser.parse(
        {
            "name": "reordered",
            "steps": [{"id": "second"}, {"id": "first"}],
            "transitions": [{"from": "first", "to": "second"}],
        }
    )
    assert definition.entry_step().id == "first"


def test_parse_file_yaml_and_json(parser, tmp_path):
    yaml_path = tmp_path / "flow.yaml"
    yaml_path.write_text(
        """
name: from-yaml
steps:
  - id: a
    action: log
  - id: b
transitions:
  - from: a
    to: b
"""
    )
    json_path = tmp_path / "flow.json"
    json_path.write_text(json.dumps({"name": "from-json", "steps": [{"id": "a"}]}))

    from_yaml = parser.parse_file(yaml_path)
    assert isinstance(from_yaml, WorkflowDefinition)
    assert from_yaml.step_ids == ["a", "b"]
    assert parser.parse_file(str(json_path)).name == "from-json"


def test_parse_file_invalid_yaml(parser, tmp_path):
    path = tmp_path / "broken.yml"
    path.write_text("name: [unclosed")
    with pytest.raises(InvalidDefinitionError):
        parser.parse_file(path)
