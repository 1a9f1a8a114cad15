"""Definition parser: raw mappings or JSON into validated definitions."""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Union

import yaml

from .definition import TIMEOUT_RE, StepSpec, Transition, WorkflowDefinition
from .exceptions import InvalidDefinitionError

logger = logging.getLogger(__name__)

IDENTIFIER_RE = re.compile(r"^[A-Za-z][A-Za-z0-9_-]*$")
RECOMMENDED_MAX_RETRIES = 10

RawDefinition = Union[Dict[str, Any], str, WorkflowDefinition]


def is_identifier(value: Any) -> bool:
    return isinstance(value, str) and bool(IDENTIFIER_RE.match(value))


class DefinitionParser:
    """Validate raw workflow definitions and build :class:`WorkflowDefinition`.

    Accepts a mapping, a JSON string, or an already-built definition. Steps
    may be given as a list of objects carrying an ``id`` or as a mapping keyed
    by step id.
    """

    def parse(self, definition: RawDefinition) -> WorkflowDefinition:
        if isinstance(definition, WorkflowDefinition):
            return definition
        if isinstance(definition, (str, bytes)):
            definition = self._decode(definition)
        if not isinstance(definition, dict):
            raise InvalidDefinitionError.invalid_field_type(
                "definition", "a mapping", definition
            )

        name = self._validate_name(definition)
        version = self._validate_version(definition)
        metadata = self._validate_mapping(definition, "metadata", definition.get("metadata"))

        raw_steps = self._normalize_steps(definition)
        steps = {
            step_id: self._build_step(step_id, data, definition)
            for step_id, data in raw_steps.items()
        }
        transitions = self._build_transitions(definition, steps)

        return WorkflowDefinition(
            name=name,
            version=version,
            steps=steps,
            transitions=transitions,
            metadata=metadata,
        )

    def parse_file(self, path: Union[str, Path]) -> WorkflowDefinition:
        """Load a definition from a ``.json``, ``.yaml`` or ``.yml`` file."""
        path = Path(path)
        text = path.read_text(encoding="utf-8")
        if path.suffix.lower() in (".yaml", ".yml"):
            try:
                data = yaml.safe_load(text)
            except yaml.YAMLError as exc:
                raise InvalidDefinitionError(
                    f"Invalid YAML definition in {path}: {exc}",
                    definition={"path": str(path)},
                    suggestions=["Check the YAML syntax of the definition file"],
                ) from exc
            return self.parse(data if data is not None else {})
        return self.parse(text)

    # ------------------------------------------------------------------
    def _decode(self, raw: Union[str, bytes]) -> Any:
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            text = raw.decode("utf-8", "replace") if isinstance(raw, bytes) else raw
            raise InvalidDefinitionError.invalid_json(exc.msg, text) from exc

    def _validate_name(self, definition: Dict[str, Any]) -> str:
        if "name" not in definition or definition["name"] in (None, ""):
            raise InvalidDefinitionError.missing_required_field("name", definition)
        name = definition["name"]
        if not isinstance(name, str) or not name.strip():
            raise InvalidDefinitionError.invalid_name(
                name, "Name must be a non-empty string", definition
            )
        if not IDENTIFIER_RE.match(name):
            raise InvalidDefinitionError.invalid_name(
                name,
                "Name must start with a letter and contain only letters, numbers, "
                "hyphens, and underscores",
                definition,
            )
        return name

    def _validate_version(self, definition: Dict[str, Any]) -> str:
        version = definition.get("version")
        if version is None:
            return "1.0"
        if not isinstance(version, str) or not version.strip():
            raise InvalidDefinitionError.invalid_field_type(
                "version", "a non-empty string", version, definition
            )
        return version

    def _validate_mapping(
        self, definition: Dict[str, Any], field: str, value: Any
    ) -> Dict[str, Any]:
        if value is None:
            return {}
        if not isinstance(value, dict):
            raise InvalidDefinitionError.invalid_field_type(
                field, "a mapping", value, definition
            )
        return dict(value)

    def _normalize_steps(self, definition: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
        if "steps" not in definition or definition["steps"] is None:
            raise InvalidDefinitionError.missing_required_field("steps", definition)
        steps = definition["steps"]
        if not isinstance(steps, (list, dict)):
            raise InvalidDefinitionError.invalid_field_type(
                "steps", "a list or a mapping", steps, definition
            )
        if not steps:
            raise InvalidDefinitionError.empty_workflow(definition.get("name"), definition)

        normalized: Dict[str, Dict[str, Any]] = {}
        if isinstance(steps, dict):
            for step_id, data in steps.items():
                if not is_identifier(step_id):
                    raise InvalidDefinitionError.invalid_step_id(step_id, definition)
                if data is None:
                    data = {}
                if not isinstance(data, dict):
                    raise InvalidDefinitionError.invalid_step(
                        step_id, "step must be a mapping", "step", definition
                    )
                if "id" in data and data["id"] != step_id:
                    raise InvalidDefinitionError.invalid_step(
                        step_id,
                        f"nested id {data['id']!r} does not match its key",
                        "id",
                        definition,
                    )
                normalized[step_id] = {k: v for k, v in data.items() if k != "id"}
            return normalized

        for index, data in enumerate(steps):
            if not isinstance(data, dict):
                raise InvalidDefinitionError.invalid_step(
                    f"#{index}", "step must be a mapping", "step", definition
                )
            if "id" not in data:
                raise InvalidDefinitionError.missing_required_field(
                    f"steps[{index}].id", definition
                )
            step_id = data["id"]
            if not is_identifier(step_id):
                raise InvalidDefinitionError.invalid_step_id(step_id, definition)
            if step_id in normalized:
                raise InvalidDefinitionError.duplicate_step_id(step_id, definition)
            normalized[step_id] = {k: v for k, v in data.items() if k != "id"}
        return normalized

    def _build_step(
        self, step_id: str, data: Dict[str, Any], definition: Dict[str, Any]
    ) -> StepSpec:
        action = self._optional_reference(step_id, data, "action", definition)
        compensation = self._optional_reference(step_id, data, "compensation", definition)

        timeout = data.get("timeout")
        if timeout is not None and not (
            isinstance(timeout, str) and TIMEOUT_RE.match(timeout)
        ):
            raise InvalidDefinitionError.invalid_timeout(timeout, step_id, definition)

        retry_attempts = data.get("retry_attempts", 0)
        if retry_attempts is None:
            retry_attempts = 0
        if (
            isinstance(retry_attempts, bool)
            or not isinstance(retry_attempts, int)
            or retry_attempts < 0
        ):
            raise InvalidDefinitionError.invalid_retry_attempts(
                retry_attempts, step_id, definition
            )
        if retry_attempts > RECOMMENDED_MAX_RETRIES:
            logger.warning(
                f"Step {step_id} configures {retry_attempts} retry attempts "
                f"(recommended maximum is {RECOMMENDED_MAX_RETRIES})"
            )

        parameters = data.get("parameters", data.get("config"))
        if parameters is None:
            parameters = {}
        if not isinstance(parameters, dict):
            raise InvalidDefinitionError.invalid_step(
                step_id, "parameters must be a mapping", "parameters", definition
            )

        conditions = data.get("conditions")
        if conditions is None:
            conditions = []
        elif isinstance(conditions, str):
            conditions = [conditions]
        if not isinstance(conditions, list):
            raise InvalidDefinitionError.invalid_step(
                step_id, "conditions must be a list of strings", "conditions", definition
            )
        for condition in conditions:
            if not isinstance(condition, str) or not condition.strip():
                raise InvalidDefinitionError.invalid_condition(
                    condition, f"steps.{step_id}.conditions", definition
                )

        return StepSpec(
            id=step_id,
            action=action,
            parameters=dict(parameters),
            timeout=timeout,
            retry_attempts=retry_attempts,
            conditions=list(conditions),
            compensation=compensation,
        )

    def _optional_reference(
        self, step_id: str, data: Dict[str, Any], field: str, definition: Dict[str, Any]
    ) -> Any:
        value = data.get(field)
        if value is None:
            return None
        if not isinstance(value, str) or not value.strip():
            raise InvalidDefinitionError.invalid_step(
                step_id, f"{field} must be a non-empty string", field, definition
            )
        return value

    def _build_transitions(
        self, definition: Dict[str, Any], steps: Dict[str, StepSpec]
    ) -> List[Transition]:
        raw = definition.get("transitions")
        if raw is None:
            return []
        if not isinstance(raw, list):
            raise InvalidDefinitionError.invalid_field_type(
                "transitions", "a list", raw, definition
            )

        transitions: List[Transition] = []
        for index, item in enumerate(raw):
            if not isinstance(item, dict):
                raise InvalidDefinitionError.invalid_transition(
                    index, "transition must be a mapping", definition
                )
            for endpoint in ("from", "to"):
                value = item.get(endpoint)
                if not isinstance(value, str) or not value.strip():
                    raise InvalidDefinitionError.invalid_transition(
                        index, f"'{endpoint}' must be a non-empty string", definition
                    )
                if value not in steps:
                    raise InvalidDefinitionError.unknown_transition_step(
                        index, endpoint, value, steps, definition
                    )

            condition = item.get("condition")
            if condition is not None and (
                not isinstance(condition, str) or not condition.strip()
            ):
                raise InvalidDefinitionError.invalid_condition(
                    condition, f"transitions[{index}].condition", definition
                )
            metadata = item.get("metadata")
            if metadata is not None and not isinstance(metadata, dict):
                raise InvalidDefinitionError.invalid_transition(
                    index, "'metadata' must be a mapping", definition
                )

            transitions.append(
                Transition(
                    from_step=item["from"],
                    to_step=item["to"],
                    condition=condition,
                    metadata=dict(metadata or {}),
                )
            )
        return transitions


def parse_definition(definition: RawDefinition) -> WorkflowDefinition:
    """Shortcut for ``DefinitionParser().parse(definition)``."""
    return DefinitionParser().parse(definition)


__all__ = ["DefinitionParser", "parse_definition", "is_identifier", "IDENTIFIER_RE"]
