"""Restricted condition expressions and template substitution.

Conditions use a single-level grammar, ``<left> <op> <right>``, where the
operator must be surrounded by whitespace::

    user.age >= 18
    order.status is not "cancelled"
    tier = premium

Operands are quoted strings, numbers, the keywords ``true``, ``false``,
``yes``, ``no``, ``null`` and ``empty``, or dot paths into the data document.
Expressions without an operator are read as a boolean literal or as a dot
path whose value is coerced to ``bool``.
"""

from __future__ import annotations

import json
import re
from typing import Any, Mapping

from .exceptions import EvaluationError

MISSING = object()

_OPERATOR_RE = re.compile(r"^(.+?)\s+(is not|is|!=|>=|<=|=|>|<)\s+(.+)$", re.DOTALL)
_QUOTED_RE = re.compile(r"""^(?:"(.*)"|'(.*)')$""", re.DOTALL)
_NUMBER_RE = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)$")
_TEMPLATE_RE = re.compile(r"\{\{\s*([^{}]+?)\s*\}\}|\{([^{}\s][^{}]*)\}")
_STRAY_OPERATOR_RE = re.compile(r"[=!<>]")
_PLAIN_PATH_RE = re.compile(r"^[^\s=!<>]+$")

_TRUE_LITERALS = {"true", "1", "yes"}
_FALSE_LITERALS = {"false", "0", "no"}
_KEYWORDS: dict[str, Any] = {
    "true": True,
    "yes": True,
    "false": False,
    "no": False,
    "null": None,
    "empty": None,
}


def get_path(data: Any, path: str, default: Any = None) -> Any:
    """Look up a dot-notation ``path`` in nested mappings and lists."""
    current = data
    for part in path.split("."):
        if isinstance(current, Mapping):
            if part not in current:
                return default
            current = current[part]
        elif isinstance(current, (list, tuple)) and part.lstrip("-").isdigit():
            index = int(part)
            if not -len(current) <= index < len(current):
                return default
            current = current[index]
        else:
            return default
    return current


def set_path(data: dict[str, Any], path: str, value: Any) -> dict[str, Any]:
    """Return a copy of ``data`` with ``value`` stored at dot path ``path``."""
    head, _, rest = path.partition(".")
    result = dict(data)
    if not rest:
        result[head] = value
        return result
    child = result.get(head)
    result[head] = set_path(child if isinstance(child, dict) else {}, rest, value)
    return result


def resolve_operand(token: str, data: Mapping[str, Any], bare_words: bool = False) -> Any:
    """Turn one side of a comparison into a Python value.

    With ``bare_words`` an unresolvable path is read as the literal string, so
    ``tier = premium`` compares against ``"premium"`` unless ``premium`` is a key.
    """
    token = token.strip()
    quoted = _QUOTED_RE.match(token)
    if quoted:
        return quoted.group(1) if quoted.group(1) is not None else quoted.group(2)
    if _NUMBER_RE.match(token):
        return float(token) if "." in token else int(token)
    lowered = token.lower()
    if lowered in _KEYWORDS:
        return _KEYWORDS[lowered]
    value = get_path(data, token, MISSING)
    if value is MISSING:
        return token if bare_words else None
    return value


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _as_number(value: Any) -> Any:
    """Return ``value`` as a number when it is one or a numeric string."""
    if _is_number(value):
        return value
    if isinstance(value, str) and _NUMBER_RE.match(value.strip()):
        text = value.strip()
        return float(text) if "." in text else int(text)
    return None


def loose_equals(left: Any, right: Any) -> bool:
    """Equality with numeric/string coercion, used by ``=`` and ``!=``."""
    if left is None or right is None:
        return not left and not right
    if isinstance(left, bool) or isinstance(right, bool):
        return bool(left) == bool(right)
    if isinstance(left, str) and isinstance(right, str):
        left_num, right_num = _as_number(left), _as_number(right)
        if left_num is not None and right_num is not None:
            return left_num == right_num
        return left == right
    if _is_number(left) or _is_number(right):
        left_num, right_num = _as_number(left), _as_number(right)
        if left_num is None or right_num is None:
            return False
        return left_num == right_num
    return left == right


def strict_equals(left: Any, right: Any) -> bool:
    """Equality that also requires identical types, used by ``is``."""
    return type(left) is type(right) and left == right


def _ordering_operands(left: Any, right: Any, expression: str) -> tuple[Any, Any]:
    if isinstance(left, str) and isinstance(right, str):
        left_num, right_num = _as_number(left), _as_number(right)
        if left_num is not None and right_num is not None:
            return left_num, right_num
        return left, right
    left_num, right_num = _as_number(left), _as_number(right)
    if left_num is not None and right_num is not None:
        return left_num, right_num
    raise EvaluationError(
        f"Cannot order {type(left).__name__} and {type(right).__name__} "
        f"in expression '{expression}'",
        expression,
        left=left,
        right=right,
    )


def compare(left: Any, operator: str, right: Any, expression: str = "") -> bool:
    """Apply ``operator`` to two resolved operands."""
    if operator == "=":
        return loose_equals(left, right)
    if operator == "!=":
        return not loose_equals(left, right)
    if operator == "is":
        return strict_equals(left, right)
    if operator == "is not":
        return not strict_equals(left, right)
    if operator in (">", "<", ">=", "<="):
        a, b = _ordering_operands(left, right, expression)
        if operator == ">":
            return a > b
        if operator == "<":
            return a < b
        if operator == ">=":
            return a >= b
        return a <= b
    raise EvaluationError(f"Unsupported operator: {operator}", expression, operator=operator)


def evaluate(expression: str, data: Mapping[str, Any] | None = None) -> bool:
    """Evaluate a condition ``expression`` against ``data``."""
    if not isinstance(expression, str):
        raise EvaluationError(
            f"Condition must be a string, got {type(expression).__name__}", expression
        )
    text = expression.strip()
    if not text:
        raise EvaluationError("Condition expression is empty", expression)
    data = data or {}

    match = _OPERATOR_RE.match(text)
    if match:
        left_token, operator, right_token = match.groups()
        _check_operand(left_token, text)
        _check_operand(right_token, text)
        left = resolve_operand(left_token, data)
        right = resolve_operand(right_token, data, bare_words=True)
        return compare(left, operator, right, text)

    lowered = text.lower()
    if lowered in _TRUE_LITERALS:
        return True
    if lowered in _FALSE_LITERALS:
        return False
    if not _PLAIN_PATH_RE.match(text):
        raise EvaluationError(
            f"Unsupported operator or malformed condition: {text}", expression
        )
    return bool(get_path(data, text))


def _check_operand(token: str, expression: str) -> None:
    token = token.strip()
    if _QUOTED_RE.match(token):
        return
    if _STRAY_OPERATOR_RE.search(token):
        raise EvaluationError(
            f"Unsupported operator or malformed condition: {expression}", expression
        )


def evaluate_all(expressions: list[str], data: Mapping[str, Any]) -> tuple[bool, str | None]:
    """Evaluate ``expressions`` in order; return the first one that is false."""
    for expression in expressions:
        if not evaluate(expression, data):
            return False, expression
    return True, None


def _stringify(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (bool, dict, list, tuple)) or value is None:
        return json.dumps(value, default=str)
    return str(value)


def render_template(template: str, data: Mapping[str, Any]) -> str:
    """Replace ``{{ path }}`` and ``{path}`` placeholders with values from ``data``.

    Unresolved placeholders are left untouched.
    """

    def _replace(match: re.Match) -> str:
        path = (match.group(1) or match.group(2)).strip()
        value = get_path(data, path, MISSING)
        if value is MISSING:
            return match.group(0)
        return _stringify(value)

    return _TEMPLATE_RE.sub(_replace, template)


def render_templates(value: Any, data: Mapping[str, Any]) -> Any:
    """Apply :func:`render_template` to every string in a nested structure."""
    if isinstance(value, str):
        return render_template(value, data)
    if isinstance(value, Mapping):
        return {key: render_templates(item, data) for key, item in value.items()}
    if isinstance(value, list):
        return [render_templates(item, data) for item in value]
    return value


__all__ = [
    "MISSING",
    "compare",
    "evaluate",
    "evaluate_all",
    "get_path",
    "set_path",
    "loose_equals",
    "strict_equals",
    "render_template",
    "render_templates",
    "resolve_operand",
]
