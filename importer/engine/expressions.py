"""Declarative expressions for account-defined custom rules.

A custom rule's ``config["expression"]`` is plain JSON. Transforms list
steps applied to the field value in order::

    {"version": 1, "steps": [{"op": "trim"}, {"op": "upper"}]}

Validators hold a condition in the same shape the workflow evaluator uses,
where ``"field": "value"`` means the field being validated and any other
name reads the row::

    {
        "version": 1,
        "condition": {"field": "value", "operator": "matches", "value": "^\\d{5}$"},
        "message": "ZIP must be five digits",
    }
"""

from __future__ import annotations

import operator
import re
from typing import Any, Mapping

from ..errors import ConfigurationError

SUPPORTED_VERSIONS = frozenset({1})


def _as_float(value) -> float:
    return float(str(value).strip())


OPERATORS = {
    "equals": operator.eq,
    "not_equals": operator.ne,
    "contains": lambda a, b: str(b) in str(a) if a else False,
    "not_contains": lambda a, b: str(b) not in str(a) if a else True,
    "starts_with": lambda a, b: str(a).startswith(str(b)) if a else False,
    "ends_with": lambda a, b: str(a).endswith(str(b)) if a else False,
    "greater_than": lambda a, b: _as_float(a) > _as_float(b) if a is not None else False,
    "less_than": lambda a, b: _as_float(a) < _as_float(b) if a is not None else False,
    "is_empty": lambda a, _: a is None or str(a).strip() == "",
    "is_not_empty": lambda a, _: a is not None and str(a).strip() != "",
    "matches": lambda a, b: re.search(str(b), str(a)) is not None if a is not None else False,
    "in": lambda a, b: str(a) in {str(item) for item in (b or ())},
    "max_length": lambda a, b: len(str(a or "")) <= int(b),
}


def _step_replace(value: str, step: dict) -> str:
    return value.replace(str(step.get("old", "")), str(step.get("new", "")))


def _step_regex_replace(value: str, step: dict) -> str:
    return re.sub(str(step.get("pattern", "")), str(step.get("repl", "")), value)


def _step_map(value: str, step: dict) -> Any:
    mapping = step.get("values") or {}
    if step.get("case_insensitive", True):
        lowered = {str(k).lower(): v for k, v in mapping.items()}
        return lowered.get(value.lower(), value)
    return mapping.get(value, value)


STEP_OPS = {
    "trim": lambda value, step: value.strip(),
    "upper": lambda value, step: value.upper(),
    "lower": lambda value, step: value.lower(),
    "title": lambda value, step: value.title(),
    "collapse_whitespace": lambda value, step: re.sub(r"\s+", " ", value).strip(),
    "replace": _step_replace,
    "regex_replace": _step_regex_replace,
    "map": _step_map,
    "prefix": lambda value, step: f"{step.get('value', '')}{value}",
    "suffix": lambda value, step: f"{value}{step.get('value', '')}",
    "truncate": lambda value, step: value[: int(step.get("length", len(value)))],
}


def check_expression(expression: Any, kind: str) -> dict:
    """Validate an expression's shape up front; return it unchanged."""
    if not isinstance(expression, dict):
        raise ConfigurationError("Custom rule expression must be an object")
    version = expression.get("version", 1)
    if version not in SUPPORTED_VERSIONS:
        raise ConfigurationError(f"Unsupported expression version: {version!r}")

    if kind == "transform":
        steps = expression.get("steps")
        if not isinstance(steps, list) or not steps:
            raise ConfigurationError("Transform expression needs a non-empty steps list")
        for step in steps:
            op_name = step.get("op") if isinstance(step, dict) else None
            if op_name not in STEP_OPS and op_name != "default":
                raise ConfigurationError(f"Unknown transform step: {op_name!r}")
            if op_name == "regex_replace":
                _compile(step.get("pattern", ""))
    else:
        _check_condition(expression.get("condition"))
    return expression


def _check_condition(condition: Any) -> None:
    if not isinstance(condition, dict):
        raise ConfigurationError("Validate expression needs a condition object")
    if "logic" in condition and "conditions" in condition:
        for child in condition["conditions"]:
            _check_condition(child)
        return
    op_name = condition.get("operator", "equals")
    if op_name not in OPERATORS:
        raise ConfigurationError(f"Unknown operator: {op_name!r}")
    if op_name == "matches":
        _compile(condition.get("value", ""))


def _compile(pattern: Any) -> None:
    try:
        re.compile(str(pattern))
    except re.error as exc:
        raise ConfigurationError(f"Invalid pattern {pattern!r}: {exc}") from exc


def run_transform(expression: dict, value: Any) -> Any:
    for step in expression["steps"]:
        op_name = step["op"]
        if op_name == "default":
            if value is None or str(value).strip() == "":
                value = step.get("value")
            continue
        if value is None:
            continue
        value = STEP_OPS[op_name](str(value), step)
    return value


def evaluate(condition: dict, value: Any, row: Mapping[str, Any]) -> bool:
    if not condition:
        return True

    if "logic" in condition and "conditions" in condition:
        results = [evaluate(c, value, row) for c in condition["conditions"]]
        if condition["logic"] == "or":
            return any(results)
        return all(results)

    field_name = condition.get("field", "value")
    actual = value if field_name == "value" else row.get(field_name)
    expected = condition.get("value", "")
    op_func = OPERATORS[condition.get("operator", "equals")]
    try:
        return bool(op_func(actual, expected))
    except (TypeError, ValueError):
        return False


def run_validation(expression: dict, value: Any, row: Mapping[str, Any]) -> tuple[bool, str | None]:
    if evaluate(expression["condition"], value, row):
        return True, None
    return False, expression.get("message") or "Custom validation failed"
