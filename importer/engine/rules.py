"""Rule engine: per-field transforms and validators in display order."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Iterable, Mapping

from ..errors import ConfigurationError, RuleExecutionError
from . import expressions
from .rule_ops import FIELD_TRANSFORMS, TRANSFORMS, VALIDATORS

if TYPE_CHECKING:
    from ..models.rule import AccountRule

logger = logging.getLogger(__name__)

CUSTOM = "custom"
WILDCARD = "*"


@dataclass(frozen=True)
class ValidationOutcome:
    valid: bool
    message: str | None = None
    rule_id: str | None = None


@dataclass(frozen=True)
class Rule:
    rule_id: str
    kind: str  # transform/validate
    op: str  # built-in operation name, or "custom"
    target_fields: tuple[str, ...] = ()
    params: dict = field(default_factory=dict)
    display_order: int = 0
    enabled: bool = True
    name: str = ""

    def applies_to(self, field_name: str) -> bool:
        return self.enabled and (WILDCARD in self.target_fields or field_name in self.target_fields)

    def transform(self, value: Any, row: Mapping[str, Any], field_name: str = "") -> Any:
        if self.op == CUSTOM:
            return expressions.run_transform(self.params["expression"], value)
        if self.op in FIELD_TRANSFORMS:
            return FIELD_TRANSFORMS[self.op](field_name, value, self.params, row)
        return TRANSFORMS[self.op](value, self.params, row)

    def validate(self, value: Any, row: Mapping[str, Any]) -> ValidationOutcome:
        if self.op == CUSTOM:
            valid, message = expressions.run_validation(self.params["expression"], value, row)
        else:
            valid, message = VALIDATORS[self.op](value, self.params, row)
        return ValidationOutcome(valid=bool(valid), message=message, rule_id=self.rule_id)


def build_rule(
    rule_id: str,
    kind: str,
    target_fields: Iterable[str],
    config: dict | None = None,
    display_order: int = 0,
    enabled: bool = True,
    name: str = "",
) -> Rule:
    """Resolve a rule's operation and check its configuration.

    ``config["op"]`` names a built-in operation; when absent the rule id
    itself is tried. A config with an ``expression`` is a custom rule.
    """
    if kind not in ("transform", "validate"):
        raise ConfigurationError(f"Rule {rule_id!r} has unknown type {kind!r}")
    config = dict(config or {})
    registry = {**TRANSFORMS, **FIELD_TRANSFORMS} if kind == "transform" else VALIDATORS

    if "expression" in config:
        expressions.check_expression(config["expression"], kind)
        op = CUSTOM
    else:
        op = config.pop("op", None) or rule_id
        if op not in registry:
            raise ConfigurationError(f"Rule {rule_id!r} references unknown {kind} {op!r}")

    return Rule(
        rule_id=rule_id,
        kind=kind,
        op=op,
        target_fields=tuple(target_fields),
        params=config,
        display_order=display_order,
        enabled=enabled,
        name=name or rule_id,
    )


def compile_rule(account_rule: AccountRule) -> Rule:
    return build_rule(
        account_rule.rule_id,
        account_rule.rule_type,
        account_rule.target_fields or (),
        config=account_rule.config,
        display_order=account_rule.display_order,
        enabled=account_rule.enabled,
        name=account_rule.name,
    )


def _applicable(rules: Iterable[Rule], field_name: str, kind: str | None = None) -> list[Rule]:
    return sorted(
        (r for r in rules if r.applies_to(field_name) and kind in (None, r.kind)),
        key=lambda r: r.display_order,
    )


def _frozen(row: Mapping[str, Any]) -> Mapping[str, Any]:
    return MappingProxyType(dict(row))


def _run(
    rule: Rule, field_name: str, value: Any, view: Mapping[str, Any]
) -> tuple[Any, ValidationOutcome | None]:
    """Run one rule; a transform that raises keeps the value, a validator counts as valid."""
    try:
        if rule.kind == "transform":
            return rule.transform(value, view, field_name), None
        return value, rule.validate(value, view)
    except Exception as exc:
        logger.warning("%s", RuleExecutionError(rule.rule_id, field_name, exc))
        if rule.kind == "transform":
            return value, None
        return value, ValidationOutcome(valid=True, rule_id=rule.rule_id)


def apply_rules(rules: Iterable[Rule], field_name: str, value: Any, row: Mapping[str, Any]) -> Any:
    """Run only the matching transforms, in display order."""
    view = _frozen(row)
    for rule in _applicable(rules, field_name, "transform"):
        value, _ = _run(rule, field_name, value, view)
    return value


def apply_validators(
    rules: Iterable[Rule],
    field_name: str,
    value: Any,
    row: Mapping[str, Any],
) -> list[ValidationOutcome]:
    """Run only the matching validators against ``value``, in display order."""
    view = _frozen(row)
    return [_run(rule, field_name, value, view)[1] for rule in _applicable(rules, field_name, "validate")]


def process_field(
    rules: Iterable[Rule],
    field_name: str,
    value: Any,
    row: Mapping[str, Any],
) -> tuple[Any, list[ValidationOutcome]]:
    """Run the field's rules of both kinds in one display-order pass.

    A transform replaces the value seen by later rules; a validator checks the
    value as it stands at its position.
    """
    view = _frozen(row)
    outcomes = []
    for rule in _applicable(rules, field_name):
        value, outcome = _run(rule, field_name, value, view)
        if outcome is not None:
            outcomes.append(outcome)
    return value, outcomes


@dataclass
class RowRuleResult:
    data: dict
    failures: list[tuple[str, ValidationOutcome]] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.failures

    @property
    def error_message(self) -> str | None:
        if not self.failures:
            return None
        return "; ".join(
            f"{field_name}: {outcome.message or 'invalid'}" for field_name, outcome in self.failures
        )


def process_row(rules: Iterable[Rule], row: Mapping[str, Any]) -> RowRuleResult:
    """Run the rules for every field of a row.

    Each field sees the row as it stands after earlier fields were processed;
    only the field itself is written back.
    """
    rules = list(rules)
    data = dict(row)
    result = RowRuleResult(data=data)
    for field_name in list(data):
        value, outcomes = process_field(rules, field_name, data[field_name], data)
        data[field_name] = value
        result.failures.extend((field_name, o) for o in outcomes if not o.valid)
    return result
