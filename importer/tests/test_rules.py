"""Tests for the rule engine, built-in operations and the rule store."""

from __future__ import annotations

import uuid

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from importer.config import settings
from importer.engine import rule_ops
from importer.engine.rules import (
    Rule,
    apply_rules,
    apply_validators,
    build_rule,
    process_field,
    process_row,
)
from importer.errors import ConfigurationError
from importer.services import rule_svc

ACCOUNT = uuid.UUID("00000000-0000-0000-0000-0000000000bb")


def uppercase_rule(order: int) -> Rule:
    return build_rule(
        "upper-code",
        "transform",
        ["code"],
        config={"expression": {"version": 1, "steps": [{"op": "upper"}]}},
        display_order=order,
    )


def uppercase_only_rule(order: int) -> Rule:
    return build_rule(
        "code-is-upper",
        "validate",
        ["code"],
        config={
            "expression": {
                "condition": {"field": "value", "operator": "matches", "value": "^[A-Z]+$"},
                "message": "Code must be uppercase",
            }
        },
        display_order=order,
    )


def test_validator_before_transform_sees_the_raw_value():
    rules = [uppercase_only_rule(1), uppercase_rule(2)]
    value, outcomes = process_field(rules, "code", "abc", {"code": "abc"})
    assert value == "ABC"
    assert [(o.valid, o.message) for o in outcomes] == [(False, "Code must be uppercase")]


def test_validator_after_transform_sees_the_new_value():
    rules = [uppercase_only_rule(2), uppercase_rule(1)]
    value, outcomes = process_field(rules, "code", "abc", {"code": "abc"})
    assert value == "ABC"
    assert [o.valid for o in outcomes] == [True]


def test_reversing_rule_order_flips_the_row_result():
    passing = process_row([uppercase_rule(1), uppercase_only_rule(2)], {"code": "abc"})
    failing = process_row([uppercase_rule(2), uppercase_only_rule(1)], {"code": "abc"})
    assert passing.valid
    assert not failing.valid
    assert failing.error_message == "code: Code must be uppercase"


def test_single_kind_passes_follow_display_order():
    rules = [uppercase_only_rule(1), uppercase_rule(2)]
    assert apply_rules(rules, "code", "abc", {}) == "ABC"
    assert [o.valid for o in apply_validators(rules, "code", "abc", {})] == [False]
    assert [o.valid for o in apply_validators(rules, "code", "ABC", {})] == [True]


def test_transforms_apply_in_display_order():
    suffix = build_rule(
        "add-suffix", "transform", ["code"],
        config={"expression": {"steps": [{"op": "suffix", "value": "-x"}]}},
        display_order=5,
    )
    rules = [suffix, uppercase_rule(1)]
    value, _ = process_field(rules, "code", "abc", {})
    assert value == "ABC-x"


def test_failing_rule_is_skipped_and_logged(caplog):
    def explode(value, params, row):
        raise RuntimeError("kaboom")

    boom = Rule(rule_id="boom", kind="transform", op="boom", target_fields=("code",), display_order=0)
    rule_ops.TRANSFORMS["boom"] = explode
    try:
        with caplog.at_level("WARNING"):
            value, outcomes = process_field([boom, uppercase_rule(1)], "code", "abc", {})
    finally:
        del rule_ops.TRANSFORMS["boom"]

    assert value == "ABC"
    assert outcomes == []
    assert "kaboom" in caplog.text


def test_failing_validator_counts_as_valid():
    def explode(value, params, row):
        raise ValueError("bad regex")

    rule = Rule(rule_id="broken-check", kind="validate", op="broken", target_fields=("code",))
    rule_ops.VALIDATORS["broken"] = explode
    try:
        _, outcomes = process_field([rule], "code", "abc", {})
    finally:
        del rule_ops.VALIDATORS["broken"]

    assert outcomes[0].valid
    assert outcomes[0].rule_id == "broken-check"


def test_rule_failing_on_one_field_leaves_other_fields_processed(caplog):
    def explode(value, params, row):
        raise RuntimeError("kaboom")

    boom = Rule(rule_id="boom", kind="transform", op="boom", target_fields=("state",), display_order=0)
    state = build_rule("state-normalization", "transform", ["state"], display_order=10)
    phone = build_rule("phone-normalization", "transform", ["phone"], display_order=30)
    email = build_rule("email-validation", "validate", ["email"], display_order=20)
    rule_ops.TRANSFORMS["boom"] = explode
    try:
        with caplog.at_level("WARNING"):
            result = process_row(
                [boom, state, phone, email],
                {"state": "ca", "phone": "555.123.4567", "email": "nope"},
            )
    finally:
        del rule_ops.TRANSFORMS["boom"]

    assert result.data == {"state": "California", "phone": "(555) 123-4567", "email": "nope"}
    assert result.error_message == "email: Invalid email format: nope"
    assert "kaboom" in caplog.text


def test_rules_cannot_mutate_the_row():
    def sneaky(value, params, row):
        row["other"] = "changed"
        return value

    rule = Rule(rule_id="sneaky", kind="transform", op="sneaky", target_fields=("*",))
    rule_ops.TRANSFORMS["sneaky"] = sneaky
    try:
        result = process_row([rule], {"code": "abc", "other": "original"})
    finally:
        del rule_ops.TRANSFORMS["sneaky"]

    assert result.data["other"] == "original"


def test_wildcard_and_disabled_rules():
    trim = build_rule("whitespace-cleanup", "transform", ["*"])
    disabled = build_rule("name-capitalization", "transform", ["firstname"], enabled=False)
    result = process_row([trim, disabled], {"firstname": "  ada   lovelace ", "city": " Boston "})
    assert result.data == {"firstname": "ada lovelace", "city": "Boston"}


def test_row_error_message_lists_failures():
    email = build_rule("email-validation", "validate", ["email"])
    required = build_rule("need-phone", "validate", ["phone"], config={"op": "required-value"})
    result = process_row([email, required], {"email": "x@mailinator.com", "phone": ""})
    assert not result.valid
    assert result.error_message == (
        "email: Disposable email domain: mailinator.com; phone: Value is required"
    )


def test_build_rule_rejects_unknown_operations():
    with pytest.raises(ConfigurationError):
        build_rule("no-such-rule", "transform", ["x"])
    with pytest.raises(ConfigurationError):
        build_rule("x", "sometimes", ["x"])
    with pytest.raises(ConfigurationError):
        build_rule("x", "transform", ["x"], config={"expression": {"version": 2, "steps": [{"op": "trim"}]}})
    with pytest.raises(ConfigurationError):
        build_rule("x", "validate", ["x"], config={"expression": {"condition": {"operator": "sounds_like"}}})


@pytest.mark.parametrize(
    "kind, expression",
    [
        ("validate", {"condition": {"field": "value", "operator": "matches", "value": "([a-z"}}),
        (
            "validate",
            {"condition": {"logic": "and", "conditions": [{"operator": "matches", "value": "a{2,1}"}]}},
        ),
        ("transform", {"steps": [{"op": "regex_replace", "pattern": "*oops", "repl": ""}]}),
    ],
)
def test_build_rule_rejects_bad_patterns(kind, expression):
    with pytest.raises(ConfigurationError, match="Invalid pattern"):
        build_rule("bad-pattern", kind, ["code"], config={"expression": expression})


def test_custom_transform_default_and_map():
    rule = build_rule(
        "country", "transform", ["country"],
        config={
            "expression": {
                "steps": [
                    {"op": "default", "value": "us"},
                    {"op": "map", "values": {"US": "United States"}},
                ]
            }
        },
    )
    assert process_field([rule], "country", "", {})[0] == "United States"
    assert process_field([rule], "country", "Canada", {})[0] == "Canada"


def test_custom_validator_reads_other_fields():
    rule = build_rule(
        "zip-when-us", "validate", ["zip"],
        config={
            "expression": {
                "condition": {
                    "logic": "or",
                    "conditions": [
                        {"field": "country", "operator": "not_equals", "value": "US"},
                        {"field": "value", "operator": "matches", "value": r"^\d{5}$"},
                    ],
                },
            }
        },
    )
    assert process_field([rule], "zip", "0213", {"country": "US"})[1][0].message == "Custom validation failed"
    assert process_field([rule], "zip", "0213", {"country": "CA"})[1][0].valid


# ── Built-in operations ─────────────────────────────────────────────────


@pytest.mark.parametrize(
    "raw, expected",
    [("ca", "California"), ("NEW YORK", "New York"), ("Califronia", "California"), ("Narnia", "Narnia")],
)
def test_state_normalization(raw, expected):
    assert rule_ops.state_normalization(raw, {}, {}) == expected


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("555.123.4567", "(555) 123-4567"),
        ("1-555-123-4567", "(555) 123-4567"),
        ("+44 20 7946 0958", "+442079460958"),
        ("12345", "12345"),
    ],
)
def test_phone_normalization(raw, expected):
    assert rule_ops.phone_normalization(raw, {}, {}) == expected


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("mcdonald", "McDonald"),
        ("o'brien", "O'Brien"),
        ("ludwig VAN beethoven", "Ludwig van Beethoven"),
        ("mary-jane watson jr", "Mary-Jane Watson Jr."),
    ],
)
def test_name_capitalization(raw, expected):
    assert rule_ops.name_capitalization(raw, {}, {}) == expected


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("acme inc", "Acme Inc."),
        ("ACME WIDGETS LLC", "Acme Widgets LLC"),
        ("bank of america corporation", "Bank of America Corp."),
        ("ibm", "IBM"),
    ],
)
def test_company_normalization(raw, expected):
    assert rule_ops.company_normalization(raw, {}, {}) == expected


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("2024-3-5", "2024-03-05"),
        ("03/05/2024", "2024-03-05"),
        ("3/5/99", "1999-03-05"),
        ("25.12.2023", "2023-12-25"),
        ("March 5, 2024", "2024-03-05"),
        ("5 March 2024", "2024-03-05"),
        ("20240305", "2024-03-05"),
        ("not a date", "not a date"),
        ("02/30/2024", "02/30/2024"),
    ],
)
def test_date_normalization(raw, expected):
    assert rule_ops.date_normalization(raw, {}, {}) == expected


def test_yes_no_normalization():
    assert rule_ops.yes_no_normalization("Y", {}, {}) == "Yes"
    assert rule_ops.yes_no_normalization("false", {}, {}) == "No"
    assert rule_ops.yes_no_normalization("maybe", {}, {}) == "maybe"


@pytest.mark.parametrize(
    "op, raw, expected",
    [
        ("whitespace-validation", "y", "Yes"),
        ("whitespace-validation", "FALSE", "No"),
        ("whitespace-validation", "Yes", "Yes"),
        ("whitespace-validation", "maybe", ""),
        ("new-business-validation", "1", "Yes"),
        ("new-business-validation", "n", "No"),
        ("new-business-validation", "", ""),
        ("new-business-validation", "unsure", ""),
    ],
)
def test_yes_no_columns_are_strict(op, raw, expected):
    assert rule_ops.TRANSFORMS[op](raw, {}, {}) == expected


@pytest.mark.parametrize(
    "op, raw, expected",
    [
        ("role-normalization", "Dean", "Dean"),
        ("role-normalization", "teas student", "TEAS Student"),
        ("role-normalization", "lms ADMIN", "LMS Admin"),
        ("role-normalization", "Janitor", "Other"),
        ("role-normalization", "", ""),
        ("program-type-normalization", "bsn - online", "BSN - Online"),
        ("program-type-normalization", "rn to bsn", "RN to BSN"),
        ("program-type-normalization", "Underwater Basketry", "Other"),
        ("solution-normalization", "supreme", "SUPREME"),
        ("solution-normalization", "Mid-Market", "MID-MARKET"),
        ("solution-normalization", "Platinum", "Platinum"),
    ],
)
def test_allowed_list_normalization(op, raw, expected):
    assert rule_ops.TRANSFORMS[op](raw, {}, {}) == expected


@pytest.mark.parametrize(
    "full_name, first, last",
    [
        ("Ada Lovelace", "Ada", "Lovelace"),
        ("Grace Brewster Hopper", "Grace", "Hopper"),
        ("Martin Luther King Jr.", "Martin", "Jr."),
        ("Sammy Davis Jr.", "Sammy", "Davis Jr."),
        ("Cher", "Cher", ""),
    ],
)
def test_full_name_splitter_fills_empty_names(full_name, first, last):
    rule = build_rule("full-name-splitter", "transform", ["firstname", "lastname"])
    result = process_row([rule], {"Full Name": full_name, "firstname": "", "lastname": ""})
    assert (result.data["firstname"], result.data["lastname"]) == (first, last)


def test_full_name_splitter_keeps_existing_names():
    rule = build_rule("full-name-splitter", "transform", ["firstname", "lastname"])
    result = process_row([rule], {"contact_name": "Ada Lovelace", "firstname": "Augusta", "lastname": None})
    assert result.data == {"contact_name": "Ada Lovelace", "firstname": "Augusta", "lastname": "Lovelace"}

    untouched = process_row([rule], {"firstname": "", "lastname": ""})
    assert untouched.data == {"firstname": "", "lastname": ""}


def test_full_name_splitter_runs_before_name_capitalization():
    rules = rule_svc.default_rules()
    result = process_row(rules, {"name": "ada  lovelace", "firstname": "", "lastname": ""})
    assert (result.data["firstname"], result.data["lastname"]) == ("Ada", "Lovelace")


def test_email_validation_messages():
    assert rule_ops.email_validation("ok@example.com", {}, {}) == (True, None)
    assert rule_ops.email_validation("", {}, {}) == (True, None)
    assert rule_ops.email_validation("nope", {}, {}) == (False, "Invalid email format: nope")
    assert rule_ops.email_validation("a@corp.test", {"blocked_domains": ["corp.test"]}, {}) == (
        False, "Disposable email domain: corp.test",
    )


# ── Rule store ──────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_account_without_rules_uses_builtin_set(db: AsyncSession):
    rules = await rule_svc.load_account_rules(db, ACCOUNT)
    assert [r.rule_id for r in rules] == [spec["rule_id"] for spec in rule_svc.DEFAULT_RULES]


@pytest.mark.asyncio
async def test_account_falls_back_to_default_account_rules(db: AsyncSession):
    await rule_svc.create_rule(
        db, settings.default_account_id, rule_id="email-validation", name="Email",
        rule_type="validate", target_fields=["email"],
    )
    rules = await rule_svc.load_account_rules(db, ACCOUNT)
    assert [r.rule_id for r in rules] == ["email-validation"]


@pytest.mark.asyncio
async def test_seed_copies_rules_once(db: AsyncSession):
    added = await rule_svc.seed_account_rules(db, ACCOUNT)
    assert added == len(rule_svc.DEFAULT_RULES)
    assert await rule_svc.seed_account_rules(db, ACCOUNT) == 0

    stored = await rule_svc.list_rules(db, ACCOUNT)
    assert stored[0].rule_id == "whitespace-cleanup"


@pytest.mark.asyncio
async def test_update_rule_disables_it(db: AsyncSession):
    await rule_svc.seed_account_rules(db, ACCOUNT)
    updated = await rule_svc.update_rule(db, ACCOUNT, "name-capitalization", enabled=False)
    assert updated.enabled is False

    rules = await rule_svc.load_account_rules(db, ACCOUNT)
    result = process_row(rules, {"firstname": "ada"})
    assert result.data["firstname"] == "ada"


@pytest.mark.asyncio
async def test_invalid_stored_rule_is_skipped(db: AsyncSession):
    from importer.models.rule import AccountRule

    db.add(AccountRule(account_id=ACCOUNT, rule_id="ghost", name="Ghost", rule_type="transform", target_fields=["x"]))
    await db.commit()
    await rule_svc.create_rule(
        db, ACCOUNT, rule_id="state-normalization", name="State",
        rule_type="transform", target_fields=["state"],
    )

    rules = await rule_svc.load_account_rules(db, ACCOUNT)
    assert [r.rule_id for r in rules] == ["state-normalization"]


@pytest.mark.asyncio
async def test_create_rule_validates_config(db: AsyncSession):
    with pytest.raises(ConfigurationError):
        await rule_svc.create_rule(
            db, ACCOUNT, rule_id="mystery", name="Mystery", rule_type="transform", target_fields=["x"],
        )
    assert await rule_svc.list_rules(db, ACCOUNT) == []
