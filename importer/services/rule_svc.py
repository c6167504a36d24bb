"""Account rule store: listing, seeding and compiling rules."""

from __future__ import annotations

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..engine.rules import Rule, build_rule, compile_rule
from ..errors import ConfigurationError
from ..models.rule import AccountRule

logger = logging.getLogger(__name__)


DEFAULT_RULES: list[dict] = [
    {
        "rule_id": "whitespace-cleanup",
        "name": "Whitespace Cleanup",
        "description": "Collapses repeated spaces and trims every field",
        "rule_type": "transform",
        "target_fields": ["*"],
        "display_order": 1,
    },
    {
        "rule_id": "full-name-splitter",
        "name": "Full Name Splitter",
        "description": "Fills empty first and last names from a full-name column",
        "rule_type": "transform",
        "target_fields": ["firstname", "lastname"],
        "display_order": 5,
    },
    {
        "rule_id": "state-normalization",
        "name": "State Normalization",
        "description": "Expands state abbreviations and fixes common misspellings",
        "rule_type": "transform",
        "target_fields": ["state"],
        "display_order": 10,
    },
    {
        "rule_id": "whitespace-validation",
        "name": "Whitespace Validation",
        "description": "Keeps Whitespace to Yes, No or blank; corrects y/n, true/false and 1/0",
        "rule_type": "transform",
        "target_fields": ["whitespace"],
        "display_order": 12,
    },
    {
        "rule_id": "new-business-validation",
        "name": "New Business Validation",
        "description": "Keeps New Business to Yes, No or blank; corrects y/n, true/false and 1/0",
        "rule_type": "transform",
        "target_fields": ["new_business"],
        "display_order": 13,
    },
    {
        "rule_id": "role-normalization",
        "name": "Role Normalization",
        "description": "Fixes role casing; roles outside the allowed list become Other",
        "rule_type": "transform",
        "target_fields": ["role"],
        "display_order": 15,
    },
    {
        "rule_id": "program-type-normalization",
        "name": "Program Type Normalization",
        "description": "Fixes program type casing; unknown program types become Other",
        "rule_type": "transform",
        "target_fields": ["program_type"],
        "display_order": 16,
    },
    {
        "rule_id": "solution-normalization",
        "name": "Solution Normalization",
        "description": "Fixes the casing of known solution values",
        "rule_type": "transform",
        "target_fields": ["solution"],
        "display_order": 17,
    },
    {
        "rule_id": "email-validation",
        "name": "Email Validation",
        "description": "Rejects malformed addresses and disposable domains",
        "rule_type": "validate",
        "target_fields": ["email"],
        "display_order": 20,
    },
    {
        "rule_id": "phone-normalization",
        "name": "Phone Number Normalization",
        "description": "Formats 10-digit numbers as (XXX) XXX-XXXX",
        "rule_type": "transform",
        "target_fields": ["phone"],
        "display_order": 30,
    },
    {
        "rule_id": "date-normalization",
        "name": "Date Normalization",
        "description": "Rewrites common date formats as YYYY-MM-DD",
        "rule_type": "transform",
        "target_fields": ["date_of_birth", "closedate", "createdate"],
        "display_order": 35,
    },
    {
        "rule_id": "name-capitalization",
        "name": "Name Capitalization",
        "description": "Capitalizes names, handling Mc, Mac and O' prefixes",
        "rule_type": "transform",
        "target_fields": ["firstname", "lastname"],
        "display_order": 50,
    },
    {
        "rule_id": "company-normalization",
        "name": "Company Name Normalization",
        "description": "Standardizes suffixes such as Inc., LLC and Ltd.",
        "rule_type": "transform",
        "target_fields": ["company"],
        "display_order": 60,
    },
]


def default_rules() -> list[Rule]:
    return [
        build_rule(
            spec["rule_id"],
            spec["rule_type"],
            spec["target_fields"],
            config=spec.get("config"),
            display_order=spec["display_order"],
            name=spec["name"],
        )
        for spec in DEFAULT_RULES
    ]


async def list_rules(db: AsyncSession, account_id: uuid.UUID) -> list[AccountRule]:
    stmt = (
        select(AccountRule)
        .where(AccountRule.account_id == account_id)
        .order_by(AccountRule.display_order.asc(), AccountRule.rule_id.asc())
        .execution_options(populate_existing=True)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_rule(db: AsyncSession, account_id: uuid.UUID, rule_id: str) -> AccountRule | None:
    stmt = select(AccountRule).where(
        AccountRule.account_id == account_id,
        AccountRule.rule_id == rule_id,
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def create_rule(
    db: AsyncSession,
    account_id: uuid.UUID,
    rule_id: str,
    name: str,
    rule_type: str,
    target_fields: list[str],
    config: dict | None = None,
    description: str | None = None,
    display_order: int = 0,
    enabled: bool = True,
) -> AccountRule:
    # Fail on a bad op or expression before anything is stored
    build_rule(rule_id, rule_type, target_fields, config=config)
    rule = AccountRule(
        account_id=account_id,
        rule_id=rule_id,
        name=name,
        description=description,
        rule_type=rule_type,
        target_fields=list(target_fields),
        config=config,
        display_order=display_order,
        enabled=enabled,
    )
    db.add(rule)
    await db.commit()
    await db.refresh(rule)
    return rule


async def update_rule(
    db: AsyncSession, account_id: uuid.UUID, rule_id: str, **kwargs
) -> AccountRule | None:
    rule = await get_rule(db, account_id, rule_id)
    if not rule:
        return None
    for key, value in kwargs.items():
        if hasattr(rule, key) and key not in ("id", "account_id", "rule_id"):
            setattr(rule, key, value)
    build_rule(rule.rule_id, rule.rule_type, rule.target_fields or (), config=rule.config)
    await db.commit()
    await db.refresh(rule)
    return rule


async def seed_account_rules(
    db: AsyncSession,
    account_id: uuid.UUID,
    source_account_id: uuid.UUID | None = None,
) -> int:
    """Copy the source account's rules (or the built-in set) into an account.

    Rules the account already has are left alone. Returns the number added.
    """
    source_account_id = source_account_id or settings.default_account_id
    existing = {rule.rule_id for rule in await list_rules(db, account_id)}

    if source_account_id != account_id:
        source = [
            {
                "rule_id": r.rule_id,
                "name": r.name,
                "description": r.description,
                "rule_type": r.rule_type,
                "target_fields": list(r.target_fields or []),
                "config": r.config,
                "display_order": r.display_order,
                "enabled": r.enabled,
            }
            for r in await list_rules(db, source_account_id)
        ]
    else:
        source = []
    if not source:
        source = DEFAULT_RULES

    added = 0
    for spec in source:
        if spec["rule_id"] in existing:
            continue
        db.add(
            AccountRule(
                account_id=account_id,
                rule_id=spec["rule_id"],
                name=spec["name"],
                description=spec.get("description"),
                rule_type=spec["rule_type"],
                target_fields=list(spec["target_fields"]),
                config=spec.get("config"),
                display_order=spec.get("display_order", 0),
                enabled=spec.get("enabled", True),
            )
        )
        added += 1
    await db.commit()
    return added


def _compile_all(rows: list[AccountRule]) -> list[Rule]:
    rules = []
    for row in rows:
        try:
            rules.append(compile_rule(row))
        except ConfigurationError as exc:
            logger.warning("Skipping rule %s for account %s: %s", row.rule_id, row.account_id, exc)
    return rules


async def load_account_rules(db: AsyncSession, account_id: uuid.UUID) -> list[Rule]:
    """Compiled rules for an account.

    An account with no rules of its own reads the default account's rules,
    and the built-in set when that is empty too.
    """
    rows = await list_rules(db, account_id)
    if not rows and account_id != settings.default_account_id:
        rows = await list_rules(db, settings.default_account_id)
    if not rows:
        return default_rules()
    return _compile_all(rows)
