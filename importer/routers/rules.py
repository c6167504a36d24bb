"""Account rule API: list, seed, edit and dry-run rules."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..dependencies import get_account_id
from ..engine.rules import process_row
from ..schemas.pipeline import RuleCreate, RulePreview, RuleUpdate
from ..services import rule_svc

router = APIRouter(prefix="/api/rules")


def _rule_dict(r) -> dict:
    return {
        "rule_id": r.rule_id,
        "name": r.name,
        "description": r.description,
        "rule_type": r.rule_type,
        "target_fields": r.target_fields,
        "config": r.config,
        "display_order": r.display_order,
        "enabled": r.enabled,
    }


@router.get("")
async def list_rules(
    db: AsyncSession = Depends(get_db),
    account_id: uuid.UUID = Depends(get_account_id),
):
    return [_rule_dict(r) for r in await rule_svc.list_rules(db, account_id)]


@router.post("", status_code=201)
async def create_rule(
    data: RuleCreate,
    db: AsyncSession = Depends(get_db),
    account_id: uuid.UUID = Depends(get_account_id),
):
    if await rule_svc.get_rule(db, account_id, data.rule_id):
        raise HTTPException(status_code=409, detail=f"Rule {data.rule_id} already exists")
    rule = await rule_svc.create_rule(db, account_id, **data.model_dump())
    return _rule_dict(rule)


@router.post("/seed")
async def seed_rules(
    db: AsyncSession = Depends(get_db),
    account_id: uuid.UUID = Depends(get_account_id),
):
    added = await rule_svc.seed_account_rules(db, account_id)
    return {"added": added}


@router.patch("/{rule_id}")
async def update_rule(
    rule_id: str,
    data: RuleUpdate,
    db: AsyncSession = Depends(get_db),
    account_id: uuid.UUID = Depends(get_account_id),
):
    rule = await rule_svc.update_rule(db, account_id, rule_id, **data.model_dump(exclude_unset=True))
    if not rule:
        raise HTTPException(status_code=404, detail="Rule not found")
    return _rule_dict(rule)


@router.post("/preview")
async def preview_rules(
    data: RulePreview,
    db: AsyncSession = Depends(get_db),
    account_id: uuid.UUID = Depends(get_account_id),
):
    rules = await rule_svc.load_account_rules(db, account_id)
    result = process_row(rules, data.row)
    return {
        "row": result.data,
        "valid": result.valid,
        "failures": [
            {"field": field_name, "rule_id": outcome.rule_id, "message": outcome.message}
            for field_name, outcome in result.failures
        ],
    }
