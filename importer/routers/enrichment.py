"""Enrichment config and AI model API."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..dependencies import get_account_id
from ..schemas.pipeline import AIModelCreate, EnrichmentConfigCreate
from ..services import enrichment_svc

router = APIRouter(prefix="/api/enrichment")


def _config_dict(c) -> dict:
    return {
        "id": str(c.id),
        "name": c.name,
        "description": c.description,
        "service": c.service,
        "ai_model_id": str(c.ai_model_id) if c.ai_model_id else None,
        "input_fields": c.input_fields,
        "output_field": c.output_field,
        "prompt_template": c.prompt_template,
        "is_enabled": c.is_enabled,
        "execution_order": c.execution_order,
    }


@router.get("/configs")
async def list_configs(
    db: AsyncSession = Depends(get_db),
    account_id: uuid.UUID = Depends(get_account_id),
):
    return [_config_dict(c) for c in await enrichment_svc.list_configs(db, account_id)]


@router.post("/configs", status_code=201)
async def create_config(
    data: EnrichmentConfigCreate,
    db: AsyncSession = Depends(get_db),
    account_id: uuid.UUID = Depends(get_account_id),
):
    config = await enrichment_svc.create_config(db, account_id, **data.model_dump())
    return _config_dict(config)


@router.post("/configs/seed")
async def seed_configs(
    db: AsyncSession = Depends(get_db),
    account_id: uuid.UUID = Depends(get_account_id),
):
    created = await enrichment_svc.seed_default_configs(db, account_id)
    return [_config_dict(c) for c in created]


@router.post("/models", status_code=201)
async def create_model(data: AIModelCreate, db: AsyncSession = Depends(get_db)):
    model = await enrichment_svc.create_model(db, **data.model_dump())
    return {
        "id": str(model.id),
        "name": model.name,
        "provider": model.provider,
        "model_id": model.model_id,
        "use_env_key": model.use_env_key,
        "env_key_name": model.env_key_name,
        "base_url": model.base_url,
        "has_api_key": bool(model.api_key),
    }
