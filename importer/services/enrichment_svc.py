"""Enrichment config and AI model store."""

from __future__ import annotations

import json
import logging
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..engine.enrichment import EnrichmentStep
from ..engine.targets import parse_output_target
from ..errors import ConfigurationError
from ..models.enrichment import AIModel, EnrichmentConfig
from ..models.session import UploadSession

logger = logging.getLogger(__name__)

DEFAULT_INPUT_FIELDS = ["email", "city", "state", "institution"]

DEFAULT_CONFIGS: list[dict] = [
    {
        "name": "Find Official Company Name",
        "description": "Search for the official company or institution name",
        "prompt_template": (
            "Given a user's email address [email], city [city], state [state] and "
            "institution [institution], find the official company name"
        ),
        "input_fields": DEFAULT_INPUT_FIELDS,
        "output_field": "official_company_name",
        "service": "search-api",
        "execution_order": 0,
    },
    {
        "name": "Find Company Domain",
        "description": "Search for the company or institution website domain",
        "prompt_template": (
            "Given a user's email address [email], city [city], state [state] and "
            "institution [institution], find the company domain"
        ),
        "input_fields": DEFAULT_INPUT_FIELDS,
        "output_field": "domain",
        "service": "search-api",
        "execution_order": 1,
    },
]


async def create_model(
    db: AsyncSession,
    name: str,
    provider: str,
    model_id: str,
    api_key: str | None = None,
    use_env_key: bool = False,
    env_key_name: str | None = None,
    base_url: str | None = None,
) -> AIModel:
    model = AIModel(
        name=name,
        provider=provider,
        model_id=model_id,
        api_key=api_key,
        use_env_key=use_env_key,
        env_key_name=env_key_name,
        base_url=base_url,
    )
    db.add(model)
    await db.commit()
    await db.refresh(model)
    return model


def _serialize_output(output_field) -> str:
    if isinstance(output_field, list):
        return json.dumps(output_field)
    return str(output_field)


async def create_config(
    db: AsyncSession,
    account_id: uuid.UUID,
    name: str,
    output_field: str | list,
    input_fields: list[str] | None = None,
    service: str = "ai-model",
    ai_model_id: uuid.UUID | None = None,
    prompt_template: str | None = None,
    description: str | None = None,
    is_enabled: bool = True,
    execution_order: int = 0,
) -> EnrichmentConfig:
    stored_output = _serialize_output(output_field)
    parse_output_target(stored_output)
    config = EnrichmentConfig(
        account_id=account_id,
        name=name,
        description=description,
        service=service,
        ai_model_id=ai_model_id,
        input_fields=list(input_fields or []),
        output_field=stored_output,
        prompt_template=prompt_template,
        is_enabled=is_enabled,
        execution_order=execution_order,
    )
    db.add(config)
    await db.commit()
    await db.refresh(config)
    return config


async def list_configs(db: AsyncSession, account_id: uuid.UUID) -> list[EnrichmentConfig]:
    stmt = (
        select(EnrichmentConfig)
        .where(EnrichmentConfig.account_id == account_id)
        .order_by(EnrichmentConfig.execution_order.asc())
    )
    result = await db.execute(stmt)
    return list(result.scalars().unique().all())


async def seed_default_configs(db: AsyncSession, account_id: uuid.UUID) -> list[EnrichmentConfig]:
    existing = {c.name for c in await list_configs(db, account_id)}
    created = []
    for spec in DEFAULT_CONFIGS:
        if spec["name"] in existing:
            continue
        created.append(await create_config(db, account_id, **spec))
    return created


async def load_session_steps(db: AsyncSession, session: UploadSession) -> list[EnrichmentStep]:
    """Enabled steps selected for a session, in execution order.

    Configs with an unusable output declaration are skipped with a warning.
    """
    ids = []
    for raw_id in session.enrichment_config_ids or []:
        try:
            ids.append(uuid.UUID(str(raw_id)))
        except ValueError:
            logger.warning("Ignoring malformed enrichment config id %r", raw_id)
    if not ids:
        return []

    stmt = (
        select(EnrichmentConfig)
        .where(EnrichmentConfig.id.in_(ids), EnrichmentConfig.is_enabled.is_(True))
        .order_by(EnrichmentConfig.execution_order.asc())
        .execution_options(populate_existing=True)
    )
    configs = list((await db.execute(stmt)).scalars().unique().all())

    steps = []
    for config in configs:
        try:
            steps.append(EnrichmentStep.from_config(config))
        except ConfigurationError as exc:
            logger.warning("Skipping enrichment config %s: %s", config.id, exc)
    return steps
