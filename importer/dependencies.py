"""Request-scoped dependencies shared by the API routers."""

from __future__ import annotations

import uuid

from fastapi import HTTPException, Request

from .config import settings
from .engine.enrichment import EnrichmentExecutor
from .engine.pipeline import build_executor
from .services.crm_sync import CrmSyncTarget, build_sync_target


def get_account_id(request: Request) -> uuid.UUID:
    """Account from the ``x-account-id`` header, else the default account."""
    raw = request.headers.get("x-account-id", "").strip()
    if not raw:
        return settings.default_account_id
    try:
        return uuid.UUID(raw)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid x-account-id header")


def get_executor() -> EnrichmentExecutor:
    return build_executor()


def get_sync_target() -> CrmSyncTarget:
    return build_sync_target()
