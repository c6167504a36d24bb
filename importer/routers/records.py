"""Deduplicated CRM record API."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..dependencies import get_account_id
from ..models.record import OBJECT_TYPES
from ..schemas.pipeline import RecordUpsert
from ..services import record_store

router = APIRouter(prefix="/api/records")

PROPERTY_SETS = {
    "contacts": record_store.CONTACT_PROPERTIES,
    "companies": record_store.COMPANY_PROPERTIES,
    "deals": record_store.DEAL_PROPERTIES,
}


def _record_dict(r) -> dict:
    return {
        "id": str(r.id),
        "object_type": r.object_type,
        "properties": r.properties,
        "dedup_key": r.dedup_key,
        "external_id": r.external_id,
        "upload_session_id": str(r.upload_session_id) if r.upload_session_id else None,
        "synced_at": r.synced_at.isoformat() if r.synced_at else None,
        "expires_at": r.expires_at.isoformat() if r.expires_at else None,
    }


@router.get("")
async def list_records(
    object_type: str | None = None,
    limit: int = 100,
    offset: int = 0,
    db: AsyncSession = Depends(get_db),
    account_id: uuid.UUID = Depends(get_account_id),
):
    if object_type and object_type not in OBJECT_TYPES:
        raise HTTPException(status_code=400, detail=f"Unknown object type: {object_type}")
    records = await record_store.list_records(
        db, account_id, object_type=object_type, limit=min(limit, 500), offset=offset
    )
    return [_record_dict(r) for r in records]


@router.get("/properties")
async def list_properties():
    return {name: list(props) for name, props in PROPERTY_SETS.items()}


@router.post("/upsert")
async def upsert_record(
    data: RecordUpsert,
    db: AsyncSession = Depends(get_db),
    account_id: uuid.UUID = Depends(get_account_id),
):
    if data.object_type not in OBJECT_TYPES:
        raise HTTPException(status_code=400, detail=f"Unknown object type: {data.object_type}")
    result = await record_store.upsert_record(
        db, account_id, data.object_type, data.properties, external_id=data.external_id
    )
    return {"id": str(result.id), "action": result.action}
