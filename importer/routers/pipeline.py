"""Pipeline API: upload, enrich, sync, session progress, export and purge."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..dependencies import get_account_id, get_executor, get_sync_target
from ..engine.enrichment import EnrichmentExecutor
from ..engine.pipeline import ImportPipeline
from ..schemas.pipeline import (
    EnrichmentResponse,
    SessionAction,
    SyncResponse,
    UploadRequest,
)
from ..models.session import SESSION_STATUSES
from ..services import export_svc, session_svc
from ..services.crm_sync import CrmSyncTarget
from ..worker import run_purge

router = APIRouter(prefix="/api/pipeline")


def _session_summary(s) -> dict:
    return {
        "id": str(s.id),
        "file_name": s.file_name,
        "status": s.status,
        "total_rows": s.total_rows,
        "processed_rows": s.processed_rows,
        "enriched_rows": s.enriched_rows,
        "synced_rows": s.synced_rows,
        "failed_rows": s.failed_rows,
        "error_message": s.error_message,
        "retry_count": s.retry_count,
        "created_at": s.created_at.isoformat() if s.created_at else None,
        "expires_at": s.expires_at.isoformat() if s.expires_at else None,
    }


@router.post("/upload", status_code=201)
async def upload(
    data: UploadRequest,
    db: AsyncSession = Depends(get_db),
    account_id: uuid.UUID = Depends(get_account_id),
):
    if not data.rows:
        raise HTTPException(status_code=400, detail="rows must not be empty")
    session = await session_svc.create_session(
        db,
        account_id=account_id,
        file_name=data.file_name,
        rows=data.rows,
        field_mappings=data.field_mappings,
        enrichment_config_ids=data.enrichment_config_ids,
    )
    return {"session_id": str(session.id), "status": session.status, "total_rows": session.total_rows}


@router.post("/enrich", response_model=EnrichmentResponse)
async def enrich(
    data: SessionAction,
    db: AsyncSession = Depends(get_db),
    executor: EnrichmentExecutor = Depends(get_executor),
):
    pipeline = ImportPipeline(db, executor=executor)
    summary = await pipeline.start_enrichment(data.session_id)
    return EnrichmentResponse(
        session_id=summary.session_id,
        status=summary.status,
        total_processed=summary.total_processed,
        total_enriched=summary.total_enriched,
        total_failed=summary.total_failed,
    )


@router.post("/sync", response_model=SyncResponse)
async def sync(
    data: SessionAction,
    db: AsyncSession = Depends(get_db),
    executor: EnrichmentExecutor = Depends(get_executor),
    target: CrmSyncTarget = Depends(get_sync_target),
):
    pipeline = ImportPipeline(db, executor=executor, sync_target=target)
    summary = await pipeline.start_sync(data.session_id)
    return SyncResponse(
        session_id=summary.session_id,
        status=summary.status,
        total_synced=summary.total_synced,
        total_failed=summary.total_failed,
        error_message=summary.error_message,
    )


@router.get("/sessions")
async def list_sessions(
    status: str | None = None,
    db: AsyncSession = Depends(get_db),
    account_id: uuid.UUID = Depends(get_account_id),
):
    if status and status not in SESSION_STATUSES:
        raise HTTPException(status_code=400, detail=f"Unknown session status: {status}")
    sessions = await session_svc.list_sessions(db, account_id, status=status)
    return [_session_summary(s) for s in sessions]


@router.get("/sessions/{session_id}")
async def get_session(session_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return await ImportPipeline(db).get_progress(session_id)


@router.delete("/sessions/{session_id}")
async def delete_session(session_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    if not await session_svc.delete_session(db, session_id):
        raise HTTPException(status_code=404, detail="Upload session not found")
    return {"deleted": True}


@router.get("/sessions/{session_id}/export")
async def export_session(
    session_id: uuid.UUID,
    filter_name: str = Query("all", alias="filter", pattern="^(all|clean|flagged)$"),
    db: AsyncSession = Depends(get_db),
):
    session = await session_svc.get_session(db, session_id)
    if not session:
        raise HTTPException(status_code=404, detail="Upload session not found")
    records = export_svc.export_records(await session_svc.list_rows(db, session_id), filter_name)
    if not records:
        raise HTTPException(status_code=404, detail="No rows found for this filter")
    file_name = export_svc.export_filename(session.file_name, filter_name)
    return Response(
        content=export_svc.rows_to_csv(records),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{file_name}"'},
    )


@router.post("/purge")
async def purge(db: AsyncSession = Depends(get_db)):
    return await run_purge(db)
