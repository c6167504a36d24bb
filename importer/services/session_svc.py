"""Session and row store: creation, batched reads, claims and counters."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Iterable, Sequence

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..models.session import UploadRow, UploadSession


# ── Sessions ──────────────────────────────────────────────────────────────

async def create_session(
    db: AsyncSession,
    account_id: uuid.UUID,
    file_name: str,
    rows: Sequence[dict],
    field_mappings: dict | None = None,
    enrichment_config_ids: list[str] | None = None,
) -> UploadSession:
    """Persist a session together with its rows.

    Rows are flushed in chunks; nothing is committed unless every chunk
    succeeds.
    """
    session = UploadSession(
        account_id=account_id,
        file_name=file_name,
        status="uploaded",
        total_rows=len(rows),
        field_mappings=field_mappings,
        enrichment_config_ids=enrichment_config_ids or [],
        max_retries=settings.max_retries,
    )
    db.add(session)
    try:
        await db.flush()
        chunk = settings.insert_batch_size
        for start in range(0, len(rows), chunk):
            db.add_all(
                UploadRow(
                    session_id=session.id,
                    row_index=start + offset,
                    raw_data=dict(raw),
                    enriched_data={},
                    status="pending",
                )
                for offset, raw in enumerate(rows[start:start + chunk])
            )
            await db.flush()
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    await db.refresh(session)
    return session


async def get_session(db: AsyncSession, session_id: uuid.UUID) -> UploadSession | None:
    stmt = (
        select(UploadSession)
        .where(UploadSession.id == session_id)
        .execution_options(populate_existing=True)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def list_sessions(
    db: AsyncSession,
    account_id: uuid.UUID,
    status: str | None = None,
) -> list[UploadSession]:
    stmt = select(UploadSession).where(UploadSession.account_id == account_id)
    if status:
        stmt = stmt.where(UploadSession.status == status)
    stmt = stmt.order_by(UploadSession.created_at.desc())
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def delete_session(db: AsyncSession, session_id: uuid.UUID) -> bool:
    session = await get_session(db, session_id)
    if not session:
        return False
    await db.execute(delete(UploadRow).where(UploadRow.session_id == session_id))
    await db.delete(session)
    await db.commit()
    return True


async def increment_counters(
    db: AsyncSession,
    session_id: uuid.UUID,
    **deltas: int,
) -> None:
    """Add to session counters in SQL. No commit is performed here."""
    values = {
        name: getattr(UploadSession, name) + amount
        for name, amount in deltas.items()
        if amount
    }
    if not values:
        return
    await db.execute(
        update(UploadSession).where(UploadSession.id == session_id).values(**values)
    )


# ── Rows ──────────────────────────────────────────────────────────────────

async def fetch_row_batch(
    db: AsyncSession,
    session_id: uuid.UUID,
    statuses: Iterable[str],
    after_index: int = -1,
    limit: int | None = None,
) -> list[UploadRow]:
    """Next rows in ``row_index`` order strictly after ``after_index``.

    Rows that leave the status filter mid-run do not shift later batches.
    """
    stmt = (
        select(UploadRow)
        .where(
            UploadRow.session_id == session_id,
            UploadRow.status.in_(tuple(statuses)),
            UploadRow.row_index > after_index,
        )
        .order_by(UploadRow.row_index.asc())
        .limit(limit or settings.batch_size)
        .execution_options(populate_existing=True)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def list_rows(
    db: AsyncSession,
    session_id: uuid.UUID,
    statuses: Iterable[str] | None = None,
) -> list[UploadRow]:
    stmt = select(UploadRow).where(UploadRow.session_id == session_id)
    if statuses is not None:
        stmt = stmt.where(UploadRow.status.in_(tuple(statuses)))
    stmt = stmt.order_by(UploadRow.row_index.asc()).execution_options(populate_existing=True)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def claim_row(
    db: AsyncSession,
    row: UploadRow,
    from_statuses: Iterable[str],
    to_status: str,
) -> bool:
    """Move a row to ``to_status`` only if it is still in ``from_statuses``.

    Returns False when another worker got there first.
    """
    result = await db.execute(
        update(UploadRow)
        .where(UploadRow.id == row.id, UploadRow.status.in_(tuple(from_statuses)))
        .values(status=to_status, error_message=None)
    )
    await db.commit()
    if result.rowcount != 1:
        return False
    row.status = to_status
    row.error_message = None
    return True


async def finish_row(
    db: AsyncSession,
    row: UploadRow,
    status: str,
    error: str | None = None,
    enriched_data: dict | None = None,
    external_contact_id: str | None = None,
    external_company_id: str | None = None,
    **counter_deltas: int,
) -> None:
    """Write a row's outcome and bump session counters in one commit."""
    row.status = status
    row.error_message = error
    if enriched_data is not None:
        row.enriched_data = dict(enriched_data)
    if external_contact_id is not None:
        row.external_contact_id = external_contact_id
    if external_company_id is not None:
        row.external_company_id = external_company_id
    await increment_counters(db, row.session_id, **counter_deltas)
    await db.commit()


async def reset_rows(
    db: AsyncSession,
    session_id: uuid.UUID,
    from_statuses: Iterable[str],
    to_status: str,
) -> int:
    result = await db.execute(
        update(UploadRow)
        .where(UploadRow.session_id == session_id, UploadRow.status.in_(tuple(from_statuses)))
        .values(status=to_status)
    )
    return result.rowcount or 0


async def count_rows(
    db: AsyncSession,
    session_id: uuid.UUID,
    statuses: Iterable[str] | None = None,
) -> int:
    stmt = select(func.count(UploadRow.id)).where(UploadRow.session_id == session_id)
    if statuses is not None:
        stmt = stmt.where(UploadRow.status.in_(tuple(statuses)))
    return (await db.execute(stmt)).scalar_one()


async def row_status_counts(db: AsyncSession, session_id: uuid.UUID) -> dict[str, int]:
    stmt = (
        select(UploadRow.status, func.count(UploadRow.id))
        .where(UploadRow.session_id == session_id)
        .group_by(UploadRow.status)
    )
    result = await db.execute(stmt)
    return {status: count for status, count in result.all()}


async def failed_row_details(
    db: AsyncSession,
    session_id: uuid.UUID,
    limit: int | None = None,
) -> list[dict]:
    stmt = (
        select(UploadRow.id, UploadRow.row_index, UploadRow.error_message, UploadRow.raw_data)
        .where(UploadRow.session_id == session_id, UploadRow.status == "failed")
        .order_by(UploadRow.row_index.asc())
        .limit(limit or settings.failed_row_detail_limit)
    )
    result = await db.execute(stmt)
    return [
        {
            "id": str(row_id),
            "row_index": row_index,
            "error_message": error_message,
            "raw_data": raw_data,
        }
        for row_id, row_index, error_message, raw_data in result.all()
    ]


async def delete_rows(
    db: AsyncSession,
    session_id: uuid.UUID,
    statuses: Iterable[str],
) -> int:
    result = await db.execute(
        delete(UploadRow).where(
            UploadRow.session_id == session_id,
            UploadRow.status.in_(tuple(statuses)),
        )
    )
    return result.rowcount or 0


# ── Retention ─────────────────────────────────────────────────────────────

async def purge_expired_sessions(db: AsyncSession, now: datetime | None = None) -> int:
    """Drop the rows of sessions past retention and mark them expired."""
    now = now or datetime.now(timezone.utc)
    stmt = select(UploadSession).where(
        UploadSession.expires_at < now,
        UploadSession.status.not_in(("expired", "completed")),
    )
    sessions = list((await db.execute(stmt)).scalars().all())
    for session in sessions:
        await db.execute(delete(UploadRow).where(UploadRow.session_id == session.id))
        session.error_message = (
            f"Data purged after {settings.retention_days}-day retention period "
            f"(original status: {session.status})"
        )
        session.status = "expired"
    await db.commit()
    return len(sessions)
