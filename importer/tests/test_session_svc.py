"""Tests for the session and row store."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from importer.config import settings
from importer.services import session_svc
from importer.worker import run_purge

ACCOUNT = uuid.UUID("00000000-0000-0000-0000-0000000000ee")


def _rows(n: int) -> list[dict]:
    return [{"email": f"u{i}@example.com"} for i in range(n)]


@pytest.mark.asyncio
async def test_create_session_stores_rows_in_chunks(db: AsyncSession, monkeypatch):
    monkeypatch.setattr(settings, "insert_batch_size", 4)
    session = await session_svc.create_session(db, ACCOUNT, "file.csv", _rows(10))

    assert session.status == "uploaded"
    assert session.total_rows == 10
    assert session.max_retries == settings.max_retries
    rows = await session_svc.list_rows(db, session.id)
    assert [r.row_index for r in rows] == list(range(10))
    assert rows[3].raw_data == {"email": "u3@example.com"}
    assert rows[3].enriched_data == {}


@pytest.mark.asyncio
async def test_keyset_batches_are_not_shifted_by_status_changes(db: AsyncSession):
    session = await session_svc.create_session(db, ACCOUNT, "file.csv", _rows(6))

    first = await session_svc.fetch_row_batch(db, session.id, ("pending",), limit=3)
    for row in first:
        await session_svc.claim_row(db, row, ("pending",), "enriched")
    second = await session_svc.fetch_row_batch(
        db, session.id, ("pending",), after_index=first[-1].row_index, limit=3
    )

    assert [r.row_index for r in first] == [0, 1, 2]
    assert [r.row_index for r in second] == [3, 4, 5]


@pytest.mark.asyncio
async def test_claim_row_only_once(db: AsyncSession):
    session = await session_svc.create_session(db, ACCOUNT, "file.csv", _rows(1))
    row = (await session_svc.list_rows(db, session.id))[0]

    assert await session_svc.claim_row(db, row, ("pending",), "enriching")
    assert not await session_svc.claim_row(db, row, ("pending",), "enriching")


@pytest.mark.asyncio
async def test_finish_row_updates_counters(db: AsyncSession):
    session = await session_svc.create_session(db, ACCOUNT, "file.csv", _rows(2))
    row = (await session_svc.list_rows(db, session.id))[0]

    await session_svc.finish_row(
        db, row, "failed", error="boom", enriched_data={"x": "1"}, processed_rows=1, failed_rows=1
    )

    refreshed = await session_svc.get_session(db, session.id)
    assert refreshed.processed_rows == 1
    assert refreshed.failed_rows == 1
    assert await session_svc.row_status_counts(db, session.id) == {"failed": 1, "pending": 1}
    details = await session_svc.failed_row_details(db, session.id)
    assert details[0]["error_message"] == "boom"


@pytest.mark.asyncio
async def test_list_sessions_filters_by_account_and_status(db: AsyncSession):
    mine = await session_svc.create_session(db, ACCOUNT, "a.csv", _rows(1))
    await session_svc.create_session(db, uuid.uuid4(), "b.csv", _rows(1))

    assert [s.id for s in await session_svc.list_sessions(db, ACCOUNT)] == [mine.id]
    assert await session_svc.list_sessions(db, ACCOUNT, status="completed") == []


@pytest.mark.asyncio
async def test_delete_session_removes_rows(db: AsyncSession):
    session = await session_svc.create_session(db, ACCOUNT, "file.csv", _rows(3))

    assert await session_svc.delete_session(db, session.id)
    assert await session_svc.get_session(db, session.id) is None
    assert await session_svc.count_rows(db, session.id) == 0
    assert not await session_svc.delete_session(db, session.id)


@pytest.mark.asyncio
async def test_purge_expires_stale_sessions(db: AsyncSession):
    session = await session_svc.create_session(db, ACCOUNT, "old.csv", _rows(2))
    session.expires_at = datetime.now(timezone.utc) - timedelta(minutes=1)
    await db.commit()
    fresh = await session_svc.create_session(db, ACCOUNT, "new.csv", _rows(1))

    result = await run_purge(db)

    assert result == {"sessions_expired": 1, "records_purged": 0}
    expired = await session_svc.get_session(db, session.id)
    assert expired.status == "expired"
    assert expired.error_message == (
        f"Data purged after {settings.retention_days}-day retention period (original status: uploaded)"
    )
    assert await session_svc.count_rows(db, session.id) == 0
    assert await session_svc.count_rows(db, fresh.id) == 1
