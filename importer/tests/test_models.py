"""Tests for model defaults and helpers."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from importer.config import settings
from importer.models import CrmRecord, PipelineEvent, UploadRow, UploadSession
from importer.models.base import retention_deadline


def test_retention_deadline_uses_configured_window():
    now = datetime(2026, 5, 1, tzinfo=timezone.utc)
    assert retention_deadline(now) == now + timedelta(days=settings.retention_days)


def test_merged_data_overlays_enrichment():
    row = UploadRow(row_index=0, raw_data={"a": "1", "b": "2"}, enriched_data={"b": "3", "c": "4"})
    assert row.merged_data == {"a": "1", "b": "3", "c": "4"}


@pytest.mark.asyncio
async def test_session_defaults(db: AsyncSession):
    session = UploadSession(account_id=uuid.uuid4(), file_name="x.csv")
    db.add(session)
    await db.commit()
    await db.refresh(session)

    assert session.status == "uploaded"
    assert session.retry_count == 0
    assert session.failed_rows == 0
    assert session.expires_at is not None
    assert session.created_at is not None


@pytest.mark.asyncio
async def test_record_and_event_repr(db: AsyncSession):
    record = CrmRecord(account_id=uuid.uuid4(), object_type="contacts", dedup_key="a@b.co", properties={})
    event = PipelineEvent(level="warn", event="sync.failed")
    db.add_all([record, event])
    await db.commit()

    assert repr(record) == "<CrmRecord contacts:a@b.co>"
    assert repr(event) == "<PipelineEvent [warn] sync.failed>"
