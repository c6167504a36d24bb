"""Pipeline audit trail."""

from __future__ import annotations

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.event import PipelineEvent


async def record_event(
    db: AsyncSession,
    session_id: uuid.UUID | None,
    level: str,
    event: str,
    message: str | None = None,
    data: dict | None = None,
) -> PipelineEvent:
    entry = PipelineEvent(
        session_id=session_id,
        level=level,
        event=event,
        message=message,
        data=data,
    )
    db.add(entry)
    await db.commit()
    return entry


async def list_events(db: AsyncSession, session_id: uuid.UUID) -> list[PipelineEvent]:
    stmt = (
        select(PipelineEvent)
        .where(PipelineEvent.session_id == session_id)
        .order_by(PipelineEvent.created_at.asc())
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())
