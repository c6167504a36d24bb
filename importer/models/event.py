"""Audit log model for pipeline events."""

from __future__ import annotations

import uuid

from sqlalchemy import ForeignKey, JSON, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin, UUIDMixin


class PipelineEvent(Base, UUIDMixin, TimestampMixin):
    """Audit trail entry for a session's stage transitions."""

    __tablename__ = "pipeline_event"

    session_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("upload_session.id", ondelete="SET NULL"), default=None, index=True
    )
    level: Mapped[str] = mapped_column(String(10), default="info")  # info/warn/error
    event: Mapped[str] = mapped_column(String(100))
    message: Mapped[str | None] = mapped_column(Text, default=None)
    data: Mapped[dict | None] = mapped_column(JSON, default=None)

    def __repr__(self) -> str:
        return f"<PipelineEvent [{self.level}] {self.event}>"
