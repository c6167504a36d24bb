"""UploadSession and UploadRow models."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, ExpiryMixin, TimestampMixin, UUIDMixin

SESSION_STATUSES = (
    "uploaded",
    "enriching",
    "enriched",
    "syncing",
    "completed",
    "failed",
    "expired",
)


class UploadSession(Base, UUIDMixin, TimestampMixin, ExpiryMixin):
    """One uploaded file moving through enrich and sync."""

    __tablename__ = "upload_session"

    account_id: Mapped[uuid.UUID] = mapped_column(Uuid, index=True)
    file_name: Mapped[str] = mapped_column(String(255))
    status: Mapped[str] = mapped_column(String(20), default="uploaded", index=True)
    total_rows: Mapped[int] = mapped_column(Integer, default=0)
    processed_rows: Mapped[int] = mapped_column(Integer, default=0)
    enriched_rows: Mapped[int] = mapped_column(Integer, default=0)
    synced_rows: Mapped[int] = mapped_column(Integer, default=0)
    failed_rows: Mapped[int] = mapped_column(Integer, default=0)
    field_mappings: Mapped[dict | None] = mapped_column(JSON, default=None)
    enrichment_config_ids: Mapped[list | None] = mapped_column(JSON, default=None)
    error_message: Mapped[str | None] = mapped_column(Text, default=None)
    retry_count: Mapped[int] = mapped_column(Integer, default=0)
    max_retries: Mapped[int] = mapped_column(Integer, default=3)
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None, nullable=True
    )

    rows: Mapped[list[UploadRow]] = relationship(
        back_populates="session",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="UploadRow.row_index",
    )

    def __repr__(self) -> str:
        return f"<UploadSession {self.file_name!r} ({self.status})>"


class UploadRow(Base, UUIDMixin, TimestampMixin):
    """A single spreadsheet row: raw cells plus the enrichment overlay."""

    __tablename__ = "upload_row"
    __table_args__ = (
        UniqueConstraint("session_id", "row_index", name="uq_upload_row_session_index"),
        Index("ix_upload_row_session_status", "session_id", "status"),
    )

    session_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("upload_session.id", ondelete="CASCADE"), index=True
    )
    row_index: Mapped[int] = mapped_column(Integer)
    raw_data: Mapped[dict] = mapped_column(JSON, default=dict)
    enriched_data: Mapped[dict] = mapped_column(JSON, default=dict)
    status: Mapped[str] = mapped_column(String(20), default="pending")
    external_contact_id: Mapped[str | None] = mapped_column(String(100), default=None)
    external_company_id: Mapped[str | None] = mapped_column(String(100), default=None)
    error_message: Mapped[str | None] = mapped_column(Text, default=None)

    session: Mapped[UploadSession] = relationship(back_populates="rows")

    @property
    def merged_data(self) -> dict:
        return {**(self.raw_data or {}), **(self.enriched_data or {})}

    def __repr__(self) -> str:
        return f"<UploadRow #{self.row_index} ({self.status})>"
