"""Deduplicated CRM record store."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, JSON, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, ExpiryMixin, TimestampMixin, UUIDMixin

OBJECT_TYPES = ("contacts", "companies", "deals")


class CrmRecord(Base, UUIDMixin, TimestampMixin, ExpiryMixin):
    """Latest known properties of a contact, company or deal."""

    __tablename__ = "crm_record"
    __table_args__ = (
        UniqueConstraint("account_id", "object_type", "dedup_key", name="uq_crm_record_dedup"),
    )

    account_id: Mapped[uuid.UUID] = mapped_column(Uuid, index=True)
    object_type: Mapped[str] = mapped_column(String(20))  # contacts/companies/deals
    properties: Mapped[dict] = mapped_column(JSON, default=dict)
    dedup_key: Mapped[str | None] = mapped_column(String(500), default=None, nullable=True)
    external_id: Mapped[str | None] = mapped_column(String(100), default=None)
    upload_session_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, default=None, nullable=True)
    synced_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None, nullable=True
    )

    def __repr__(self) -> str:
        return f"<CrmRecord {self.object_type}:{self.dedup_key}>"
