"""Base model classes and mixins for the Record Importer."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy import DateTime, Uuid, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from ..config import settings


class Base(DeclarativeBase):
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def retention_deadline(now: datetime | None = None) -> datetime:
    """Expiry timestamp for data touched at ``now``."""
    return (now or utcnow()) + timedelta(days=settings.retention_days)


class UUIDMixin:
    """Adds a UUID primary key."""

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )


class TimestampMixin:
    """Adds created_at / updated_at columns."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class ExpiryMixin:
    """Adds an expires_at column set to the retention deadline on insert."""

    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=retention_deadline, index=True
    )
