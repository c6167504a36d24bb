"""Per-account transform and validation rules."""

from __future__ import annotations

import uuid

from sqlalchemy import Boolean, Integer, JSON, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin, UUIDMixin


class AccountRule(Base, UUIDMixin, TimestampMixin):
    """A named rule applied to target fields during sync."""

    __tablename__ = "account_rule"
    __table_args__ = (UniqueConstraint("account_id", "rule_id", name="uq_account_rule"),)

    account_id: Mapped[uuid.UUID] = mapped_column(Uuid, index=True)
    rule_id: Mapped[str] = mapped_column(String(100))
    name: Mapped[str] = mapped_column(String(200))
    description: Mapped[str | None] = mapped_column(Text, default=None)
    rule_type: Mapped[str] = mapped_column(String(20))  # transform/validate
    target_fields: Mapped[list] = mapped_column(JSON, default=list)
    config: Mapped[dict | None] = mapped_column(JSON, default=None)
    display_order: Mapped[int] = mapped_column(Integer, default=0)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)

    def __repr__(self) -> str:
        return f"<AccountRule {self.rule_id} ({self.rule_type})>"
