"""Enrichment configuration and AI model catalog."""

from __future__ import annotations

import uuid

from sqlalchemy import Boolean, ForeignKey, Integer, JSON, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TimestampMixin, UUIDMixin


class AIModel(Base, UUIDMixin, TimestampMixin):
    """A completion model and where its credentials come from."""

    __tablename__ = "ai_model"

    name: Mapped[str] = mapped_column(String(200))
    provider: Mapped[str] = mapped_column(String(50))  # anthropic/openai/serp/...
    model_id: Mapped[str] = mapped_column(String(100))
    api_key: Mapped[str | None] = mapped_column(Text, default=None)
    use_env_key: Mapped[bool] = mapped_column(Boolean, default=False)
    env_key_name: Mapped[str | None] = mapped_column(String(100), default=None)
    base_url: Mapped[str | None] = mapped_column(String(500), default=None)
    is_enabled: Mapped[bool] = mapped_column(Boolean, default=True)

    def __repr__(self) -> str:
        return f"<AIModel {self.provider}:{self.model_id}>"


class EnrichmentConfig(Base, UUIDMixin, TimestampMixin):
    """One enrichment step: inputs, prompt, and the field(s) it fills."""

    __tablename__ = "enrichment_config"

    account_id: Mapped[uuid.UUID] = mapped_column(Uuid, index=True)
    name: Mapped[str] = mapped_column(String(200))
    description: Mapped[str | None] = mapped_column(Text, default=None)
    service: Mapped[str] = mapped_column(String(20), default="ai-model")  # ai-model/search-api
    ai_model_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("ai_model.id", ondelete="SET NULL"), default=None, nullable=True
    )
    input_fields: Mapped[list] = mapped_column(JSON, default=list)
    # Bare field id, or a JSON array of {"id", "type"} objects
    output_field: Mapped[str] = mapped_column(Text)
    prompt_template: Mapped[str | None] = mapped_column(Text, default=None)
    is_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    execution_order: Mapped[int] = mapped_column(Integer, default=0)

    ai_model: Mapped[AIModel | None] = relationship(lazy="joined")

    def __repr__(self) -> str:
        return f"<EnrichmentConfig {self.name!r} order={self.execution_order}>"
