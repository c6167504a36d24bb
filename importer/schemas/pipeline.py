"""Pydantic models for the pipeline API."""

from __future__ import annotations

import uuid

from pydantic import BaseModel, Field


class UploadRequest(BaseModel):
    file_name: str
    rows: list[dict]
    field_mappings: dict | None = None
    enrichment_config_ids: list[str] = Field(default_factory=list)


class SessionAction(BaseModel):
    session_id: uuid.UUID


class EnrichmentResponse(BaseModel):
    session_id: uuid.UUID
    status: str
    total_processed: int
    total_enriched: int
    total_failed: int


class SyncResponse(BaseModel):
    session_id: uuid.UUID
    status: str
    total_synced: int
    total_failed: int
    error_message: str | None = None


class RecordUpsert(BaseModel):
    object_type: str
    properties: dict
    external_id: str | None = None


class RuleCreate(BaseModel):
    rule_id: str
    name: str
    rule_type: str  # transform/validate
    target_fields: list[str]
    config: dict | None = None
    description: str | None = None
    display_order: int = 0
    enabled: bool = True


class RuleUpdate(BaseModel):
    name: str | None = None
    description: str | None = None
    target_fields: list[str] | None = None
    config: dict | None = None
    display_order: int | None = None
    enabled: bool | None = None


class RulePreview(BaseModel):
    row: dict


class AIModelCreate(BaseModel):
    name: str
    provider: str
    model_id: str
    api_key: str | None = None
    use_env_key: bool = False
    env_key_name: str | None = None
    base_url: str | None = None


class EnrichmentConfigCreate(BaseModel):
    name: str
    output_field: str | list
    input_fields: list[str] = Field(default_factory=list)
    service: str = "ai-model"  # ai-model/search-api
    ai_model_id: uuid.UUID | None = None
    prompt_template: str | None = None
    description: str | None = None
    is_enabled: bool = True
    execution_order: int = 0
