"""Initial import pipeline schema.

Revision ID: 001_import_pipeline_initial
Revises:
Create Date: 2026-10-19

"""

from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "001_import_pipeline_initial"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _has_table(bind, name: str) -> bool:
    return sa.inspect(bind).has_table(name)


def _has_index(bind, table_name: str, index_name: str) -> bool:
    indexes = sa.inspect(bind).get_indexes(table_name)
    return any(idx.get("name") == index_name for idx in indexes)


def _ensure_index(bind, name: str, table: str, columns: list[str]) -> None:
    if _has_table(bind, table) and not _has_index(bind, table, name):
        op.create_index(name, table, columns, unique=False)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    bind = op.get_bind()

    if not _has_table(bind, "upload_session"):
        op.create_table(
            "upload_session",
            sa.Column("account_id", sa.Uuid(), nullable=False),
            sa.Column("file_name", sa.String(length=255), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="uploaded"),
            sa.Column("total_rows", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("processed_rows", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("enriched_rows", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("synced_rows", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("failed_rows", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("field_mappings", sa.JSON(), nullable=True),
            sa.Column("enrichment_config_ids", sa.JSON(), nullable=True),
            sa.Column("error_message", sa.Text(), nullable=True),
            sa.Column("retry_count", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("max_retries", sa.Integer(), nullable=False, server_default="3"),
            sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
        )
    _ensure_index(bind, "ix_upload_session_account_id", "upload_session", ["account_id"])
    _ensure_index(bind, "ix_upload_session_status", "upload_session", ["status"])
    _ensure_index(bind, "ix_upload_session_expires_at", "upload_session", ["expires_at"])

    if not _has_table(bind, "upload_row"):
        op.create_table(
            "upload_row",
            sa.Column("session_id", sa.Uuid(), nullable=False),
            sa.Column("row_index", sa.Integer(), nullable=False),
            sa.Column("raw_data", sa.JSON(), nullable=False),
            sa.Column("enriched_data", sa.JSON(), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
            sa.Column("external_contact_id", sa.String(length=100), nullable=True),
            sa.Column("external_company_id", sa.String(length=100), nullable=True),
            sa.Column("error_message", sa.Text(), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(["session_id"], ["upload_session.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("session_id", "row_index", name="uq_upload_row_session_index"),
        )
    _ensure_index(bind, "ix_upload_row_session_id", "upload_row", ["session_id"])
    _ensure_index(bind, "ix_upload_row_session_status", "upload_row", ["session_id", "status"])

    if not _has_table(bind, "crm_record"):
        op.create_table(
            "crm_record",
            sa.Column("account_id", sa.Uuid(), nullable=False),
            sa.Column("object_type", sa.String(length=20), nullable=False),
            sa.Column("properties", sa.JSON(), nullable=False),
            sa.Column("dedup_key", sa.String(length=500), nullable=True),
            sa.Column("external_id", sa.String(length=100), nullable=True),
            sa.Column("upload_session_id", sa.Uuid(), nullable=True),
            sa.Column("synced_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("account_id", "object_type", "dedup_key", name="uq_crm_record_dedup"),
        )
    _ensure_index(bind, "ix_crm_record_account_id", "crm_record", ["account_id"])
    _ensure_index(bind, "ix_crm_record_expires_at", "crm_record", ["expires_at"])

    if not _has_table(bind, "account_rule"):
        op.create_table(
            "account_rule",
            sa.Column("account_id", sa.Uuid(), nullable=False),
            sa.Column("rule_id", sa.String(length=100), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("rule_type", sa.String(length=20), nullable=False),
            sa.Column("target_fields", sa.JSON(), nullable=False),
            sa.Column("config", sa.JSON(), nullable=True),
            sa.Column("display_order", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("account_id", "rule_id", name="uq_account_rule"),
        )
    _ensure_index(bind, "ix_account_rule_account_id", "account_rule", ["account_id"])

    if not _has_table(bind, "ai_model"):
        op.create_table(
            "ai_model",
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("provider", sa.String(length=50), nullable=False),
            sa.Column("model_id", sa.String(length=100), nullable=False),
            sa.Column("api_key", sa.Text(), nullable=True),
            sa.Column("use_env_key", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("env_key_name", sa.String(length=100), nullable=True),
            sa.Column("base_url", sa.String(length=500), nullable=True),
            sa.Column("is_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
        )

    if not _has_table(bind, "enrichment_config"):
        op.create_table(
            "enrichment_config",
            sa.Column("account_id", sa.Uuid(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("service", sa.String(length=20), nullable=False, server_default="ai-model"),
            sa.Column("ai_model_id", sa.Uuid(), nullable=True),
            sa.Column("input_fields", sa.JSON(), nullable=False),
            sa.Column("output_field", sa.Text(), nullable=False),
            sa.Column("prompt_template", sa.Text(), nullable=True),
            sa.Column("is_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("execution_order", sa.Integer(), nullable=False, server_default="0"),
            *_timestamps(),
            sa.ForeignKeyConstraint(["ai_model_id"], ["ai_model.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
    _ensure_index(bind, "ix_enrichment_config_account_id", "enrichment_config", ["account_id"])

    if not _has_table(bind, "pipeline_event"):
        op.create_table(
            "pipeline_event",
            sa.Column("session_id", sa.Uuid(), nullable=True),
            sa.Column("level", sa.String(length=10), nullable=False, server_default="info"),
            sa.Column("event", sa.String(length=100), nullable=False),
            sa.Column("message", sa.Text(), nullable=True),
            sa.Column("data", sa.JSON(), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(["session_id"], ["upload_session.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
    _ensure_index(bind, "ix_pipeline_event_session_id", "pipeline_event", ["session_id"])


def downgrade() -> None:
    bind = op.get_bind()
    for table in (
        "pipeline_event",
        "enrichment_config",
        "ai_model",
        "account_rule",
        "crm_record",
        "upload_row",
        "upload_session",
    ):
        if _has_table(bind, table):
            op.drop_table(table)
