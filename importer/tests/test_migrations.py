"""Smoke tests for importer Alembic migrations."""

from __future__ import annotations

from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect

from importer.config import settings


def test_alembic_upgrade_creates_pipeline_tables(tmp_path: Path, monkeypatch):
    db_path = tmp_path / "importer_migrations.db"
    monkeypatch.setattr(settings, "database_url", f"sqlite+aiosqlite:///{db_path}")

    repo_root = Path(__file__).resolve().parents[2]
    cfg = Config(str(repo_root / "importer" / "alembic.ini"))
    command.upgrade(cfg, "head")

    engine = create_engine(f"sqlite:///{db_path}")
    try:
        inspector = inspect(engine)
        tables = set(inspector.get_table_names())
        row_indexes = {idx["name"] for idx in inspector.get_indexes("upload_row")}
        record_uniques = {uc["name"] for uc in inspector.get_unique_constraints("crm_record")}
    finally:
        engine.dispose()

    assert {
        "upload_session",
        "upload_row",
        "crm_record",
        "account_rule",
        "ai_model",
        "enrichment_config",
        "pipeline_event",
    } <= tables
    assert "ix_upload_row_session_status" in row_indexes
    assert "uq_crm_record_dedup" in record_uniques
