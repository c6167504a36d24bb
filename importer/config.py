"""Record Importer configuration via pydantic-settings."""

from __future__ import annotations

import uuid

from pydantic_settings import BaseSettings


class ImporterSettings(BaseSettings):
    database_url: str = "sqlite+aiosqlite:///importer.db"
    echo_sql: bool = False
    app_title: str = "MaxLevel Record Importer"
    default_account_id: uuid.UUID = uuid.UUID("00000000-0000-0000-0000-000000000001")

    # Pipeline
    batch_size: int = 50
    insert_batch_size: int = 500
    max_retries: int = 3
    # A session left enriching or syncing counts as abandoned once it has
    # been idle this long, and may then be resumed
    enrichment_lease_seconds: float = 600.0
    sync_lease_seconds: float = 600.0
    retention_days: int = 15
    failed_row_detail_limit: int = 100

    # External call pacing (seconds between consecutive calls)
    enrichment_call_delay_seconds: float = 0.5
    sync_call_delay_seconds: float = 0.2
    min_call_delay_seconds: float = 0.05

    # Enrichment providers
    ai_max_tokens: int = 256
    ai_timeout_seconds: float = 30.0
    default_openai_base_url: str = "https://api.openai.com/v1"
    serp_api_url: str = "https://serpapi.com/search.json"
    search_timeout_seconds: float = 15.0

    # CRM sync
    crm_webhook_url: str = ""
    crm_timeout_seconds: float = 30.0

    # Expiry sweeper
    sweeper_enabled: bool = True
    sweeper_interval_seconds: float = 3600.0

    model_config = {"env_prefix": "IMP_", "env_file": ".env", "extra": "ignore"}

    @property
    def enrichment_delay(self) -> float:
        return max(self.enrichment_call_delay_seconds, self.min_call_delay_seconds)

    @property
    def sync_delay(self) -> float:
        return max(self.sync_call_delay_seconds, self.min_call_delay_seconds)


settings = ImporterSettings()
