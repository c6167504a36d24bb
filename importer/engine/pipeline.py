"""Import pipeline state machine.

A session moves uploaded -> enriching -> enriched -> syncing -> completed,
or to failed when any row could not be synced. Failed sessions may be
re-enriched until ``max_retries`` is used up. The sweeper moves stale
sessions to expired.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..errors import ExternalServiceError, InvalidStateError, NotFoundError
from ..models.session import UploadSession
from ..services import enrichment_svc, event_svc, record_store, rule_svc, session_svc
from ..services.ai_svc import CompletionRouter
from ..services.crm_sync import CrmSyncTarget, build_sync_target
from ..services.search_svc import SerpApiSearchService
from ..services.secrets import SecretResolver
from .enrichment import Enriched, EnrichmentExecutor
from .pacer import CallPacer
from .rules import process_row

logger = logging.getLogger(__name__)

ENRICHABLE = ("uploaded", "failed", "enriching")
SYNCABLE = ("enriched", "syncing")
ENRICH_ROW_STATUSES = ("pending", "failed")
SYNC_ROW_STATUSES = ("enriched", "failed")


def run_is_live(session: UploadSession, lease_seconds: float, now: datetime | None = None) -> bool:
    """Whether a session was touched within the lease window."""
    last_seen = session.updated_at
    if last_seen is None:
        return False
    if last_seen.tzinfo is None:
        last_seen = last_seen.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    return now - last_seen < timedelta(seconds=lease_seconds)


@dataclass(frozen=True)
class EnrichmentSummary:
    session_id: uuid.UUID
    status: str
    total_processed: int
    total_enriched: int
    total_failed: int


@dataclass(frozen=True)
class SyncSummary:
    session_id: uuid.UUID
    status: str
    total_synced: int
    total_failed: int
    error_message: str | None = None


def build_executor() -> EnrichmentExecutor:
    return EnrichmentExecutor(
        completions=CompletionRouter(),
        search=SerpApiSearchService(),
        secrets=SecretResolver(),
        pacer=CallPacer(settings.enrichment_delay),
    )


class ImportPipeline:
    """Drives one session at a time through enrichment and sync."""

    def __init__(
        self,
        db: AsyncSession,
        executor: EnrichmentExecutor | None = None,
        sync_target: CrmSyncTarget | None = None,
        sync_pacer: CallPacer | None = None,
    ):
        self.db = db
        self.executor = executor or build_executor()
        self.sync_target = sync_target or build_sync_target()
        self.sync_pacer = sync_pacer or CallPacer(settings.sync_delay)

    async def _load(self, session_id: uuid.UUID) -> UploadSession:
        session = await session_svc.get_session(self.db, session_id)
        if not session:
            raise NotFoundError(f"Upload session {session_id} not found")
        return session

    # ── Enrichment ────────────────────────────────────────────────────────

    async def start_enrichment(self, session_id: uuid.UUID) -> EnrichmentSummary:
        """Enrich every unfinished row of a session.

        Safe to call again after a crash: rows already enriched are skipped
        and rows left mid-flight are picked up again. A session still in
        ``enriching`` is only taken over once its run has been idle for
        ``enrichment_lease_seconds``.
        """
        session = await self._load(session_id)
        if session.status not in ENRICHABLE:
            raise InvalidStateError(
                f"Cannot enrich session in status: {session.status}", session.status
            )

        if session.status == "failed":
            if session.retry_count >= session.max_retries:
                raise InvalidStateError(
                    f"Session has used all {session.max_retries} retries", session.status
                )
            session.retry_count += 1
        elif session.status == "enriching":
            if run_is_live(session, settings.enrichment_lease_seconds):
                raise InvalidStateError(
                    "Enrichment is already running for this session", session.status
                )
            stale = await session_svc.reset_rows(self.db, session_id, ("enriching",), "pending")
            logger.info("Resuming enrichment for %s (%d rows reset)", session_id, stale)

        steps = await enrichment_svc.load_session_steps(self.db, session)
        row_count = await session_svc.count_rows(self.db, session_id)
        unfinished = await session_svc.count_rows(
            self.db, session_id, ENRICH_ROW_STATUSES + ("enriching",)
        )

        session.status = "enriching"
        session.error_message = None
        session.processed_rows = session.total_rows - unfinished
        session.enriched_rows = session.total_rows - unfinished
        session.failed_rows = 0
        await self.db.commit()
        await event_svc.record_event(
            self.db, session_id, "info", "enrichment.started",
            f"Enriching {unfinished} rows with {len(steps)} steps",
            {"retry_count": session.retry_count},
        )

        if not steps:
            await session_svc.reset_rows(self.db, session_id, ("pending",), "enriched")
            session = await self._load(session_id)
            session.status = "enriched"
            session.processed_rows = row_count
            session.enriched_rows = row_count
            await self.db.commit()
            await event_svc.record_event(
                self.db, session_id, "info", "enrichment.skipped",
                "No enrichment configs selected; rows ready for sync",
            )
            return EnrichmentSummary(session_id, "enriched", row_count, row_count, 0)

        processed = enriched = failed = 0
        cursor = -1
        while True:
            batch = await session_svc.fetch_row_batch(
                self.db, session_id, ENRICH_ROW_STATUSES, after_index=cursor,
                limit=settings.batch_size,
            )
            if not batch:
                break

            for row in batch:
                cursor = row.row_index
                if not await session_svc.claim_row(self.db, row, ENRICH_ROW_STATUSES, "enriching"):
                    continue

                outcome = await self.executor.enrich_row(steps, row.raw_data or {}, row.enriched_data or {})
                processed += 1
                if isinstance(outcome, Enriched):
                    enriched += 1
                    await session_svc.finish_row(
                        self.db, row, "enriched",
                        enriched_data=outcome.enriched_data,
                        processed_rows=1, enriched_rows=1,
                    )
                else:
                    failed += 1
                    await session_svc.finish_row(
                        self.db, row, "failed",
                        error=outcome.reason,
                        enriched_data=outcome.enriched_data,
                        processed_rows=1, failed_rows=1,
                    )

            if len(batch) < settings.batch_size:
                break

        session = await self._load(session_id)
        session.status = "enriched"
        await self.db.commit()
        await event_svc.record_event(
            self.db, session_id, "info" if not failed else "warn", "enrichment.completed",
            f"Processed {processed} rows: {enriched} enriched, {failed} failed",
        )
        return EnrichmentSummary(session_id, "enriched", processed, enriched, failed)

    # ── Sync ──────────────────────────────────────────────────────────────

    async def start_sync(self, session_id: uuid.UUID) -> SyncSummary:
        """Validate rows with the account's rules and push them to the CRM."""
        session = await self._load(session_id)
        if session.status not in SYNCABLE:
            raise InvalidStateError(
                f"Cannot sync session in status: {session.status}", session.status
            )
        if session.status == "syncing":
            if run_is_live(session, settings.sync_lease_seconds):
                raise InvalidStateError("Sync is already running for this session", session.status)
            stale = await session_svc.reset_rows(self.db, session_id, ("syncing",), "enriched")
            logger.info("Resuming sync for %s (%d rows reset)", session_id, stale)

        account_id = session.account_id
        rules = await rule_svc.load_account_rules(self.db, account_id)

        session.status = "syncing"
        session.error_message = None
        session.failed_rows = 0
        await self.db.commit()
        await event_svc.record_event(
            self.db, session_id, "info", "sync.started", f"Syncing with {len(rules)} rules"
        )

        cursor = -1
        while True:
            batch = await session_svc.fetch_row_batch(
                self.db, session_id, SYNC_ROW_STATUSES, after_index=cursor,
                limit=settings.batch_size,
            )
            if not batch:
                break

            for row in batch:
                cursor = row.row_index
                if not await session_svc.claim_row(self.db, row, SYNC_ROW_STATUSES, "syncing"):
                    continue
                await self._sync_row(session_id, account_id, row, rules)

            if len(batch) < settings.batch_size:
                break

        synced = await session_svc.count_rows(self.db, session_id, ("synced",))
        failed = await session_svc.count_rows(self.db, session_id, ("failed",))
        await session_svc.delete_rows(self.db, session_id, ("synced",))

        session = await self._load(session_id)
        if failed:
            session.status = "failed"
            session.error_message = (
                f"{failed} rows failed to sync. Retry to reprocess the failed rows."
            )
        else:
            session.status = "completed"
            session.completed_at = datetime.now(timezone.utc)
        await self.db.commit()
        await event_svc.record_event(
            self.db, session_id, "error" if failed else "info", f"sync.{session.status}",
            session.error_message or f"Synced {synced} rows",
            {"synced": synced, "failed": failed},
        )
        return SyncSummary(session_id, session.status, synced, failed, session.error_message)

    async def _sync_row(self, session_id, account_id, row, rules) -> None:
        checked = process_row(rules, row.merged_data)
        if not checked.valid:
            await session_svc.finish_row(
                self.db, row, "failed", error=checked.error_message, failed_rows=1
            )
            return

        await self.sync_pacer.wait()
        try:
            result = await self.sync_target.sync_row(account_id, checked.data)
        except ExternalServiceError as exc:
            logger.warning("CRM sync failed for row %s: %s", row.row_index, exc)
            await session_svc.finish_row(self.db, row, "failed", error=str(exc), failed_rows=1)
            return

        await record_store.store_sync_result(
            self.db, account_id, checked.data,
            contact_id=result.contact_id,
            company_id=result.company_id,
            upload_session_id=session_id,
        )
        await session_svc.finish_row(
            self.db, row, "synced",
            external_contact_id=result.contact_id,
            external_company_id=result.company_id,
            synced_rows=1,
        )

    # ── Progress ──────────────────────────────────────────────────────────

    async def get_progress(self, session_id: uuid.UUID) -> dict:
        session = await self._load(session_id)
        return {
            "id": str(session.id),
            "account_id": str(session.account_id),
            "file_name": session.file_name,
            "status": session.status,
            "total_rows": session.total_rows,
            "processed_rows": session.processed_rows,
            "enriched_rows": session.enriched_rows,
            "synced_rows": session.synced_rows,
            "failed_rows": session.failed_rows,
            "error_message": session.error_message,
            "retry_count": session.retry_count,
            "max_retries": session.max_retries,
            "field_mappings": session.field_mappings,
            "enrichment_config_ids": session.enrichment_config_ids or [],
            "created_at": session.created_at.isoformat() if session.created_at else None,
            "updated_at": session.updated_at.isoformat() if session.updated_at else None,
            "expires_at": session.expires_at.isoformat() if session.expires_at else None,
            "completed_at": session.completed_at.isoformat() if session.completed_at else None,
            "row_status_counts": await session_svc.row_status_counts(self.db, session_id),
            "failed_row_details": await session_svc.failed_row_details(self.db, session_id),
        }
