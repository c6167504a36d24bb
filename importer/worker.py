"""Background worker that enforces the retention window."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from .config import settings
from .database import async_session_factory
from .services.record_store import purge_expired_records
from .services.session_svc import purge_expired_sessions

logger = logging.getLogger(__name__)


async def run_purge(db) -> dict[str, int]:
    """Expire stale sessions and drop stale CRM records."""
    sessions = await purge_expired_sessions(db)
    records = await purge_expired_records(db)
    return {"sessions_expired": sessions, "records_purged": records}


class ExpirySweeper:
    """Periodically purges data older than the retention window."""

    def __init__(self) -> None:
        self._task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()

    def start(self) -> None:
        if self._task is not None or not settings.sweeper_enabled:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run_loop(), name="importer-expiry-sweeper")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stop_event.set()
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        finally:
            self._task = None

    async def sweep_once(self) -> dict[str, int]:
        async with async_session_factory() as db:
            result = await run_purge(db)
        if any(result.values()):
            logger.info("Retention sweep: %s", result)
        return result

    async def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.sweep_once()
            except asyncio.CancelledError:
                raise
            except Exception:  # pragma: no cover
                logger.exception("Expiry sweeper loop failed")

            try:
                await asyncio.wait_for(
                    self._stop_event.wait(), timeout=settings.sweeper_interval_seconds
                )
            except asyncio.TimeoutError:
                pass


expiry_sweeper = ExpirySweeper()
