"""CRM sync targets that receive validated rows."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Protocol

import httpx

from ..config import settings
from ..errors import ExternalServiceError
from .record_store import split_row_properties

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncResult:
    contact_id: str | None = None
    company_id: str | None = None


class CrmSyncTarget(Protocol):
    async def sync_row(self, account_id: uuid.UUID, row_data: dict) -> SyncResult: ...


class LocalSyncTarget:
    """Keeps records in the local store only and mints ids for them."""

    async def sync_row(self, account_id: uuid.UUID, row_data: dict) -> SyncResult:
        contact, company = split_row_properties(row_data)
        return SyncResult(
            contact_id=f"local-{uuid.uuid4().hex[:12]}" if contact else None,
            company_id=f"local-{uuid.uuid4().hex[:12]}" if company else None,
        )


class WebhookSyncTarget:
    """Posts contact and company properties to a CRM webhook.

    The endpoint answers with ``{"contact_id": ..., "company_id": ...}``.
    """

    def __init__(self, url: str, transport: httpx.AsyncBaseTransport | None = None):
        self.url = url
        self._transport = transport

    async def sync_row(self, account_id: uuid.UUID, row_data: dict) -> SyncResult:
        contact, company = split_row_properties(row_data)
        payload = {"account_id": str(account_id), "contact": contact, "company": company}
        async with httpx.AsyncClient(
            timeout=settings.crm_timeout_seconds, transport=self._transport
        ) as client:
            try:
                resp = await client.post(self.url, json=payload)
                resp.raise_for_status()
            except httpx.HTTPStatusError as exc:
                raise ExternalServiceError(
                    f"CRM returned {exc.response.status_code}: {exc.response.text[:200]}"
                ) from exc
            except httpx.HTTPError as exc:
                raise ExternalServiceError(str(exc) or type(exc).__name__) from exc
        try:
            data = resp.json()
        except ValueError:
            data = {}
        return SyncResult(
            contact_id=data.get("contact_id") if isinstance(data, dict) else None,
            company_id=data.get("company_id") if isinstance(data, dict) else None,
        )


def build_sync_target() -> CrmSyncTarget:
    if settings.crm_webhook_url:
        return WebhookSyncTarget(settings.crm_webhook_url)
    return LocalSyncTarget()
