"""Deduplicated CRM record store with sliding expiry.

Records are keyed per account and object type by a normalized natural key
(email for contacts, domain or name for companies, deal name for deals).
Writers merge shallowly with the incoming properties winning; a record with
no derivable key is always inserted fresh.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..errors import ConflictError
from ..models.base import retention_deadline
from ..models.record import CrmRecord

logger = logging.getLogger(__name__)

CONTACT_PROPERTIES = (
    "email", "firstname", "lastname", "phone", "company", "jobtitle",
    "city", "state", "country", "zip", "website", "address",
)
COMPANY_PROPERTIES = (
    "name", "domain", "city", "state", "country", "phone", "industry", "website",
)
DEAL_PROPERTIES = (
    "dealname", "amount", "dealstage", "pipeline", "closedate", "description",
)


@dataclass(frozen=True)
class UpsertResult:
    id: uuid.UUID
    action: str  # created/updated


def _normalized(value) -> str | None:
    if value is None:
        return None
    text = str(value).strip().lower()
    return text or None


def derive_dedup_key(object_type: str, properties: dict) -> str | None:
    """Natural key for a record, or None when it has none."""
    if object_type == "contacts":
        return _normalized(properties.get("email"))
    if object_type == "companies":
        return _normalized(properties.get("domain")) or _normalized(properties.get("name"))
    if object_type == "deals":
        return _normalized(properties.get("dealname"))
    return None


async def _find(
    db: AsyncSession,
    account_id: uuid.UUID,
    object_type: str,
    dedup_key: str,
) -> CrmRecord | None:
    stmt = select(CrmRecord).where(
        CrmRecord.account_id == account_id,
        CrmRecord.object_type == object_type,
        CrmRecord.dedup_key == dedup_key,
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def _insert(db: AsyncSession, record: CrmRecord) -> None:
    try:
        async with db.begin_nested():
            db.add(record)
    except IntegrityError as exc:
        raise ConflictError(
            f"{record.object_type} record with key {record.dedup_key!r} already exists"
        ) from exc


def _merge(
    record: CrmRecord,
    properties: dict,
    now: datetime,
    external_id: str | None,
    upload_session_id: uuid.UUID | None,
) -> None:
    record.properties = {**(record.properties or {}), **properties}
    record.expires_at = retention_deadline(now)
    if external_id:
        record.external_id = external_id
        record.synced_at = now
    if upload_session_id:
        record.upload_session_id = upload_session_id


async def upsert_record(
    db: AsyncSession,
    account_id: uuid.UUID,
    object_type: str,
    properties: dict,
    external_id: str | None = None,
    upload_session_id: uuid.UUID | None = None,
    now: datetime | None = None,
) -> UpsertResult:
    """Create or merge a record by its dedup key and commit."""
    now = now or datetime.now(timezone.utc)
    dedup_key = derive_dedup_key(object_type, properties)

    existing = await _find(db, account_id, object_type, dedup_key) if dedup_key else None
    if existing is None:
        record = CrmRecord(
            account_id=account_id,
            object_type=object_type,
            properties=dict(properties),
            dedup_key=dedup_key,
            external_id=external_id or None,
            synced_at=now if external_id else None,
            upload_session_id=upload_session_id,
            expires_at=retention_deadline(now),
        )
        try:
            await _insert(db, record)
        except ConflictError:
            # Lost the insert race; fold into the winner's record instead.
            logger.info("Dedup conflict on %s %r, retrying as update", object_type, dedup_key)
            existing = await _find(db, account_id, object_type, dedup_key)
            if existing is None:
                raise
        else:
            await db.commit()
            return UpsertResult(id=record.id, action="created")

    _merge(existing, properties, now, external_id, upload_session_id)
    await db.commit()
    return UpsertResult(id=existing.id, action="updated")


def split_row_properties(row_data: dict) -> tuple[dict, dict]:
    """Contact and company property sets carried by a merged row."""
    contact = {
        name: row_data[name]
        for name in CONTACT_PROPERTIES
        if row_data.get(name) not in (None, "")
    }
    company_name = (
        row_data.get("official_company_name")
        or row_data.get("company")
        or row_data.get("institution")
    )
    company = {
        name: row_data[name]
        for name in COMPANY_PROPERTIES
        if name != "name" and row_data.get(name) not in (None, "")
    }
    if company_name:
        company["name"] = company_name
    return contact, company


async def store_sync_result(
    db: AsyncSession,
    account_id: uuid.UUID,
    row_data: dict,
    contact_id: str | None = None,
    company_id: str | None = None,
    upload_session_id: uuid.UUID | None = None,
) -> list[UpsertResult]:
    """Record what a synced row pushed to the CRM."""
    contact, company = split_row_properties(row_data)
    results = []
    if contact:
        results.append(
            await upsert_record(
                db, account_id, "contacts", contact,
                external_id=contact_id, upload_session_id=upload_session_id,
            )
        )
    if company:
        results.append(
            await upsert_record(
                db, account_id, "companies", company,
                external_id=company_id, upload_session_id=upload_session_id,
            )
        )
    return results


async def get_record(db: AsyncSession, record_id: uuid.UUID) -> CrmRecord | None:
    stmt = (
        select(CrmRecord)
        .where(CrmRecord.id == record_id)
        .execution_options(populate_existing=True)
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def list_records(
    db: AsyncSession,
    account_id: uuid.UUID,
    object_type: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[CrmRecord]:
    stmt = select(CrmRecord).where(CrmRecord.account_id == account_id)
    if object_type:
        stmt = stmt.where(CrmRecord.object_type == object_type)
    stmt = (
        stmt.order_by(CrmRecord.updated_at.desc())
        .offset(offset)
        .limit(limit)
        .execution_options(populate_existing=True)
    )
    return list((await db.execute(stmt)).scalars().all())


async def purge_expired_records(
    db: AsyncSession,
    account_id: uuid.UUID | None = None,
    now: datetime | None = None,
) -> int:
    """Delete records whose expiry is strictly before ``now``."""
    now = now or datetime.now(timezone.utc)
    stmt = (
        delete(CrmRecord)
        .where(CrmRecord.expires_at < now)
        .execution_options(synchronize_session=False)
    )
    if account_id is not None:
        stmt = stmt.where(CrmRecord.account_id == account_id)
    result = await db.execute(stmt)
    await db.commit()
    purged = result.rowcount or 0
    if purged:
        logger.info("Purged %d expired CRM records (retention %d days)", purged, settings.retention_days)
    return purged
