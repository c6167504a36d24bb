"""CSV export of a session's rows."""

from __future__ import annotations

import csv
import io
from typing import Iterable

from ..models.session import UploadRow

ERROR_COLUMN = "_error"


def select_rows(rows: Iterable[UploadRow], filter_name: str) -> list[UploadRow]:
    if filter_name == "clean":
        return [r for r in rows if r.status != "failed"]
    if filter_name == "flagged":
        return [r for r in rows if r.status == "failed"]
    return list(rows)


def export_records(rows: Iterable[UploadRow], filter_name: str = "all") -> list[dict]:
    """Raw cells overlaid with enrichment, plus the error for flagged rows."""
    records = []
    for row in select_rows(rows, filter_name):
        merged = row.merged_data
        if filter_name == "flagged" and row.error_message:
            merged[ERROR_COLUMN] = row.error_message
        records.append(merged)
    return records


def export_filename(file_name: str | None, filter_name: str) -> str:
    stem = (file_name or "export").rsplit(".", 1)[0] or "export"
    suffix = {"clean": "_clean", "flagged": "_flagged"}.get(filter_name, "")
    return f"{stem}{suffix}_export.csv"


def rows_to_csv(records: list[dict]) -> str:
    # Union of keys in first-seen order
    columns: list[str] = []
    for record in records:
        for key in record:
            if key not in columns:
                columns.append(key)

    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=columns, extrasaction="ignore")
    writer.writeheader()
    for record in records:
        writer.writerow({k: "" if v is None else v for k, v in record.items()})
    return buffer.getvalue()
