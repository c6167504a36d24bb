"""Output targets for enrichment steps.

A step's ``output_field`` is stored either as a bare field id or as a JSON
array of ``{"id": ..., "type": ...}`` objects. Both shapes are normalized
here so nothing downstream needs to sniff strings.
"""

from __future__ import annotations

import json
from dataclasses import dataclass

from ..errors import ConfigurationError


@dataclass(frozen=True)
class OutputField:
    id: str
    type: str = "text"


@dataclass(frozen=True)
class SingleOutput:
    id: str

    @property
    def field_ids(self) -> tuple[str, ...]:
        return (self.id,)

    @property
    def primary(self) -> str:
        return self.id


@dataclass(frozen=True)
class MultiOutput:
    fields: tuple[OutputField, ...]

    @property
    def field_ids(self) -> tuple[str, ...]:
        return tuple(f.id for f in self.fields)

    @property
    def primary(self) -> str:
        return self.fields[0].id


OutputTarget = SingleOutput | MultiOutput


def _parse_field(item) -> OutputField:
    if isinstance(item, str) and item.strip():
        return OutputField(id=item.strip())
    if isinstance(item, dict) and str(item.get("id", "")).strip():
        return OutputField(id=str(item["id"]).strip(), type=str(item.get("type") or "text"))
    raise ConfigurationError(f"Invalid output field entry: {item!r}")


def parse_output_target(raw) -> OutputTarget:
    """Normalize a stored output declaration into an OutputTarget."""
    if isinstance(raw, (SingleOutput, MultiOutput)):
        return raw
    if isinstance(raw, list):
        items = raw
    elif isinstance(raw, str):
        text = raw.strip()
        if not text:
            raise ConfigurationError("Enrichment step has no output field")
        if not text.startswith("["):
            return SingleOutput(id=text)
        try:
            items = json.loads(text)
        except json.JSONDecodeError:
            # Not JSON after all; treat it as a literal field id
            return SingleOutput(id=text)
        if not isinstance(items, list):
            raise ConfigurationError(f"Output field must be a list, got {type(items).__name__}")
    else:
        raise ConfigurationError(f"Unsupported output field value: {raw!r}")

    fields = tuple(_parse_field(item) for item in items)
    if not fields:
        raise ConfigurationError("Enrichment step declares an empty output list")
    return MultiOutput(fields=fields)
