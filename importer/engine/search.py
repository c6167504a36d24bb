"""Search-result shapes, query hints and per-output extraction strategies."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Callable, Mapping
from urllib.parse import urlparse


@dataclass(frozen=True)
class OrganicResult:
    title: str = ""
    link: str = ""
    snippet: str = ""


@dataclass(frozen=True)
class SearchResults:
    knowledge_graph_title: str | None = None
    organic: tuple[OrganicResult, ...] = field(default_factory=tuple)

    @property
    def is_empty(self) -> bool:
        return not self.knowledge_graph_title and not self.organic

    @classmethod
    def from_payload(cls, payload: dict | None) -> SearchResults:
        """Build from a SerpAPI-style JSON payload."""
        payload = payload or {}
        graph = payload.get("knowledge_graph") or {}
        organic = tuple(
            OrganicResult(
                title=str(item.get("title") or ""),
                link=str(item.get("link") or ""),
                snippet=str(item.get("snippet") or ""),
            )
            for item in payload.get("organic_results") or []
            if isinstance(item, dict)
        )
        title = graph.get("title") if isinstance(graph, dict) else None
        return cls(knowledge_graph_title=str(title) if title else None, organic=organic)


# Extra words appended to the query, keyed by output field id
QUERY_HINTS: dict[str, str] = {
    "official_company_name": "official name",
    "domain": "official website",
}

_TITLE_SUFFIX = re.compile(r"\s*[-|–]\s*.+$")


def build_search_query(input_fields: list[str], row: dict, output_id: str) -> str:
    parts = [
        str(row[name]).strip()
        for name in input_fields
        if row.get(name) is not None and str(row[name]).strip()
    ]
    hint = QUERY_HINTS.get(output_id)
    if hint:
        parts.append(hint)
    return " ".join(parts)


def _hostname(link: str) -> str | None:
    host = urlparse(link).hostname
    if not host:
        return None
    return host.replace("www.", "", 1)


def extract_company_name(results: SearchResults, row: Mapping) -> str | None:
    if results.knowledge_graph_title:
        return results.knowledge_graph_title

    institution = str(row.get("institution") or "").lower()
    for item in results.organic:
        if (
            "official" in item.snippet.lower()
            or institution in item.title.lower()
            or ".edu" in item.link
            or "wikipedia" in item.link
        ):
            if not item.title:
                return None
            return _TITLE_SUFFIX.sub("", item.title).strip()
    return None


def extract_domain(results: SearchResults, row: Mapping) -> str | None:
    if not results.organic:
        return None

    token = re.sub(r"\s+", "", str(row.get("institution") or "").lower())[:10]
    for item in results.organic:
        if ".edu" in item.link or token in item.link:
            return _hostname(item.link) if item.link else None

    first = results.organic[0]
    return _hostname(first.link) if first.link else None


Extractor = Callable[[SearchResults, Mapping], "str | None"]

EXTRACTORS: dict[str, Extractor] = {
    "official_company_name": extract_company_name,
    "domain": extract_domain,
}
