"""SerpAPI client for search-backed enrichment steps."""

from __future__ import annotations

import httpx

from ..config import settings
from ..engine.search import SearchResults
from ..errors import ExternalServiceError


class SerpApiSearchService:
    def __init__(self, base_url: str | None = None, transport: httpx.AsyncBaseTransport | None = None):
        self.base_url = base_url or settings.serp_api_url
        self._transport = transport

    async def search(self, query: str, api_key: str) -> SearchResults:
        params = {"q": query, "api_key": api_key}
        async with httpx.AsyncClient(
            timeout=settings.search_timeout_seconds, transport=self._transport
        ) as client:
            try:
                resp = await client.get(self.base_url, params=params)
                resp.raise_for_status()
            except httpx.HTTPStatusError as exc:
                raise ExternalServiceError(
                    f"Search API returned {exc.response.status_code}"
                ) from exc
            except httpx.HTTPError as exc:
                raise ExternalServiceError(str(exc) or type(exc).__name__) from exc
        try:
            payload = resp.json()
        except ValueError as exc:
            raise ExternalServiceError("Search API returned invalid JSON") from exc
        return SearchResults.from_payload(payload)
