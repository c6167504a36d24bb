"""Completion clients for AI-model enrichment steps."""

from __future__ import annotations

import logging
from typing import Protocol

import anthropic
import httpx

from ..config import settings
from ..engine.enrichment import ModelSpec
from ..errors import ConfigurationError, ExternalServiceError

logger = logging.getLogger(__name__)

AZURE_API_VERSION = "2024-02-01"


class CompletionService(Protocol):
    async def complete(self, model: ModelSpec, prompt: str, api_key: str) -> str: ...


class AnthropicCompletionService:
    """Claude models through the Anthropic SDK."""

    def __init__(self, max_tokens: int | None = None):
        self.max_tokens = max_tokens or settings.ai_max_tokens

    async def complete(self, model: ModelSpec, prompt: str, api_key: str) -> str:
        client = anthropic.AsyncAnthropic(
            api_key=api_key,
            base_url=model.base_url or None,
            timeout=settings.ai_timeout_seconds,
        )
        try:
            message = await client.messages.create(
                model=model.model_id,
                max_tokens=self.max_tokens,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APIError as exc:
            raise ExternalServiceError(str(exc)) from exc
        finally:
            await client.close()
        return "".join(
            block.text for block in message.content if getattr(block, "type", None) == "text"
        )


class OpenAICompatibleCompletionService:
    """Any chat-completions endpoint (OpenAI, Azure OpenAI, self-hosted)."""

    def __init__(self, max_tokens: int | None = None, transport: httpx.AsyncBaseTransport | None = None):
        self.max_tokens = max_tokens or settings.ai_max_tokens
        self._transport = transport

    def _request_target(self, model: ModelSpec, api_key: str) -> tuple[str, dict, dict]:
        if model.provider == "azure-openai":
            if not model.base_url:
                raise ConfigurationError("Azure OpenAI models require a base_url")
            url = (
                f"{model.base_url.rstrip('/')}/openai/deployments/{model.model_id}"
                "/chat/completions"
            )
            return url, {"api-key": api_key}, {"api-version": AZURE_API_VERSION}

        base_url = model.base_url
        if not base_url:
            if model.provider != "openai":
                raise ConfigurationError(f"Provider {model.provider!r} requires a base_url")
            base_url = settings.default_openai_base_url
        url = f"{base_url.rstrip('/')}/chat/completions"
        return url, {"Authorization": f"Bearer {api_key}"}, {}

    async def complete(self, model: ModelSpec, prompt: str, api_key: str) -> str:
        url, headers, params = self._request_target(model, api_key)
        body = {
            "model": model.model_id,
            "max_tokens": self.max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        async with httpx.AsyncClient(
            timeout=settings.ai_timeout_seconds, transport=self._transport
        ) as client:
            try:
                resp = await client.post(url, json=body, headers=headers, params=params)
                resp.raise_for_status()
            except httpx.HTTPStatusError as exc:
                raise ExternalServiceError(
                    f"{model.provider} returned {exc.response.status_code}: {exc.response.text[:200]}"
                ) from exc
            except httpx.HTTPError as exc:
                raise ExternalServiceError(str(exc) or type(exc).__name__) from exc

        try:
            return resp.json()["choices"][0]["message"]["content"] or ""
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise ExternalServiceError(f"Unexpected {model.provider} response shape") from exc


class CompletionRouter:
    """Picks a completion client by provider."""

    def __init__(
        self,
        anthropic_service: CompletionService | None = None,
        openai_service: CompletionService | None = None,
    ):
        self._anthropic = anthropic_service or AnthropicCompletionService()
        self._openai = openai_service or OpenAICompatibleCompletionService()

    async def complete(self, model: ModelSpec, prompt: str, api_key: str) -> str:
        service = self._anthropic if model.provider == "anthropic" else self._openai
        logger.debug("Completion via %s:%s", model.provider, model.model_id)
        return await service.complete(model, prompt, api_key)
