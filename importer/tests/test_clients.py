"""Tests for the outbound AI, search and CRM clients using mocked transports."""

from __future__ import annotations

import json
import uuid

import httpx
import pytest

from importer.engine.enrichment import ModelSpec
from importer.errors import ConfigurationError, ExternalServiceError
from importer.services.ai_svc import CompletionRouter, OpenAICompatibleCompletionService
from importer.services.crm_sync import LocalSyncTarget, WebhookSyncTarget
from importer.services.search_svc import SerpApiSearchService
from importer.tests.fakes import FakeCompletions

ACCOUNT = uuid.UUID("00000000-0000-0000-0000-000000000abc")


def chat_reply(content: str) -> httpx.Response:
    return httpx.Response(200, json={"choices": [{"message": {"content": content}}]})


@pytest.mark.asyncio
async def test_openai_request_shape():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("authorization")
        seen["body"] = json.loads(request.content)
        return chat_reply("Software")

    service = OpenAICompatibleCompletionService(max_tokens=64, transport=httpx.MockTransport(handler))
    model = ModelSpec(provider="openai", model_id="gpt-4o-mini", base_url="https://llm.test/v1/")

    assert await service.complete(model, "hello", "sk-test") == "Software"
    assert seen["url"] == "https://llm.test/v1/chat/completions"
    assert seen["auth"] == "Bearer sk-test"
    assert seen["body"]["model"] == "gpt-4o-mini"
    assert seen["body"]["max_tokens"] == 64
    assert seen["body"]["messages"] == [{"role": "user", "content": "hello"}]


@pytest.mark.asyncio
async def test_azure_request_uses_deployment_url_and_api_key_header():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = request.url
        seen["key"] = request.headers.get("api-key")
        return chat_reply("ok")

    service = OpenAICompatibleCompletionService(transport=httpx.MockTransport(handler))
    model = ModelSpec(provider="azure-openai", model_id="prod-gpt", base_url="https://corp.openai.azure.com")

    await service.complete(model, "hi", "azure-key")

    assert seen["url"].path == "/openai/deployments/prod-gpt/chat/completions"
    assert seen["url"].params["api-version"] == "2024-02-01"
    assert seen["key"] == "azure-key"


@pytest.mark.asyncio
async def test_azure_without_base_url_is_configuration_error():
    service = OpenAICompatibleCompletionService()
    with pytest.raises(ConfigurationError):
        await service.complete(ModelSpec(provider="azure-openai", model_id="x"), "hi", "k")


@pytest.mark.asyncio
async def test_http_errors_become_external_service_errors():
    service = OpenAICompatibleCompletionService(
        transport=httpx.MockTransport(lambda request: httpx.Response(429, text="slow down"))
    )
    with pytest.raises(ExternalServiceError) as exc_info:
        await service.complete(ModelSpec(provider="openai", model_id="x"), "hi", "k")
    assert "429" in str(exc_info.value)


@pytest.mark.asyncio
async def test_unexpected_response_shape():
    service = OpenAICompatibleCompletionService(
        transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"choices": []}))
    )
    with pytest.raises(ExternalServiceError):
        await service.complete(ModelSpec(provider="openai", model_id="x"), "hi", "k")


@pytest.mark.asyncio
async def test_router_sends_anthropic_models_to_anthropic_client():
    claude = FakeCompletions(default="from claude")
    other = FakeCompletions(default="from openai")
    router = CompletionRouter(anthropic_service=claude, openai_service=other)

    assert await router.complete(ModelSpec(provider="anthropic", model_id="c"), "p", "k") == "from claude"
    assert await router.complete(ModelSpec(provider="groq", model_id="g"), "p", "k") == "from openai"


@pytest.mark.asyncio
async def test_serp_search_parses_results():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["params"] = dict(request.url.params)
        return httpx.Response(
            200,
            json={
                "knowledge_graph": {"title": "Acme Corporation"},
                "organic_results": [{"title": "Acme", "link": "https://acme.com", "snippet": "official"}],
            },
        )

    service = SerpApiSearchService(base_url="https://serp.test/search.json", transport=httpx.MockTransport(handler))
    results = await service.search("acme official name", "serp-key")

    assert seen["params"] == {"q": "acme official name", "api_key": "serp-key"}
    assert results.knowledge_graph_title == "Acme Corporation"
    assert results.organic[0].link == "https://acme.com"


@pytest.mark.asyncio
async def test_serp_search_errors():
    service = SerpApiSearchService(
        transport=httpx.MockTransport(lambda request: httpx.Response(401, json={"error": "bad key"}))
    )
    with pytest.raises(ExternalServiceError):
        await service.search("q", "k")


@pytest.mark.asyncio
async def test_webhook_sync_target_posts_split_properties():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"contact_id": "c-9", "company_id": "co-9"})

    target = WebhookSyncTarget("https://crm.test/hook", transport=httpx.MockTransport(handler))
    result = await target.sync_row(ACCOUNT, {"email": "a@acme.com", "company": "Acme"})

    assert result.contact_id == "c-9"
    assert result.company_id == "co-9"
    assert seen["body"]["account_id"] == str(ACCOUNT)
    assert seen["body"]["contact"] == {"email": "a@acme.com", "company": "Acme"}
    assert seen["body"]["company"] == {"name": "Acme"}


@pytest.mark.asyncio
async def test_webhook_sync_target_raises_on_failure():
    target = WebhookSyncTarget(
        "https://crm.test/hook",
        transport=httpx.MockTransport(lambda request: httpx.Response(500, text="down")),
    )
    with pytest.raises(ExternalServiceError) as exc_info:
        await target.sync_row(ACCOUNT, {"email": "a@acme.com"})
    assert str(exc_info.value) == "CRM returned 500: down"


@pytest.mark.asyncio
async def test_local_sync_target_mints_ids_for_present_objects():
    result = await LocalSyncTarget().sync_row(ACCOUNT, {"email": "a@acme.com"})
    assert result.contact_id.startswith("local-")
    assert result.company_id is None
