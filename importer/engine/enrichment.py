"""Enrichment executor: runs configured steps against a single row.

Row-level failures are values, not exceptions. ``enrich_row`` always
returns an ``Enriched`` or ``Failed`` outcome; only programming errors
escape.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Protocol

from ..errors import ConfigurationError, ImporterError
from .pacer import CallPacer
from .search import EXTRACTORS, SearchResults, build_search_query
from .targets import OutputTarget, parse_output_target

if TYPE_CHECKING:
    from ..models.enrichment import EnrichmentConfig
    from ..services.secrets import SecretResolver

logger = logging.getLogger(__name__)

AI_MODEL = "ai-model"
SEARCH_API = "search-api"

_PLACEHOLDER = re.compile(r"\[([^\[\]]+)\]")


class _NoResults(Exception):
    pass


@dataclass(frozen=True)
class ModelSpec:
    provider: str
    model_id: str
    api_key: str | None = None
    use_env_key: bool = False
    env_key_name: str | None = None
    base_url: str | None = None


@dataclass(frozen=True)
class EnrichmentStep:
    id: str
    name: str
    service: str
    output: OutputTarget
    input_fields: tuple[str, ...] = ()
    prompt_template: str | None = None
    model: ModelSpec | None = None
    enabled: bool = True
    order: int = 0

    @classmethod
    def from_config(cls, config: EnrichmentConfig) -> EnrichmentStep:
        ai_model = config.ai_model
        # A "serp" model row, or no model at all, means a search-backed step
        if ai_model is not None and ai_model.provider != "serp":
            service = AI_MODEL
            model = ModelSpec(
                provider=ai_model.provider,
                model_id=ai_model.model_id,
                api_key=ai_model.api_key,
                use_env_key=ai_model.use_env_key,
                env_key_name=ai_model.env_key_name,
                base_url=ai_model.base_url,
            )
        else:
            service = AI_MODEL if ai_model is None and config.service == AI_MODEL else SEARCH_API
            model = None
        return cls(
            id=str(config.id),
            name=config.name,
            service=service,
            output=parse_output_target(config.output_field),
            input_fields=tuple(config.input_fields or ()),
            prompt_template=config.prompt_template,
            model=model,
            enabled=config.is_enabled,
            order=config.execution_order,
        )


@dataclass(frozen=True)
class StepOutcome:
    value: str | None
    success: bool
    error: str | None = None


@dataclass(frozen=True)
class Enriched:
    enriched_data: dict


@dataclass(frozen=True)
class Failed:
    reason: str
    enriched_data: dict = field(default_factory=dict)


RowOutcome = Enriched | Failed


class CompletionClient(Protocol):
    async def complete(self, model: ModelSpec, prompt: str, api_key: str) -> str: ...


class SearchClient(Protocol):
    async def search(self, query: str, api_key: str) -> SearchResults: ...


def is_filled(value) -> bool:
    return value is not None and str(value).strip() != ""


def render_prompt(template: str, row: dict) -> str:
    """Replace ``[field]`` placeholders with row values.

    Placeholders naming a missing field are left as written.
    """
    def replacer(match):
        key = match.group(1).strip()
        value = row.get(key)
        return str(value) if value is not None else match.group(0)

    return _PLACEHOLDER.sub(replacer, template)


class EnrichmentExecutor:
    """Runs enrichment steps with injected AI, search and secret collaborators."""

    def __init__(
        self,
        completions: CompletionClient,
        search: SearchClient,
        secrets: SecretResolver,
        pacer: CallPacer,
    ):
        self.completions = completions
        self.search = search
        self.secrets = secrets
        self.pacer = pacer

    async def run_one(self, step: EnrichmentStep, row: dict) -> StepOutcome:
        if not step.enabled:
            return StepOutcome(value=None, success=False, error="Enrichment config is disabled")
        try:
            if step.service == AI_MODEL:
                value = await self._run_ai(step, row)
                error = "AI model returned an empty response"
            elif step.service == SEARCH_API:
                value = await self._run_search(step, row)
                error = "Could not extract value from search results"
            else:
                return StepOutcome(value=None, success=False, error=f"Unsupported service: {step.service}")
        except _NoResults:
            return StepOutcome(value=None, success=False, error="Search returned no results")
        except ImporterError as exc:
            logger.warning("Enrichment step %r failed: %s", step.name, exc)
            return StepOutcome(value=None, success=False, error=str(exc))

        if not value:
            return StepOutcome(value=None, success=False, error=error)
        return StepOutcome(value=value, success=True)

    async def _run_ai(self, step: EnrichmentStep, row: dict) -> str | None:
        model = step.model
        if model is None:
            raise ConfigurationError(f"Enrichment step {step.name!r} has no AI model")
        api_key = self.secrets.resolve(
            model.provider,
            inline_key=model.api_key,
            secret_name=model.env_key_name,
            use_named_secret=model.use_env_key,
        )
        prompt = render_prompt(step.prompt_template or "", row)
        await self.pacer.wait()
        text = await self.completions.complete(model, prompt, api_key)
        return text.strip() if text else None

    async def _run_search(self, step: EnrichmentStep, row: dict) -> str | None:
        output_id = step.output.primary
        query = build_search_query(list(step.input_fields), row, output_id)
        api_key = self.secrets.resolve("serp")
        await self.pacer.wait()
        results = await self.search.search(query, api_key)
        if results.is_empty:
            raise _NoResults()
        extractor = EXTRACTORS.get(output_id)
        if extractor is None:
            return None
        return extractor(results, MappingProxyType(row))

    async def enrich_row(
        self,
        steps: list[EnrichmentStep],
        raw_data: dict,
        enriched_data: dict | None = None,
    ) -> RowOutcome:
        """Run every enabled step in order and merge outputs additively."""
        merged = dict(enriched_data or {})
        view = {**raw_data, **merged}
        last_error: str | None = None

        for step in sorted(steps, key=lambda s: s.order):
            if not step.enabled:
                continue
            if all(is_filled(view.get(fid)) for fid in step.output.field_ids):
                continue

            outcome = await self.run_one(step, view)
            if not outcome.success:
                last_error = outcome.error or "Enrichment failed"
                continue

            target = step.output.primary
            if not is_filled(merged.get(target)):
                merged[target] = outcome.value
                view[target] = outcome.value

        if last_error is not None:
            return Failed(reason=last_error, enriched_data=merged)
        return Enriched(enriched_data=merged)

