"""API-key resolution for enrichment providers."""

from __future__ import annotations

import os
from typing import Callable

from ..errors import ConfigurationError


def provider_key_name(provider: str) -> str:
    """Conventional secret name for a provider, e.g. ``AZURE_OPENAI_API_KEY``."""
    return f"{provider.strip().upper().replace('-', '_')}_API_KEY"


class SecretResolver:
    """Looks up provider keys in a fixed order.

    1. the inline key stored on the model, unless the model opts into env keys
    2. the model's named secret
    3. the provider's conventional secret name
    """

    def __init__(self, lookup: Callable[[str], str | None] | None = None):
        self._lookup = lookup or os.environ.get

    def lookup(self, name: str) -> str | None:
        value = self._lookup(name)
        return value.strip() if value and value.strip() else None

    def resolve(
        self,
        provider: str,
        inline_key: str | None = None,
        secret_name: str | None = None,
        use_named_secret: bool = False,
    ) -> str:
        if inline_key and inline_key.strip() and not use_named_secret:
            return inline_key.strip()
        if secret_name:
            value = self.lookup(secret_name)
            if value:
                return value
        convention = provider_key_name(provider)
        value = self.lookup(convention)
        if value:
            return value
        tried = ", ".join(name for name in (secret_name, convention) if name)
        raise ConfigurationError(f"No API key configured for provider {provider!r} (checked {tried})")
