from __future__ import annotations
from typing import Any, Mapping, Optional, Tuple

from askai.core.models import GenerationConfig
from askai.core.ports import ProviderClient
from askai.providers.registry import ProviderRegistry
from askai.secrets.sources import SecretsResolver

DEFAULT_PROVIDER = "openai"

# Checked in order; the first matching rule wins.
PROVIDER_RULES: Tuple[Tuple[Tuple[str, ...], str], ...] = (
    (("claude",), "anthropic"),
    (("gemini",), "google"),
    (("llama", "mistral", "phi"), "ollama"),
    (("deepseek",), "deepseek"),
)


def determine_provider(model_name: str) -> str:
    lowered = (model_name or "").lower()
    for keywords, provider in PROVIDER_RULES:
        if any(k in lowered for k in keywords):
            return provider
    return DEFAULT_PROVIDER


def create_client(
    model_name: str,
    override: Optional[Mapping[str, Any]] = None,
    *,
    provider: Optional[str] = None,
    secrets: Optional[SecretsResolver] = None,
    **adapter_kwargs: Any,
) -> ProviderClient:
    """
    Pick an adapter from the model name (or an explicit registry name) and build it.
    No I/O happens here: adapters resolve credentials on first use.
    """
    ProviderRegistry.ensure_imports()
    Adapter = ProviderRegistry.get(provider or determine_provider(model_name))
    config = GenerationConfig(model_name=model_name).merged(override)
    return Adapter(config, secrets=secrets or SecretsResolver(), **adapter_kwargs)
