# tests/unit/test_factory.py

from __future__ import annotations
import sys
from pathlib import Path
import pytest

# Make "src" importable
sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

from askai.providers.registry import ProviderRegistry
from askai.providers.factory import create_client, determine_provider
from askai.providers.anthropic_adapter import AnthropicAdapter
from askai.providers.deepseek_adapter import DeepSeekAdapter
from askai.providers.google_adapter import GoogleAdapter
from askai.providers.ollama_adapter import OllamaAdapter
from askai.providers.openai_adapter import OpenAIAdapter
from askai.providers.subprocess_adapter import SubprocessAdapter
from askai.secrets.sources import SecretsResolver


def test_registry_register_and_get():
    @ProviderRegistry.register("Dummy")
    class DummyProvider:
        pass

    # Case-insensitive lookup
    assert ProviderRegistry.get("dummy") is DummyProvider
    assert ProviderRegistry.get("DUMMY") is DummyProvider
    assert DummyProvider.name == "dummy"


def test_registry_unknown_raises():
    with pytest.raises(KeyError):
        ProviderRegistry.get("does-not-exist")


def test_builtins_registered():
    ProviderRegistry.ensure_imports()
    names = ProviderRegistry.names()
    for name in ("openai", "anthropic", "google", "ollama", "deepseek", "subprocess"):
        assert name in names


@pytest.mark.parametrize("model,provider", [
    ("claude-3-7-sonnet-20250219", "anthropic"),
    ("CLAUDE-instant", "anthropic"),
    ("gemini-2.0-flash-001", "google"),
    ("llama2:latest", "ollama"),
    ("mistral:latest", "ollama"),
    ("phi3", "ollama"),
    ("deepseek-chat", "deepseek"),
    ("gpt-4", "openai"),
    ("chatgpt-4o-latest", "openai"),
    ("something-else", "openai"),
])
def test_determine_provider(model, provider):
    assert determine_provider(model) == provider


@pytest.mark.parametrize("model,cls", [
    ("claude-3-haiku", AnthropicAdapter),
    ("gemini-pro", GoogleAdapter),
    ("llama3", OllamaAdapter),
    ("deepseek-chat", DeepSeekAdapter),
    ("gpt-4o", OpenAIAdapter),
])
def test_create_client_routes_by_name(model, cls):
    client = create_client(model, secrets=SecretsResolver(method="env"))
    assert isinstance(client, cls)
    assert client.get_model_name() == model


def test_create_client_applies_override_and_explicit_provider():
    client = create_client("whatever", {"max_tokens": 64}, provider="subprocess")
    assert isinstance(client, SubprocessAdapter)
    assert client._config.max_tokens == 64
