# tests/unit/test_ollama_adapter.py

from __future__ import annotations
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, List

import httpx
import pytest

# Make "src" importable
sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

from askai.core.errors import ProviderError, ProviderTransientError
from askai.core.models import GenerationConfig, Message, Usage
from askai.providers.ollama_adapter import DEFAULT_OLLAMA, REQUEST_TIMEOUT, OllamaAdapter, resolve_base_url


def _adapter(handler, **cfg) -> OllamaAdapter:
    return OllamaAdapter(
        GenerationConfig("llama2:latest", **cfg),
        base_url="http://ollama.test",
        transport=httpx.MockTransport(handler),
    )


def test_base_url_resolution(monkeypatch):
    monkeypatch.delenv("OLLAMA_BASE_URL", raising=False)
    assert resolve_base_url() == DEFAULT_OLLAMA
    monkeypatch.setenv("OLLAMA_BASE_URL", "http://gpu-box:11434")
    assert resolve_base_url() == "http://gpu-box:11434"
    assert resolve_base_url("http://explicit") == "http://explicit"


def test_send_posts_chat_and_maps_usage():
    seen: List[Dict[str, Any]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/chat"
        seen.append(json.loads(request.content))
        return httpx.Response(200, json={
            "message": {"role": "assistant", "content": "Hi!"},
            "done": True,
            "done_reason": "stop",
            "prompt_eval_count": 7,
            "eval_count": 3,
        })

    resp = asyncio.run(_adapter(handler, max_tokens=32).send([Message("system", "s"), Message("user", "hello")]))
    assert resp.content == "Hi!"
    assert resp.finish_reason == "stop"
    assert resp.usage == Usage(7, 3, 10)

    body = seen[0]
    assert body["model"] == "llama2:latest"
    assert body["stream"] is False
    assert body["messages"][0] == {"role": "system", "content": "s"}
    assert body["options"]["num_predict"] == 32


def test_send_error_payload_raises():
    def handler(request):
        return httpx.Response(200, json={"error": "model 'nope' not found"})

    with pytest.raises(ProviderError):
        asyncio.run(_adapter(handler).send([Message("user", "hi")]))


def test_server_error_is_transient():
    def handler(request):
        return httpx.Response(503, text="busy")

    with pytest.raises(ProviderTransientError):
        asyncio.run(_adapter(handler).send([Message("user", "hi")]))


def test_stream_reads_ndjson_lines():
    lines = [
        {"message": {"content": "Hel"}, "done": False},
        {"message": {"content": "lo"}, "done": False},
        {"message": {"content": ""}, "done": True, "done_reason": "stop", "prompt_eval_count": 2, "eval_count": 2},
    ]

    def handler(request):
        assert json.loads(request.content)["stream"] is True
        body = "\n".join(json.dumps(x) for x in lines) + "\n"
        return httpx.Response(200, content=body.encode("utf-8"))

    async def scenario():
        return [e async for e in _adapter(handler).send_stream([Message("user", "hi")])]

    events = asyncio.run(scenario())
    assert [e.payload for e in events if e.kind == "data"] == ["Hel", "lo"]
    assert events[-1].kind == "done"
    assert events[-1].payload.content == "Hello"
    assert events[-1].payload.usage == Usage(2, 2, 4)


def test_stream_error_line_ends_with_error_event():
    def handler(request):
        body = json.dumps({"message": {"content": "a"}, "done": False}) + "\n" + json.dumps({"error": "oom"}) + "\n"
        return httpx.Response(200, content=body.encode("utf-8"))

    async def scenario():
        return [e async for e in _adapter(handler).send_stream([Message("user", "hi")])]

    events = asyncio.run(scenario())
    assert [e.kind for e in events] == ["data", "error"]
    assert "oom" in str(events[-1].payload)


def test_is_available():
    def up(request):
        assert request.url.path == "/api/tags"
        return httpx.Response(200, json={"models": []})

    def down(request):
        raise httpx.ConnectError("refused", request=request)

    assert asyncio.run(_adapter(up).is_available()) is True
    assert asyncio.run(_adapter(down).is_available()) is False


def test_default_request_timeout():
    adapter = OllamaAdapter(GenerationConfig("llama2:latest"))
    assert adapter.timeout == REQUEST_TIMEOUT == 300.0
