# tests/unit/test_anthropic_adapter.py

from __future__ import annotations
import asyncio
import sys
from pathlib import Path
from types import SimpleNamespace as NS
from typing import Any, Dict, List

# Make "src" importable
sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

import askai.providers.anthropic_adapter as aa
from askai.core.models import GenerationConfig, Message, Usage
from askai.secrets.sources import SecretsResolver


async def _events(items):
    for item in items:
        yield item


STREAM_EVENTS = [
    NS(type="message_start", message=NS(usage=NS(input_tokens=9, output_tokens=1))),
    NS(type="content_block_start", index=0),
    NS(type="content_block_delta", delta=NS(type="text_delta", text="Hel")),
    NS(type="content_block_delta", delta=NS(type="text_delta", text="lo")),
    NS(type="content_block_delta", delta=NS(type="text_delta", text="!")),
    NS(type="content_block_stop", index=0),
    NS(type="message_delta", delta=NS(stop_reason="end_turn"), usage=NS(output_tokens=5)),
    NS(type="message_stop"),
]


class _FakeMessages:
    def __init__(self, parent) -> None:
        self.parent = parent

    async def create(self, **kwargs):
        self.parent.calls.append(kwargs)
        if kwargs.get("stream"):
            return _events(self.parent.stream_events)
        return NS(
            content=[NS(type="text", text="Hi "), NS(type="text", text="there")],
            stop_reason="end_turn",
            usage=NS(input_tokens=10, output_tokens=3),
        )


class _FakeAnthropic:
    last: "_FakeAnthropic" = None
    stream_events: List[Any] = STREAM_EVENTS

    def __init__(self, **kwargs) -> None:
        self.kwargs = kwargs
        self.calls: List[Dict[str, Any]] = []
        self.messages = _FakeMessages(self)
        _FakeAnthropic.last = self


def _adapter(monkeypatch, **cfg):
    monkeypatch.setattr(aa, "AsyncAnthropic", _FakeAnthropic, raising=True)
    return aa.AnthropicAdapter(
        GenerationConfig("claude-3-7-sonnet-20250219", api_key="sk-ant", **cfg),
        secrets=SecretsResolver(method="env"),
    )


def test_send_extracts_system_and_defaults_max_tokens(monkeypatch):
    adapter = _adapter(monkeypatch)
    resp = asyncio.run(adapter.send([
        Message("system", "You are terse."),
        Message("user", "hi"),
        Message("assistant", "hello"),
        Message("user", "again"),
    ]))

    call = _FakeAnthropic.last.calls[0]
    assert call["system"] == "You are terse."
    assert [m["role"] for m in call["messages"]] == ["user", "assistant", "user"]
    assert call["max_tokens"] == aa.DEFAULT_MAX_TOKENS == 1024
    assert "temperature" not in call

    assert resp.content == "Hi there"
    assert resp.finish_reason == "end_turn"
    assert resp.usage == Usage(10, 3, 13)


def test_no_system_field_without_system_message(monkeypatch):
    adapter = _adapter(monkeypatch, max_tokens=200, temperature=0.1)
    asyncio.run(adapter.send([Message("user", "hi")]))
    call = _FakeAnthropic.last.calls[0]
    assert "system" not in call
    assert call["max_tokens"] == 200 and call["temperature"] == 0.1


def test_stream_text_deltas_and_output_tokens(monkeypatch):
    adapter = _adapter(monkeypatch)

    async def scenario():
        data: List[str] = []
        stream = adapter.send_stream([Message("user", "hi")]).on("data", data.append)
        resp = await stream.result()
        return data, resp

    data, resp = asyncio.run(scenario())
    assert data == ["Hel", "lo", "!"]
    assert resp.content == "Hello!"
    assert resp.usage.completion_tokens == 5
    # prompt count is not taken from the stream
    assert resp.usage.prompt_tokens == 0
    assert resp.usage.total_tokens == 5
    assert resp.finish_reason == "end_turn"
    assert _FakeAnthropic.last.calls[0]["stream"] is True


def test_stream_sums_output_tokens_across_deltas(monkeypatch):
    events = [
        NS(type="content_block_delta", delta=NS(type="text_delta", text="a")),
        NS(type="message_delta", delta=NS(stop_reason=None), usage=NS(output_tokens=2)),
        NS(type="content_block_delta", delta=NS(type="text_delta", text="b")),
        NS(type="message_delta", delta=NS(stop_reason="max_tokens"), usage=NS(output_tokens=3)),
        NS(type="message_stop"),
    ]
    monkeypatch.setattr(_FakeAnthropic, "stream_events", events)
    adapter = _adapter(monkeypatch)

    async def scenario():
        return await adapter.send_stream([Message("user", "hi")]).result()

    resp = asyncio.run(scenario())
    assert resp.content == "ab"
    assert resp.usage.completion_tokens == 5
    assert resp.usage.total_tokens == 5
