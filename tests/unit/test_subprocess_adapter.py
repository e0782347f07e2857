# tests/unit/test_subprocess_adapter.py

from __future__ import annotations
import asyncio
import sys
from pathlib import Path

import pytest

# Make "src" importable
sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

from askai.core.errors import ProviderClientError, ProviderError
from askai.core.models import GenerationConfig, Message
from askai.providers.subprocess_adapter import SubprocessAdapter

# Child echoes its argv so tests can see what it was given
ECHO = "import sys; sys.stdout.write('|'.join(sys.argv[1:]))"
FAIL = "import sys; sys.stderr.write('no such model'); sys.exit(3)"


def _adapter(script: str) -> SubprocessAdapter:
    return SubprocessAdapter(GenerationConfig("llama2:latest"), command=[sys.executable, "-c", script])


def test_send_forwards_last_user_turn_only():
    resp = asyncio.run(_adapter(ECHO).send([
        Message("system", "sys"),
        Message("user", "first"),
        Message("assistant", "reply"),
        Message("user", "second question"),
    ]))
    args = resp.content.split("|")
    assert args[0] == "second question"
    assert args[1:] == ["--model", "llama2:latest", "--plain", "--no-history", "--no-stream"]
    assert resp.finish_reason == "stop"


def test_stream_relays_stdout():
    async def scenario():
        return [e async for e in _adapter(ECHO).send_stream([Message("user", "hi")])]

    events = asyncio.run(scenario())
    assert events[-1].kind == "done"
    text = "".join(e.payload for e in events if e.kind == "data")
    assert text == events[-1].payload.content
    assert text.endswith("--stream")


def test_nonzero_exit_raises_with_stderr():
    with pytest.raises(ProviderError) as ei:
        asyncio.run(_adapter(FAIL).send([Message("user", "hi")]))
    assert "no such model" in str(ei.value)
    assert ei.value.provider == "subprocess"


def test_nonzero_exit_in_stream_is_error_event():
    async def scenario():
        return [e async for e in _adapter(FAIL).send_stream([Message("user", "hi")])]

    events = asyncio.run(scenario())
    assert [e.kind for e in events] == ["error"]


def test_requires_a_user_message():
    with pytest.raises(ProviderClientError):
        asyncio.run(_adapter(ECHO).send([Message("system", "only")]))


def test_is_available():
    assert asyncio.run(_adapter(ECHO).is_available()) is True
    missing = SubprocessAdapter(GenerationConfig("m"), command=["definitely-not-a-real-binary-xyz"])
    assert asyncio.run(missing.is_available()) is False


def test_trailing_newline_is_dropped():
    script = "print('hello')"

    async def scenario():
        return [e async for e in _adapter(script).send_stream([Message("user", "hi")])]

    assert asyncio.run(_adapter(script).send([Message("user", "hi")])).content == "hello"
    events = asyncio.run(scenario())
    assert "".join(e.payload for e in events if e.kind == "data") == "hello"
    assert events[-1].payload.content == "hello"


def test_inner_newlines_are_kept():
    script = "print('one'); print('two')"
    resp = asyncio.run(_adapter(script).send([Message("user", "hi")]))
    assert resp.content == "one\ntwo"
