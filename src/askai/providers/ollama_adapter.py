# src/askai/providers/ollama_adapter.py
from __future__ import annotations
import json
import logging
import os
from typing import Any, Dict, List, Mapping, Optional, Sequence

import httpx

from askai.core.errors import LLMError, ProviderError, classify_exception
from askai.core.models import GenerationConfig, Message, Response
from askai.core.normalize import as_int, finish_reason_of, make_usage, pluck, sum_tokens, text_or_empty, wire_messages
from askai.core.streaming import CancelToken, Emit, StreamingEmitter
from askai.providers.registry import ProviderRegistry
from askai.secrets.sources import SecretsResolver

log = logging.getLogger(__name__)

DEFAULT_OLLAMA = "http://localhost:11434"
HEALTH_TIMEOUT = 3.0
# One local generation may run for minutes
REQUEST_TIMEOUT = 300.0


def resolve_base_url(base_url: Optional[str] = None) -> str:
    return (base_url or os.getenv("OLLAMA_BASE_URL") or DEFAULT_OLLAMA).rstrip("/")


def build_chat_payload(cfg: GenerationConfig, messages: Sequence[Message], *, stream: bool) -> Dict[str, Any]:
    # Ollama accepts system turns inline
    options: Dict[str, Any] = {}
    if cfg.max_tokens is not None:
        options["num_predict"] = cfg.max_tokens
    if cfg.temperature is not None:
        options["temperature"] = cfg.temperature
    payload: Dict[str, Any] = {
        "model": cfg.model_name,
        "messages": wire_messages(messages),
        "stream": stream,
    }
    if options:
        payload["options"] = options
    return payload


def _usage_of(obj: Dict[str, Any]):
    # eval counts are Ollama's names for completion / prompt tokens
    prompt = as_int(obj.get("prompt_eval_count"))
    completion = as_int(obj.get("eval_count"))
    return make_usage(prompt, completion, sum_tokens(prompt, completion))


@ProviderRegistry.register("ollama")
class OllamaAdapter:
    """
    Local models served by Ollama's HTTP API (/api/chat, /api/tags).
    No credential: availability is a short GET against /api/tags.
    Streaming is native: the server sends one JSON object per line.
    """

    name = "ollama"

    def __init__(
        self,
        config: GenerationConfig,
        *,
        secrets: Optional[SecretsResolver] = None,
        base_url: Optional[str] = None,
        timeout: float = REQUEST_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._config = config
        self.model = config.model_name
        # Unused: local models need no key. Accepted so the factory can treat adapters alike.
        self._secrets = secrets
        self.base_url = resolve_base_url(base_url)
        self.timeout = timeout
        self._transport = transport

    def _http(self, timeout: Optional[float] = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout if timeout is None else timeout,
            transport=self._transport,
        )

    def get_model_name(self) -> str:
        return self.model

    async def is_available(self) -> bool:
        try:
            async with self._http(timeout=HEALTH_TIMEOUT) as http:
                r = await http.get("/api/tags")
            return r.status_code == 200
        except httpx.HTTPError as e:
            log.info("Ollama not reachable at %s (%s)", self.base_url, e)
            return False

    async def send(self, messages: Sequence[Message], override: Optional[Mapping[str, Any]] = None) -> Response:
        cfg = self._config.merged(override)
        try:
            async with self._http() as http:
                r = await http.post("/api/chat", json=build_chat_payload(cfg, messages, stream=False))
                r.raise_for_status()
                data = r.json()
        except LLMError:
            raise
        except Exception as e:
            raise classify_exception(e, self.name) from e

        if not isinstance(data, dict):
            log.warning("Malformed ollama response: %r", type(data).__name__)
            data = {}
        if data.get("error"):
            raise ProviderError(str(data["error"]), provider=self.name)
        return Response(
            content=text_or_empty(pluck(data, "message", "content"), provider=self.name),
            finish_reason=finish_reason_of(data.get("done_reason")),
            usage=_usage_of(data),
        )

    def send_stream(
        self,
        messages: Sequence[Message],
        override: Optional[Mapping[str, Any]] = None,
        *,
        cancel: Optional[CancelToken] = None,
    ) -> StreamingEmitter:
        msgs = list(messages)

        async def produce(emit: Emit) -> Response:
            payload = build_chat_payload(self._config.merged(override), msgs, stream=True)
            parts: List[str] = []
            final: Dict[str, Any] = {}
            async with self._http() as http:
                async with http.stream("POST", "/api/chat", json=payload) as r:
                    r.raise_for_status()
                    async for line in r.aiter_lines():
                        if not line.strip():
                            continue
                        # each line: {"message": {"role": "...", "content": "Δ"}, "done": bool, ...}
                        try:
                            obj = json.loads(line)
                        except ValueError:
                            log.warning("Skipping undecodable ollama stream line: %.80s", line)
                            continue
                        if obj.get("error"):
                            raise ProviderError(str(obj["error"]), provider=self.name)
                        piece = pluck(obj, "message", "content")
                        if piece:
                            parts.append(piece)
                            emit(piece)
                        if obj.get("done"):
                            final = obj
                            break
            return Response(
                content="".join(parts),
                finish_reason=finish_reason_of(final.get("done_reason")),
                usage=_usage_of(final),
            )

        return StreamingEmitter(produce, provider=self.name, cancel=cancel)
