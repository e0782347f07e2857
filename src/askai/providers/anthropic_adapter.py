# src/askai/providers/anthropic_adapter.py
from __future__ import annotations
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from anthropic import AsyncAnthropic

from askai.core.errors import LLMError, classify_exception
from askai.core.models import GenerationConfig, Message, Response
from askai.core.normalize import as_int, finish_reason_of, make_usage, pluck, split_system, sum_tokens, text_or_empty
from askai.core.streaming import CancelToken, Emit, StreamingEmitter
from askai.providers.registry import ProviderRegistry
from askai.secrets.sources import SecretsResolver

log = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 1024


def build_message_args(cfg: GenerationConfig, messages: Sequence[Message], *, stream: bool) -> Dict[str, Any]:
    """
    Messages API layout:
    - every system message is lifted out of the turn list into the top-level `system` field
    - remaining turns carry only user/assistant roles
    - max_tokens is mandatory
    """
    system, turns = split_system(messages)
    args: Dict[str, Any] = {
        "model": cfg.model_name,
        "messages": [
            {"role": "assistant" if m.role == "assistant" else "user", "content": m.content}
            for m in turns
        ],
        "max_tokens": cfg.max_tokens or DEFAULT_MAX_TOKENS,
    }
    if system is not None:
        args["system"] = system
    if cfg.temperature is not None:
        args["temperature"] = cfg.temperature
    if stream:
        args["stream"] = True
    return args


def _text_of(blocks: Any, provider: str) -> str:
    if not isinstance(blocks, (list, tuple)) or not blocks:
        return text_or_empty(None, provider=provider)
    texts = [pluck(b, "text") for b in blocks if pluck(b, "type", default="text") == "text"]
    return "".join(t for t in texts if isinstance(t, str))


@ProviderRegistry.register("anthropic")
class AnthropicAdapter:
    """
    AsyncAnthropic messages adapter.
    Streaming is native: text arrives as content_block_delta events and the
    output token count is reported (possibly several times) on message_delta
    events. Those counts are summed. The prompt count is not taken from the
    stream and stays 0.
    """

    name = "anthropic"

    def __init__(self, config: GenerationConfig, *, secrets: Optional[SecretsResolver] = None,
                 timeout: Optional[float] = None):
        self._config = config
        self.model = config.model_name
        self._secrets = secrets or SecretsResolver()
        self.timeout = timeout
        self._client: Optional[AsyncAnthropic] = None

    def _sdk(self) -> AsyncAnthropic:
        if self._client is None:
            api_key = self._secrets.require_api_key(self.name, self._config.api_key)
            kwargs: Dict[str, Any] = {"api_key": api_key}
            if self.timeout is not None:
                kwargs["timeout"] = self.timeout
            self._client = AsyncAnthropic(**kwargs)
        return self._client

    def get_model_name(self) -> str:
        return self.model

    async def is_available(self) -> bool:
        return self._secrets.api_key(self.name, self._config.api_key) is not None

    async def send(self, messages: Sequence[Message], override: Optional[Mapping[str, Any]] = None) -> Response:
        cfg = self._config.merged(override)
        client = self._sdk()
        try:
            resp = await client.messages.create(**build_message_args(cfg, messages, stream=False))
        except LLMError:
            raise
        except Exception as e:
            raise classify_exception(e, self.name) from e

        prompt = as_int(pluck(resp, "usage", "input_tokens"))
        completion = as_int(pluck(resp, "usage", "output_tokens"))
        return Response(
            content=_text_of(pluck(resp, "content"), self.name),
            finish_reason=finish_reason_of(pluck(resp, "stop_reason")),
            usage=make_usage(prompt, completion, sum_tokens(prompt, completion)),
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
            cfg = self._config.merged(override)
            client = self._sdk()
            stream = await client.messages.create(**build_message_args(cfg, msgs, stream=True))
            parts: List[str] = []
            prompt_tokens = 0
            completion_tokens = 0
            finish_reason: Optional[str] = None
            async for event in stream:
                etype = pluck(event, "type")
                if etype == "content_block_delta":
                    if pluck(event, "delta", "type", default="text_delta") == "text_delta":
                        piece = pluck(event, "delta", "text")
                        if piece:
                            parts.append(piece)
                            emit(piece)
                elif etype == "message_delta":
                    completion_tokens += as_int(pluck(event, "usage", "output_tokens")) or 0
                    reason = pluck(event, "delta", "stop_reason")
                    if reason:
                        finish_reason = finish_reason_of(reason)
            return Response(
                content="".join(parts),
                finish_reason=finish_reason,
                usage=make_usage(prompt_tokens, completion_tokens, prompt_tokens + completion_tokens),
            )

        return StreamingEmitter(produce, provider=self.name, cancel=cancel)
