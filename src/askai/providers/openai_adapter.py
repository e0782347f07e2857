# src/askai/providers/openai_adapter.py
from __future__ import annotations
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from openai import AsyncOpenAI

from askai.core.errors import LLMError, classify_exception
from askai.core.models import GenerationConfig, Message, Response
from askai.core.normalize import finish_reason_of, make_usage, pluck, text_or_empty, wire_messages
from askai.core.streaming import CancelToken, Emit, StreamingEmitter
from askai.providers.registry import ProviderRegistry
from askai.secrets.sources import SecretsResolver

log = logging.getLogger(__name__)


# ----- chat.completions wire helpers (shared with other OpenAI-compatible backends) -----

def build_chat_args(cfg: GenerationConfig, messages: Sequence[Message], *, stream: bool) -> Dict[str, Any]:
    """System messages stay inline: the chat.completions schema accepts the role as-is."""
    args: Dict[str, Any] = {
        "model": cfg.model_name,
        "messages": wire_messages(messages),
    }
    if cfg.max_tokens is not None:
        args["max_tokens"] = cfg.max_tokens
    if cfg.temperature is not None:
        args["temperature"] = cfg.temperature
    if stream:
        args["stream"] = True
    return args


def response_from_completion(resp: Any, provider: str) -> Response:
    choice = pluck(resp, "choices", 0)
    if choice is None:
        log.warning("Malformed %s response: no choices", provider)
    content = text_or_empty(pluck(choice, "message", "content"), provider=provider)
    usage = pluck(resp, "usage")
    return Response(
        content=content,
        finish_reason=finish_reason_of(pluck(choice, "finish_reason")),
        usage=make_usage(
            pluck(usage, "prompt_tokens"),
            pluck(usage, "completion_tokens"),
            pluck(usage, "total_tokens"),
        ),
    )


async def stream_completion(stream: Any, emit: Emit) -> Response:
    """Forward content deltas; usage usually only arrives on the terminal chunk."""
    parts: List[str] = []
    finish_reason: Optional[str] = None
    usage = make_usage()
    async for chunk in stream:
        choice = pluck(chunk, "choices", 0)
        piece = pluck(choice, "delta", "content")
        if piece:
            parts.append(piece)
            emit(piece)
        reason = pluck(choice, "finish_reason")
        if reason:
            finish_reason = finish_reason_of(reason)
        chunk_usage = pluck(chunk, "usage")
        if chunk_usage is not None:
            usage = make_usage(
                pluck(chunk_usage, "prompt_tokens"),
                pluck(chunk_usage, "completion_tokens"),
                pluck(chunk_usage, "total_tokens"),
            )
    return Response(content="".join(parts), finish_reason=finish_reason, usage=usage)


@ProviderRegistry.register("openai")
class OpenAIAdapter:
    """
    Thin adapter over AsyncOpenAI chat.completions.
    - role mapping: none, system/user/assistant pass through unchanged
    - usage maps 1:1 from prompt/completion/total tokens
    - streaming: native, usage requested via stream_options
    - maps SDK errors to neutral ProviderClientError / ProviderTransientError
    """

    name = "openai"

    def __init__(
        self,
        config: GenerationConfig,
        *,
        secrets: Optional[SecretsResolver] = None,
        timeout: Optional[float] = None,
        base_url: Optional[str] = None,
        organization: Optional[str] = None,
    ):
        self._config = config
        self.model = config.model_name
        self._secrets = secrets or SecretsResolver()
        self.timeout = timeout
        self.base_url = base_url
        self.organization = organization
        self._client: Optional[AsyncOpenAI] = None

    def _sdk(self) -> AsyncOpenAI:
        if self._client is None:
            api_key = self._secrets.require_api_key(self.name, self._config.api_key)
            # Allow optional base_url/organization passthrough
            client_kwargs: Dict[str, Any] = {"api_key": api_key}
            if self.base_url:
                client_kwargs["base_url"] = self.base_url
            if self.organization:
                client_kwargs["organization"] = self.organization
            if self.timeout is not None:
                client_kwargs["timeout"] = self.timeout
            self._client = AsyncOpenAI(**client_kwargs)
        return self._client

    def get_model_name(self) -> str:
        return self.model

    async def is_available(self) -> bool:
        return self._secrets.api_key(self.name, self._config.api_key) is not None

    async def send(self, messages: Sequence[Message], override: Optional[Mapping[str, Any]] = None) -> Response:
        cfg = self._config.merged(override)
        client = self._sdk()
        log.debug("openai request model=%s messages=%d", cfg.model_name, len(messages))
        try:
            resp = await client.chat.completions.create(**build_chat_args(cfg, messages, stream=False))
        except LLMError:
            raise
        except Exception as e:
            raise classify_exception(e, self.name) from e
        return response_from_completion(resp, self.name)

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
            args = build_chat_args(cfg, msgs, stream=True)
            args["stream_options"] = {"include_usage": True}
            stream = await client.chat.completions.create(**args)
            return await stream_completion(stream, emit)

        return StreamingEmitter(produce, provider=self.name, cancel=cancel)
