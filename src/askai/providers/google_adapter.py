# src/askai/providers/google_adapter.py
from __future__ import annotations
import logging
from typing import Any, List, Mapping, Optional, Sequence, Tuple

from google import genai
from google.genai import types

from askai.core.errors import LLMError, ProviderClientError, classify_exception
from askai.core.models import GenerationConfig, Message, Response, Usage
from askai.core.normalize import finish_reason_of, make_usage, pluck, split_system, text_or_empty
from askai.core.streaming import CancelToken, Emit, StreamingEmitter
from askai.providers.registry import ProviderRegistry
from askai.secrets.sources import SecretsResolver

log = logging.getLogger(__name__)

ROLE_MAP = {"user": "user", "assistant": "model"}


def build_chat_turns(messages: Sequence[Message], provider: str = "google") -> Tuple[Optional[str], List[types.Content], str]:
    """
    Split a conversation for replay through a chat session.
    Returns (system_instruction, history, final user text):
    - system messages become the system instruction, not turns
    - assistant is renamed to "model"
    - every turn but the last is replayed as history; the last must be from the user
    """
    system, turns = split_system(messages)
    if not turns or turns[-1].role != "user":
        raise ProviderClientError("Conversation must end with a user message", provider=provider)
    history = [
        types.Content(role=ROLE_MAP[m.role], parts=[types.Part(text=m.content)])
        for m in turns[:-1]
    ]
    return system, history, turns[-1].content


def _usage_of(resp: Any) -> Usage:
    meta = pluck(resp, "usage_metadata")
    if meta is None:
        # Not reported: leave unset rather than claiming zero tokens
        return Usage()
    return make_usage(
        pluck(meta, "prompt_token_count"),
        pluck(meta, "candidates_token_count"),
        pluck(meta, "total_token_count"),
    )


@ProviderRegistry.register("google")
class GoogleAdapter:
    """
    Gemini via google-genai. The conversation is replayed through a stateful
    chat session (client.aio.chats) rather than a flat message array.
    Token usage is reported only when the response carries usage_metadata.
    Streaming is native (send_message_stream).
    """

    name = "google"

    def __init__(self, config: GenerationConfig, *, secrets: Optional[SecretsResolver] = None):
        self._config = config
        self.model = config.model_name
        self._secrets = secrets or SecretsResolver()
        self._client: Any = None

    def _sdk(self) -> Any:
        if self._client is None:
            api_key = self._secrets.require_api_key(self.name, self._config.api_key)
            self._client = genai.Client(api_key=api_key)
        return self._client

    def get_model_name(self) -> str:
        return self.model

    async def is_available(self) -> bool:
        return self._secrets.api_key(self.name, self._config.api_key) is not None

    def _start_chat(self, cfg: GenerationConfig, messages: Sequence[Message]) -> Tuple[Any, str]:
        client = self._sdk()
        system, history, final_text = build_chat_turns(messages, self.name)
        gen_config = types.GenerateContentConfig(
            system_instruction=system,
            max_output_tokens=cfg.max_tokens,
            temperature=cfg.temperature,
        )
        chat = client.aio.chats.create(model=cfg.model_name, config=gen_config, history=history)
        return chat, final_text

    async def send(self, messages: Sequence[Message], override: Optional[Mapping[str, Any]] = None) -> Response:
        cfg = self._config.merged(override)
        try:
            chat, final_text = self._start_chat(cfg, messages)
            resp = await chat.send_message(final_text)
        except LLMError:
            raise
        except Exception as e:
            raise classify_exception(e, self.name) from e
        return Response(
            content=text_or_empty(pluck(resp, "text"), provider=self.name),
            finish_reason=finish_reason_of(pluck(resp, "candidates", 0, "finish_reason")),
            usage=_usage_of(resp),
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
            chat, final_text = self._start_chat(cfg, msgs)
            parts: List[str] = []
            finish_reason: Optional[str] = None
            usage = Usage()
            async for chunk in await chat.send_message_stream(final_text):
                piece = pluck(chunk, "text")
                if piece:
                    parts.append(piece)
                    emit(piece)
                reason = pluck(chunk, "candidates", 0, "finish_reason")
                if reason:
                    finish_reason = finish_reason_of(reason)
                if pluck(chunk, "usage_metadata") is not None:
                    usage = _usage_of(chunk)
            return Response(content="".join(parts), finish_reason=finish_reason, usage=usage)

        return StreamingEmitter(produce, provider=self.name, cancel=cancel)
