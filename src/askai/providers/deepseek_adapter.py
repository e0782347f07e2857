# src/askai/providers/deepseek_adapter.py
from __future__ import annotations
import logging
from typing import Any, Mapping, Optional, Sequence

from openai import AsyncOpenAI

from askai.core.errors import LLMError, classify_exception
from askai.core.models import GenerationConfig, Message, Response
from askai.core.streaming import CancelToken, Emit, StreamingEmitter
from askai.providers.openai_adapter import build_chat_args, response_from_completion
from askai.providers.registry import ProviderRegistry
from askai.secrets.sources import SecretsResolver

log = logging.getLogger(__name__)

DEEPSEEK_BASE_URL = "https://api.deepseek.com/v1"


@ProviderRegistry.register("deepseek")
class DeepSeekAdapter:
    """
    DeepSeek speaks the OpenAI chat.completions format from its own endpoint
    and key namespace (DEEPSEEK_API_KEY).
    Streaming is emulated: one blocking call, delivered as a single data event then done.
    """

    name = "deepseek"

    def __init__(self, config: GenerationConfig, *, secrets: Optional[SecretsResolver] = None,
                 base_url: str = DEEPSEEK_BASE_URL):
        self._config = config
        self.model = config.model_name
        self._secrets = secrets or SecretsResolver()
        self.base_url = base_url
        self._client: Optional[AsyncOpenAI] = None

    def _sdk(self) -> AsyncOpenAI:
        if self._client is None:
            api_key = self._secrets.require_api_key(self.name, self._config.api_key)
            self._client = AsyncOpenAI(api_key=api_key, base_url=self.base_url)
        return self._client

    def get_model_name(self) -> str:
        return self.model

    async def is_available(self) -> bool:
        return self._secrets.api_key(self.name, self._config.api_key) is not None

    async def send(self, messages: Sequence[Message], override: Optional[Mapping[str, Any]] = None) -> Response:
        cfg = self._config.merged(override)
        client = self._sdk()
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
            resp = await self.send(msgs, override)
            emit(resp.content)
            return resp

        return StreamingEmitter(produce, provider=self.name, cancel=cancel)
