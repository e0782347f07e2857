from __future__ import annotations
from typing import Any, List, Mapping, Optional, Protocol, Sequence

from .models import Message, Response
from .streaming import CancelToken, StreamingEmitter


class ProviderClient(Protocol):
    """
    Interface the core uses to talk to any LLM backend.
    Each adapter implements it on its own; shared behaviour lives in helper modules.
    """

    # Registry name ("openai", "anthropic", ...) and the configured model
    name: str
    model: str

    async def send(self, messages: Sequence[Message], override: Optional[Mapping[str, Any]] = None) -> Response:
        """
        Blocking call. Awaits the complete answer.
        Raises UnconfiguredError without a credential, ProviderError subclasses on backend failure.
        """
        ...

    def send_stream(
        self,
        messages: Sequence[Message],
        override: Optional[Mapping[str, Any]] = None,
        *,
        cancel: Optional[CancelToken] = None,
    ) -> StreamingEmitter:
        """
        Streaming call. Returns immediately; failures arrive as the terminal 'error' event.
        Must be called from a running event loop.
        """
        ...

    async def is_available(self) -> bool:
        ...

    def get_model_name(self) -> str:
        ...


class HistoryStore(Protocol):
    """Durable conversation log as seen by the chat session."""

    def create_conversation(self, model: str) -> int:
        ...

    def append_item(
        self,
        conversation_id: int,
        role: str,
        content: str,
        prompt_tokens: int = 0,
        completion_tokens: int = 0,
    ) -> None:
        ...

    def get_messages(self, conversation_id: int, context_limit: Optional[int] = 0) -> List[Message]:
        ...
