from __future__ import annotations
import logging
from typing import AsyncIterator, List, Optional

from .errors import LLMError
from .models import Message, Response
from .ports import HistoryStore, ProviderClient
from .streaming import CancelToken

log = logging.getLogger(__name__)


class ChatSession:
    """
    One conversation: reads prior turns from history, calls the client,
    and records both sides of each exchange.
    persist=False keeps the store untouched (e.g. --no-history).
    """

    def __init__(
        self,
        client: ProviderClient,
        history: HistoryStore,
        conversation_id: int,
        *,
        context_limit: int = 0,
        system_prompt: Optional[str] = None,
        persist: bool = True,
    ):
        self.client = client
        self.history = history
        self.conversation_id = conversation_id
        self.context_limit = context_limit
        self.system_prompt = system_prompt
        self.persist = persist
        self._scratch: List[Message] = []

    def _outgoing_messages(self, query: str) -> List[Message]:
        if self.persist:
            # prior turns are read before the new query is recorded
            prior = self.history.get_messages(self.conversation_id, self.context_limit)
            self.history.append_item(self.conversation_id, "user", query)
        else:
            prior = self._scratch[-self.context_limit:] if self.context_limit else list(self._scratch)
            self._scratch.append(Message("user", query))
        messages = [Message("system", self.system_prompt)] if self.system_prompt else []
        return messages + list(prior) + [Message("user", query)]

    def _record(self, content: str, response: Optional[Response] = None) -> None:
        usage = response.usage if response else None
        if self.persist:
            self.history.append_item(
                self.conversation_id,
                "assistant",
                content,
                (usage.prompt_tokens if usage else None) or 0,
                (usage.completion_tokens if usage else None) or 0,
            )
        else:
            self._scratch.append(Message("assistant", content))
        log.info(
            "AI response",
            extra={"extra": {
                "conversation_id": self.conversation_id,
                "model": self.client.get_model_name(),
                "chars": len(content),
                "usage": usage.__dict__ if usage else None,
            }},
        )

    async def ask(self, query: str) -> Response:
        messages = self._outgoing_messages(query)
        response = await self.client.send(messages)
        self._record(response.content, response)
        return response

    async def ask_stream(self, query: str, *, cancel: Optional[CancelToken] = None) -> AsyncIterator[str]:
        """
        Yields chunks as they arrive. The full text is recorded on completion;
        if the stream fails or the consumer stops early, whatever arrived is recorded.
        """
        messages = self._outgoing_messages(query)
        partial: List[str] = []
        recorded = False
        stream = self.client.send_stream(messages, cancel=cancel)
        try:
            async for event in stream:
                if event.kind == "data":
                    partial.append(event.payload)
                    yield event.payload
                elif event.kind == "done":
                    self._record("".join(partial), event.payload)
                    recorded = True
                else:
                    err: LLMError = event.payload
                    raise err
        finally:
            # Consumer stopped early: abort the backend call
            if not stream.terminated:
                stream.cancel()
            if not recorded and partial:
                self._record("".join(partial))
