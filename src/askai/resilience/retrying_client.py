from __future__ import annotations
import asyncio
import logging
import random
import time
from typing import Any, Mapping, Optional, Sequence

from askai.core.errors import LLMError, ProviderClientError, ProviderTransientError, UnconfiguredError
from askai.core.models import Message, Response
from askai.core.ports import ProviderClient
from askai.core.streaming import CancelToken, Emit, StreamingEmitter

log = logging.getLogger(__name__)


class RetryPolicy:
    def __init__(self, max_retries=3, base_delay=0.5, max_delay=8.0, total_timeout=30.0,
                 retry_exceptions=(TimeoutError,)):
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.total_timeout = total_timeout
        self.retry_exceptions = tuple(retry_exceptions)

    def compute_backoff(self, attempt: int) -> float:
        return min(self.max_delay, self.base_delay * (2 ** (attempt - 1)) + random.random() * 0.1)


class RetryingClient:
    """
    Caller-side wrapper: the adapters never retry on their own.
    Streams are only retried while no chunk has been delivered yet.
    """

    def __init__(self, inner: ProviderClient, policy: RetryPolicy):
        self.inner = inner
        self.policy = policy
        self.name = getattr(inner, "name", "unknown")
        self.model = inner.get_model_name()

    def get_model_name(self) -> str:
        return self.inner.get_model_name()

    async def is_available(self) -> bool:
        return await self.inner.is_available()

    def _should_retry(self, exc: BaseException) -> bool:
        if isinstance(exc, (ProviderClientError, UnconfiguredError)):
            return False
        if isinstance(exc, ProviderTransientError):
            return True
        # Fallback on configured transient types (e.g., TimeoutError)
        return isinstance(exc, self.policy.retry_exceptions)

    def _give_up(self, exc: BaseException, attempt: int, start: float) -> bool:
        return (
            not self._should_retry(exc)
            or attempt > self.policy.max_retries
            or (time.monotonic() - start) > self.policy.total_timeout
        )

    async def send(self, messages: Sequence[Message], override: Optional[Mapping[str, Any]] = None) -> Response:
        start = time.monotonic()
        attempt = 0
        while True:
            attempt += 1
            try:
                return await self.inner.send(messages, override)
            except Exception as e:
                if self._give_up(e, attempt, start):
                    raise
                delay = self.policy.compute_backoff(attempt)
                log.info("%s call failed (%s); retry %d in %.2fs", self.name, e, attempt, delay)
                await asyncio.sleep(delay)

    def send_stream(
        self,
        messages: Sequence[Message],
        override: Optional[Mapping[str, Any]] = None,
        *,
        cancel: Optional[CancelToken] = None,
    ) -> StreamingEmitter:
        msgs = list(messages)

        async def produce(emit: Emit) -> Response:
            start = time.monotonic()
            attempt = 0
            while True:
                attempt += 1
                delivered = False
                failure: Optional[LLMError] = None
                async for event in self.inner.send_stream(msgs, override, cancel=cancel):
                    if event.kind == "data":
                        delivered = True
                        emit(event.payload)
                    elif event.kind == "done":
                        return event.payload
                    else:
                        failure = event.payload
                assert failure is not None
                # Only retry before first chunk is delivered
                if delivered or self._give_up(failure, attempt, start):
                    raise failure
                delay = self.policy.compute_backoff(attempt)
                log.info("%s stream failed (%s); retry %d in %.2fs", self.name, failure, attempt, delay)
                await asyncio.sleep(delay)

        return StreamingEmitter(produce, provider=self.name, cancel=cancel)
