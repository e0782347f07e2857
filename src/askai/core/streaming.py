"""
Streaming channel shared by every provider adapter.

A StreamingEmitter owns one background task that runs the adapter's producer
coroutine. The producer pushes text chunks through the `emit` callable it is
given and returns the final Response; the emitter turns that into
`data`* followed by exactly one `done` or `error` event.

Consumers either iterate:

    async for event in client.send_stream(messages):
        ...

or register callbacks and await the outcome:

    stream = client.send_stream(messages).on("data", print_chunk)
    response = await stream.result()

Nothing is emitted before the call that created the emitter has returned:
the producer task only starts on the next loop turn.
"""
from __future__ import annotations
import asyncio
import logging
from typing import AsyncIterator, Awaitable, Callable, Dict, List, Optional

from .errors import LLMError, StreamCancelledError, classify_exception
from .models import Response, StreamEvent

log = logging.getLogger(__name__)

Emit = Callable[[str], bool]
Producer = Callable[[Emit], Awaitable[Response]]
Listener = Callable[[object], None]


class CancelToken:
    """Explicit cancellation signal passed alongside a send_stream() call."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()


class StreamingEmitter:
    def __init__(self, producer: Producer, *, provider: str, cancel: Optional[CancelToken] = None):
        self.provider = provider
        self._listeners: Dict[str, List[Listener]] = {"data": [], "done": [], "error": []}
        self._queue: "asyncio.Queue[StreamEvent]" = asyncio.Queue()
        self._terminated = False
        self._outcome: Optional[StreamEvent] = None
        self._finished = asyncio.Event()
        self._cancel = cancel or CancelToken()
        # Requires a running loop; create_task defers the first step to the next turn
        self._task = asyncio.get_running_loop().create_task(self._run(producer))

    # ----- consumer side -----

    def on(self, kind: str, listener: Listener) -> "StreamingEmitter":
        if kind not in self._listeners:
            raise ValueError(f"Unknown stream event '{kind}'")
        self._listeners[kind].append(listener)
        return self

    @property
    def terminated(self) -> bool:
        return self._terminated

    @property
    def outcome(self) -> Optional[StreamEvent]:
        return self._outcome

    def cancel(self) -> None:
        self._cancel.cancel()

    def __aiter__(self) -> AsyncIterator[StreamEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[StreamEvent]:
        while True:
            event = await self._queue.get()
            yield event
            if event.is_terminal:
                return

    async def result(self) -> Response:
        """Wait for the terminal event. Returns the Response or raises the stream's error."""
        await self._finished.wait()
        assert self._outcome is not None
        if self._outcome.kind == "error":
            raise self._outcome.payload
        return self._outcome.payload

    # ----- producer side -----

    def emit_data(self, chunk: str) -> bool:
        """Push one text chunk. Returns False when the stream already terminated."""
        if self._terminated:
            log.debug("Dropping %s chunk after terminal event", self.provider)
            return False
        if not chunk:
            return True
        self._publish(StreamEvent("data", chunk))
        return True

    def _finish(self, event: StreamEvent) -> None:
        if self._terminated:
            log.debug("Dropping %s %s event after terminal event", self.provider, event.kind)
            return
        self._terminated = True
        self._outcome = event
        self._publish(event)
        self._finished.set()

    def _publish(self, event: StreamEvent) -> None:
        self._queue.put_nowait(event)
        for listener in list(self._listeners[event.kind]):
            try:
                listener(event.payload)
            except Exception:
                log.exception("Stream listener for '%s' raised", event.kind)

    async def _run(self, producer: Producer) -> None:
        work = asyncio.ensure_future(producer(self.emit_data))
        stop = asyncio.ensure_future(self._cancel.wait())
        try:
            await asyncio.wait({work, stop}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            # Our own task was cancelled (e.g. loop shutdown)
            work.cancel()
            stop.cancel()
            self._finish(StreamEvent("error", StreamCancelledError("stream cancelled", provider=self.provider)))
            raise

        if not work.done():
            work.cancel()
            try:
                await work
            except asyncio.CancelledError:
                pass
            except Exception as e:
                log.debug("%s producer failed while cancelling: %s", self.provider, e)
            log.info("%s stream cancelled", self.provider)
            self._finish(StreamEvent("error", StreamCancelledError("stream cancelled", provider=self.provider)))
            return

        stop.cancel()
        if work.cancelled():
            self._finish(StreamEvent("error", StreamCancelledError("stream cancelled", provider=self.provider)))
            return
        exc = work.exception()
        if exc is not None:
            err: LLMError = classify_exception(exc, self.provider)
            log.warning("%s stream failed: %s", self.provider, err)
            self._finish(StreamEvent("error", err))
            return
        self._finish(StreamEvent("done", work.result()))
