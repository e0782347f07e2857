# src/askai/providers/subprocess_adapter.py
from __future__ import annotations
import asyncio
import codecs
import logging
import shutil
import sys
from pathlib import Path
from typing import Any, List, Mapping, Optional, Sequence

from askai.core.errors import ProviderClientError, ProviderError, classify_exception
from askai.core.models import GenerationConfig, Message, Response, Usage
from askai.core.normalize import last_user_text
from askai.core.streaming import CancelToken, Emit, StreamingEmitter
from askai.providers.registry import ProviderRegistry
from askai.secrets.sources import SecretsResolver

log = logging.getLogger(__name__)

DEFAULT_COMMAND = (sys.executable, "-m", "askai.cli")
READ_SIZE = 1024


def _drop_final_newline(text: str) -> str:
    # The child ends its answer with print's newline
    return text[:-1] if text.endswith("\n") else text


@ProviderRegistry.register("subprocess")
class SubprocessAdapter:
    """
    Runs the ask-ai CLI itself as a child process and relays its stdout.
    Only the last user message is forwarded: the child keeps its own history,
    so earlier turns and system messages are not sent.
    Streaming is native (stdout is relayed as it arrives).
    """

    name = "subprocess"

    def __init__(
        self,
        config: GenerationConfig,
        *,
        secrets: Optional[SecretsResolver] = None,
        command: Optional[Sequence[str]] = None,
    ):
        self._config = config
        self.model = config.model_name
        # The child resolves its own credentials
        self._secrets = secrets
        self.command = list(command or DEFAULT_COMMAND)

    def get_model_name(self) -> str:
        return self.model

    async def is_available(self) -> bool:
        exe = self.command[0]
        return Path(exe).is_file() or shutil.which(exe) is not None

    def _argv(self, cfg: GenerationConfig, messages: Sequence[Message], *, stream: bool) -> List[str]:
        query = last_user_text(messages)
        if query is None:
            raise ProviderClientError("No user message to send", provider=self.name)
        argv = [*self.command, query, "--model", cfg.model_name, "--plain", "--no-history"]
        argv.append("--stream" if stream else "--no-stream")
        return argv

    async def _spawn(self, argv: List[str]) -> asyncio.subprocess.Process:
        log.debug("spawning %s", argv[: len(self.command)])
        try:
            return await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ProviderClientError(f"Cannot start {argv[0]}: {e}", provider=self.name) from e

    def _check_exit(self, code: Optional[int], stderr: bytes) -> None:
        if code != 0:
            detail = stderr.decode("utf-8", errors="replace").strip()
            raise ProviderError(f"Process exited with code {code}: {detail}", provider=self.name)
        if stderr:
            log.debug("child stderr: %s", stderr.decode("utf-8", errors="replace").strip())

    async def send(self, messages: Sequence[Message], override: Optional[Mapping[str, Any]] = None) -> Response:
        cfg = self._config.merged(override)
        proc = await self._spawn(self._argv(cfg, messages, stream=False))
        try:
            out, err = await proc.communicate()
        except asyncio.CancelledError:
            proc.kill()
            raise
        except Exception as e:
            raise classify_exception(e, self.name) from e
        self._check_exit(proc.returncode, err)
        text = _drop_final_newline(out.decode("utf-8", errors="replace"))
        return Response(content=text, finish_reason="stop", usage=Usage())

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
            proc = await self._spawn(self._argv(cfg, msgs, stream=True))
            decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
            parts: List[str] = []
            held = ""
            # stderr is drained alongside stdout
            err_task = asyncio.ensure_future(proc.stderr.read())
            try:
                while True:
                    data = await proc.stdout.read(READ_SIZE)
                    if not data:
                        break
                    # a trailing newline is held back until more output follows
                    piece = held + decoder.decode(data)
                    held = "\n" if piece.endswith("\n") else ""
                    piece = piece[:-1] if held else piece
                    if piece:
                        parts.append(piece)
                        emit(piece)
                tail = _drop_final_newline(held + decoder.decode(b"", final=True))
                if tail:
                    parts.append(tail)
                    emit(tail)
                err = await err_task
                await proc.wait()
            except BaseException:
                err_task.cancel()
                if proc.returncode is None:
                    proc.kill()
                raise
            self._check_exit(proc.returncode, err)
            return Response(content="".join(parts), finish_reason="stop", usage=Usage())

        return StreamingEmitter(produce, provider=self.name, cancel=cancel)
