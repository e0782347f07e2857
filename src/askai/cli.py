from __future__ import annotations
import asyncio
import logging
import signal
from pathlib import Path
from typing import List, Optional
import typer

from .bootstrap import AppContext, build_context, make_client
from .config_loader import ConfigError, resolve_model_name
from .core.chat_session import ChatSession
from .core.errors import LLMError, StreamCancelledError
from .core.streaming import CancelToken
from .ui import render
from .ui.linewrap import LineWrapper, terminal_width, wrap_text

log = logging.getLogger(__name__)

app = typer.Typer(add_completion=False)

HELP_TEXT = "Commands: /help, /id, /exit, /quit"


class _Output:
    """Answer printer: wraps unless --plain, prints nothing with --quiet."""

    def __init__(self, *, plain: bool, quiet: bool):
        self.quiet = quiet
        self.plain = plain
        self._wrapper = None if plain else LineWrapper(terminal_width())

    def write(self, piece: str) -> None:
        if self.quiet:
            return
        text = piece if self._wrapper is None else self._wrapper.feed(piece)
        print(text, end="", flush=True)

    def finish(self) -> None:
        if self.quiet:
            return
        tail = "" if self._wrapper is None else self._wrapper.finish()
        print(tail, flush=True)
        if self._wrapper is not None:
            self._wrapper = LineWrapper(self._wrapper.width)

    def answer(self, text: str) -> None:
        if self.quiet:
            return
        print(text if self.plain else wrap_text(text, terminal_width()), flush=True)


async def _stream_turn(session: ChatSession, query: str, out: _Output) -> None:
    cancel = CancelToken()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel.cancel)
        hooked = True
    except (NotImplementedError, RuntimeError, ValueError):
        # No loop signal support here (Windows, or not the main thread)
        hooked = False
    try:
        async for piece in session.ask_stream(query, cancel=cancel):
            out.write(piece)
    finally:
        if hooked:
            loop.remove_signal_handler(signal.SIGINT)
        out.finish()


async def _blocking_turn(session: ChatSession, query: str, out: _Output) -> None:
    response = await session.ask(query)
    out.answer(response.content)


def _run_turn(session: ChatSession, query: str, out: _Output, *, stream: bool) -> None:
    log.info(
        "User query",
        extra={"extra": {"conversation_id": session.conversation_id, "model": session.client.get_model_name()}},
    )
    turn = _stream_turn if stream else _blocking_turn
    try:
        asyncio.run(turn(session, query, out))
    except StreamCancelledError:
        render.print_notice("[stream interrupted]")
    except KeyboardInterrupt:
        render.print_notice("[interrupted]")


def _pick_conversation(ctx: AppContext, model_name: str, *, conv_id: Optional[int], cont: bool) -> int:
    history = ctx.history
    if conv_id is not None:
        if history.conversation(conv_id) is None:
            raise ConfigError(f"Conversation {conv_id} not found")
        return conv_id
    if cont:
        last = history.last_conversation_id()
        if last is not None:
            return last
    return history.create_conversation(model_name)


def _interactive(session: ChatSession, out: _Output, *, stream: bool, prompt: str) -> None:
    print(f"ask-ai chat ({session.client.get_model_name()}). Type /help for commands. Ctrl+D to quit.")
    while True:
        try:
            user_input = input(prompt).strip()
        except (EOFError, KeyboardInterrupt):
            print("\nBye.")
            return

        if not user_input:
            continue
        if user_input in ("/exit", "/quit"):
            print("Bye.")
            return
        if user_input == "/help":
            print(HELP_TEXT)
            continue
        if user_input == "/id":
            print(session.conversation_id)
            continue

        try:
            _run_turn(session, user_input, out, stream=stream)
        except LLMError as e:
            render.print_error(str(e))


@app.command()
def main(
    query: Optional[List[str]] = typer.Argument(None, help="Question to ask; prompted for when omitted."),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model name or alias."),
    provider: Optional[str] = typer.Option(None, "--provider", help="Force a provider (e.g. subprocess)."),
    cont: bool = typer.Option(False, "--continue", "-c", help="Continue the last conversation."),
    conv_id: Optional[int] = typer.Option(None, "--id", help="Continue conversation N."),
    context: Optional[int] = typer.Option(None, "--context", min=0, help="Send the last N items as context."),
    search: Optional[str] = typer.Option(None, "--search", help="List conversations containing TEXT."),
    show: Optional[int] = typer.Option(None, "--show", help="Print conversation N."),
    stream: Optional[bool] = typer.Option(None, "--stream/--no-stream", help="Stream the answer."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="No console output."),
    plain: bool = typer.Option(False, "--plain", help="Raw output without wrapping."),
    no_history: bool = typer.Option(False, "--no-history", help="Do not record this exchange."),
    interactive: bool = typer.Option(False, "--interactive", "-i", help="Chat loop."),
    debug: bool = typer.Option(False, "--debug", help="Verbose logging on stderr."),
    config: Optional[Path] = typer.Option(None, "--config", help="Config file (YAML)."),
):
    try:
        ctx = build_context(config, debug=debug)
    except ValueError as e:
        render.print_error(str(e))
        raise typer.Exit(code=1)

    cfg = ctx.cfg

    # ----- History lookups -----
    if search is not None:
        render.print_conversations(ctx.history.search(search), f"Conversations matching '{search}'")
        return
    if show is not None:
        conv = ctx.history.conversation(show)
        if conv is None:
            render.print_error(f"Conversation {show} not found")
            raise typer.Exit(code=1)
        render.print_transcript(conv, ctx.history.get_conversation(show))
        return

    # ----- Client + session -----
    try:
        model_name = resolve_model_name(model, cfg)
        client = make_client(ctx, model_name, provider=provider)
        persist = not no_history
        conversation_id = _pick_conversation(ctx, model_name, conv_id=conv_id, cont=cont) if persist else 0
    except (KeyError, ValueError) as e:
        render.print_error(e.args[0] if e.args else str(e))
        raise typer.Exit(code=1)

    runtime = cfg["runtime"]
    use_stream = runtime["stream"] if stream is None else stream
    session = ChatSession(
        client,
        ctx.history,
        conversation_id,
        context_limit=runtime["context"] if context is None else context,
        system_prompt=cfg.get("system_prompt"),
        persist=persist,
    )
    out = _Output(plain=plain, quiet=quiet)
    prompt = f"{model_name}> "

    if interactive:
        _interactive(session, out, stream=use_stream, prompt=prompt)
        return

    text = " ".join(query or []).strip()
    if not text:
        try:
            text = input(prompt).strip()
        except (EOFError, KeyboardInterrupt):
            text = ""
        if not text:
            render.print_error("No query given")
            raise typer.Exit(code=1)

    try:
        _run_turn(session, text, out, stream=use_stream)
    except LLMError as e:
        log.warning("Request failed: %s", e)
        render.print_error(str(e))
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
