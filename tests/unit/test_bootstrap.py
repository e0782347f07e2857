# tests/unit/test_bootstrap.py

from __future__ import annotations
import json
import logging
import sys
from pathlib import Path

# Ensure "src" is importable
sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

from askai.bootstrap import build_context, make_client
from askai.providers.anthropic_adapter import AnthropicAdapter
from askai.providers.ollama_adapter import OllamaAdapter
from askai.resilience.retrying_client import RetryingClient


def _write_cfg(tmp_path: Path, body: str) -> Path:
    cfg = tmp_path / "config" / "config.yml"
    cfg.parent.mkdir(parents=True)
    cfg.write_text(body, encoding="utf-8")
    return cfg


def test_build_context_resolves_relative_paths(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    cfg = _write_cfg(tmp_path, "history: { dir: hist }\nlogging: { file: logs/app.log }\n")

    ctx = build_context(cfg)

    assert ctx.config_dir == cfg.parent.resolve()
    assert ctx.history.root_dir == cfg.parent.resolve() / "hist"
    assert ctx.log_path == cfg.parent.resolve() / "logs" / "app.log"
    assert ctx.history.root_dir.is_dir()


def test_build_context_defaults_under_xdg(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
    ctx = build_context()
    assert ctx.config_path == tmp_path / "ask-ai" / "config.yml"
    assert ctx.history.root_dir == tmp_path / "ask-ai" / "history"
    assert ctx.cfg["default_model"] == "chatgpt-4o-latest"


def test_no_history_backend_is_in_memory(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    ctx = build_context(_write_cfg(tmp_path, "history: { backend: none }\n"))
    assert ctx.history.root_dir is None


def test_logs_are_json_lines(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    ctx = build_context(_write_cfg(tmp_path, "logging: { file: app.log }\n"))
    logging.getLogger("askai.test").info("hello", extra={"extra": {"conversation_id": 7}})
    for h in logging.getLogger().handlers:
        h.flush()

    records = [json.loads(x) for x in ctx.log_path.read_text(encoding="utf-8").splitlines()]
    rec = [r for r in records if r["msg"] == "hello"][0]
    assert rec["level"] == "INFO" and rec["conversation_id"] == 7


def test_make_client_applies_generation_and_retries(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    cfg = _write_cfg(
        tmp_path,
        "generation: { max_tokens: 256 }\n"
        "runtime: { retries: 2 }\n"
        "providers: { ollama: { base_url: 'http://box:11434' } }\n",
    )
    ctx = build_context(cfg)

    client = make_client(ctx, "claude-3-haiku")
    assert isinstance(client, RetryingClient)
    assert isinstance(client.inner, AnthropicAdapter)
    assert client.inner._config.max_tokens == 256
    assert client.policy.max_retries == 2

    local = make_client(ctx, "llama2:latest").inner
    assert isinstance(local, OllamaAdapter)
    assert local.base_url == "http://box:11434"


def test_make_client_without_retries_is_bare(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    ctx = build_context(_write_cfg(tmp_path, "default_model: gpt-4\n"))
    assert not isinstance(make_client(ctx, "gpt-4"), RetryingClient)


def test_credential_files_come_from_user_config_dir(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    key_file = tmp_path / "xdg" / "ask-ai" / "openai-api-key"
    key_file.parent.mkdir(parents=True)
    key_file.write_text("sk-file\n", encoding="utf-8")
    other = tmp_path / "other" / "my.yml"
    other.parent.mkdir(parents=True)
    other.write_text("history: { backend: none }\n", encoding="utf-8")

    ctx = build_context(other)

    assert ctx.config_dir == other.parent.resolve()
    assert ctx.secrets.api_key("openai") == "sk-file"
