from __future__ import annotations
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional
from dotenv import load_dotenv

from .config_loader import load_config
from .core.ports import ProviderClient
from .logging_config import init_logging
from .paths import app_config_dir, default_config_path, default_history_dir, default_log_path
from .providers.factory import create_client, determine_provider
from .resilience.retrying_client import RetryingClient, RetryPolicy
from .secrets.sources import SecretsResolver
from .storage.history import HistoryStore

log = logging.getLogger(__name__)


@dataclass
class AppContext:
    cfg: Dict[str, Any]
    config_path: Path
    config_dir: Path
    secrets: SecretsResolver
    history: HistoryStore
    log_path: Path


def _resolve(raw: Optional[str], base: Path, default: Path) -> Path:
    if not raw:
        return default
    p = Path(raw).expanduser()
    return p if p.is_absolute() else (base / p).resolve()


def build_context(config_path: Optional[Path] = None, *, debug: bool = False) -> AppContext:
    """
    Composition root: .env, YAML config, logging, secrets and history.
    Relative paths in the config are resolved against the config file's directory.
    """
    load_dotenv()
    config_path = Path(config_path) if config_path else default_config_path()
    cfg = load_config(config_path)
    config_dir = config_path.resolve().parent if config_path.exists() else app_config_dir()

    log_path = _resolve(cfg["logging"]["file"], config_dir, default_log_path())
    init_logging(log_path, cfg["logging"]["level"], debug=debug)

    secrets_cfg = cfg["secrets"]
    resolver = SecretsResolver(
        method=secrets_cfg["method"],
        mapping=secrets_cfg["mapping"],
        # Credential files live under the user config dir, not beside --config
        config_dir=app_config_dir(),
    )

    history_cfg = cfg["history"]
    history_dir = _resolve(history_cfg["dir"], config_dir, default_history_dir())
    history = HistoryStore(root_dir=history_dir if history_cfg["backend"] == "file" else None)

    log.debug("Context built from %s (history=%s)", config_path, history.root_dir)
    return AppContext(
        cfg=cfg,
        config_path=config_path,
        config_dir=config_dir,
        secrets=resolver,
        history=history,
        log_path=log_path,
    )


def make_client(ctx: AppContext, model_name: str, *, provider: Optional[str] = None) -> ProviderClient:
    """Build the client for model_name, wrapped for retries when runtime.retries > 0."""
    provider_name = provider or determine_provider(model_name)
    generation = {k: v for k, v in (ctx.cfg.get("generation") or {}).items() if v is not None}

    adapter_kwargs: Dict[str, Any] = {}
    if provider_name == "ollama":
        adapter_kwargs["base_url"] = ((ctx.cfg.get("providers") or {}).get("ollama") or {}).get("base_url")

    inner = create_client(
        model_name,
        generation,
        provider=provider_name,
        secrets=ctx.secrets,
        **adapter_kwargs,
    )

    retries = int((ctx.cfg.get("runtime") or {}).get("retries") or 0)
    if retries > 0:
        return RetryingClient(inner, RetryPolicy(max_retries=retries))
    return inner
