from __future__ import annotations
import os
from pathlib import Path

APP_NAME = "ask-ai"


def base_config_dir() -> Path:
    # XDG_CONFIG_HOME wins; otherwise ~/.config on every platform
    env = os.getenv("XDG_CONFIG_HOME")
    if env:
        return Path(env).expanduser()
    return Path.home() / ".config"


def app_config_dir() -> Path:
    return base_config_dir() / APP_NAME


def default_config_path() -> Path:
    return app_config_dir() / "config.yml"


def default_history_dir() -> Path:
    return app_config_dir() / "history"


def default_log_path() -> Path:
    return app_config_dir() / f"{APP_NAME}.log"


def credential_path(provider: str, config_dir: Path | None = None) -> Path:
    return (config_dir or app_config_dir()) / f"{provider.lower()}-api-key"
