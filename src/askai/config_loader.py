# src/askai/config_loader.py

from __future__ import annotations
import copy
from pathlib import Path
from typing import Any, Dict, Optional
import yaml


class ConfigError(ValueError):
    pass


DEFAULT_CONFIG: Dict[str, Any] = {
    "default_model": "chatgpt-4o-latest",
    "models": {
        "chatgpt": "chatgpt-4o-latest",
        "gpt4": "gpt-4",
        "claude": "claude-3-7-sonnet-20250219",
        "gemini": "gemini-2.0-flash-001",
        "llama2": "llama2:latest",
        "mistral": "mistral:latest",
        "deepseek": "deepseek-chat",
    },
    "system_prompt": None,
    "generation": {"max_tokens": None, "temperature": None},
    "history": {"backend": "file", "dir": None},
    "secrets": {"method": ["env", "file"], "mapping": {}},
    "runtime": {"stream": False, "context": 0, "retries": 0},
    "providers": {"ollama": {"base_url": None}},
    "logging": {"level": "INFO", "file": None},
}


def _get(d: Dict[str, Any], dotted: str) -> Any:
    cur: Any = d
    for k in dotted.split("."):
        if not isinstance(cur, dict) or k not in cur:
            raise ConfigError(f"Missing config key: {dotted}")
        cur = cur[k]
    return cur


def _require(d: Dict[str, Any], dotted: str, typ: type, *, optional: bool = False) -> Any:
    val = _get(d, dotted)
    if val is None and optional:
        return val
    if typ is bool and not isinstance(val, bool):
        raise ConfigError(f"'{dotted}' must be a boolean")
    if typ is int and (isinstance(val, bool) or not isinstance(val, int)):
        raise ConfigError(f"'{dotted}' must be an integer")
    if typ is float and (isinstance(val, bool) or not isinstance(val, (int, float))):
        raise ConfigError(f"'{dotted}' must be a number")
    if typ is str and not isinstance(val, str):
        raise ConfigError(f"'{dotted}' must be a string")
    if typ is dict and not isinstance(val, dict):
        raise ConfigError(f"'{dotted}' must be a mapping")
    if typ is list and not isinstance(val, (list, str)):
        raise ConfigError(f"'{dotted}' must be a list")
    return val


def _merge(defaults: Dict[str, Any], user: Dict[str, Any]) -> Dict[str, Any]:
    # Mapping sections merge one level deep; everything else is replaced
    out = copy.deepcopy(defaults)
    for key, val in user.items():
        if isinstance(out.get(key), dict) and isinstance(val, dict):
            out[key] = {**out[key], **val}
        else:
            out[key] = val
    return out


def load_config(path: Optional[Path]) -> Dict[str, Any]:
    """
    Load YAML config merged over DEFAULT_CONFIG.
    A missing file means defaults; a broken or mistyped one raises ConfigError.
    """
    raw: Dict[str, Any] = {}
    if path is not None and path.exists():
        try:
            loaded = yaml.safe_load(path.read_text(encoding="utf-8"))
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e
        if loaded is not None and not isinstance(loaded, dict):
            raise ConfigError(f"Config must be a mapping: {path}")
        raw = loaded or {}

    cfg = _merge(DEFAULT_CONFIG, raw)

    _require(cfg, "default_model", str)
    _require(cfg, "models", dict)
    _require(cfg, "system_prompt", str, optional=True)
    _require(cfg, "generation.max_tokens", int, optional=True)
    _require(cfg, "generation.temperature", float, optional=True)
    _require(cfg, "history.backend", str)
    _require(cfg, "history.dir", str, optional=True)
    _require(cfg, "secrets.method", list)
    _require(cfg, "secrets.mapping", dict)
    _require(cfg, "runtime.stream", bool)
    _require(cfg, "runtime.context", int)
    _require(cfg, "runtime.retries", int)
    _require(cfg, "logging.level", str)
    _require(cfg, "logging.file", str, optional=True)

    # Normalise enumerations
    backend = str(cfg["history"]["backend"]).lower()
    if backend not in ("file", "none"):
        raise ConfigError(f"Unknown history.backend '{backend}' (expected 'file' or 'none').")
    cfg["history"]["backend"] = backend
    if not str(cfg["default_model"]).strip():
        raise ConfigError("'default_model' must not be empty")

    # Leave paths as provided; resolve them later in bootstrap
    return cfg


def resolve_model_name(alias: Optional[str], cfg: Dict[str, Any]) -> str:
    """
    Map a model alias to a model name.
    None -> default_model; known alias -> mapped name; anything else is taken literally.
    An empty request, or an alias mapped to an empty name, is rejected.
    """
    if alias is None:
        return str(cfg["default_model"])
    if not alias.strip():
        raise ConfigError("Model name must not be empty")
    models = cfg.get("models") or {}
    if alias in models:
        mapped = models[alias]
        if not isinstance(mapped, str) or not mapped.strip():
            raise ConfigError(f"Model alias '{alias}' maps to an empty model name")
        return mapped.strip()
    return alias.strip()
