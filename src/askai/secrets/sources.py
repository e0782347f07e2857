# src/askai/secrets/sources.py

from __future__ import annotations
from pathlib import Path
from typing import Protocol, Optional, Dict, Iterable, List, Tuple, Union
import getpass
import logging
import os

import keyring

from askai.core.errors import UnconfiguredError
from askai.paths import credential_path

log = logging.getLogger(__name__)


class SecretSource(Protocol):
    def get(self, service: str) -> Optional[str]: ...


def env_var_name(provider: str) -> str:
    return f"{provider.upper()}_API_KEY"


class EnvSource:
    def get(self, service: str) -> Optional[str]:
        # Allow mapping to be an explicit env var key OR a provider name
        names = [service] if service.isupper() else [env_var_name(service)]
        for key in names:
            val = os.getenv(key)
            if val and val.strip():
                return val.strip()
        return None


class FileSource:
    """<config-dir>/ask-ai/<provider>-api-key, plain text, surrounding whitespace trimmed."""

    def __init__(self, config_dir: Optional[Path] = None):
        self._config_dir = Path(config_dir) if config_dir else None

    def get(self, service: str) -> Optional[str]:
        path = credential_path(service, self._config_dir)
        try:
            if not path.is_file():
                return None
            val = path.read_text(encoding="utf-8").strip()
        except (OSError, UnicodeDecodeError) as e:
            # Unreadable key file counts as "not found"
            log.debug("Could not read credential file %s: %s", path, e)
            return None
        return val or None


class SystemKeyringSource:
    def get(self, service: str) -> Optional[str]:
        try:
            cred = keyring.get_credential(service, None)
            if cred and getattr(cred, "password", None):
                return cred.password.strip()
        except Exception as e:
            log.debug("keyring credential lookup for %s failed: %s", service, e)
        for account in ("API_KEY", env_var_name(service), "default", service, getpass.getuser()):
            try:
                val = keyring.get_password(service, account)
                if val:
                    return val.strip()
            except Exception as e:
                log.debug("keyring password lookup for %s/%s failed: %s", service, account, e)
        return None


_ALLOWED_METHODS = {"env", "file", "keyring"}
DEFAULT_METHODS = ("env", "file")


def _normalise_methods(method: Union[str, Iterable[str]]) -> List[str]:
    if isinstance(method, str):
        methods = [method]
    else:
        methods = list(method)
    norm = []
    for m in methods:
        key = str(m).strip().lower()
        if key not in _ALLOWED_METHODS:
            raise ValueError(f"Unknown secrets method '{m}'. Allowed: {sorted(_ALLOWED_METHODS)}")
        if key not in norm:
            norm.append(key)
    return norm


def build_secret_sources(method: Union[str, Iterable[str]], config_dir: Optional[Path] = None) -> List[SecretSource]:
    sources: List[SecretSource] = []
    for name in _normalise_methods(method):
        if name == "env":
            sources.append(EnvSource())
        elif name == "file":
            sources.append(FileSource(config_dir))
        elif name == "keyring":
            sources.append(SystemKeyringSource())
    return sources


class SecretsResolver:
    """
    Resolve provider credentials using one or more methods in order.
    An explicit key (from GenerationConfig) always wins over every source.
    mapping: per-provider map of names -> service/env-key
      e.g. { "openai": { "api_key": "OPENAI_API_KEY" } } or { "google": { "api_key": "GEMINI_API_KEY" } }
    Found values are cached for the lifetime of the resolver.
    """
    def __init__(
        self,
        method: Union[str, Iterable[str]] = DEFAULT_METHODS,
        mapping: Dict[str, Dict[str, str]] | None = None,
        config_dir: Optional[Path] = None,
    ):
        self._sources = build_secret_sources(method, config_dir)
        self._map = mapping or {}
        self._cache: Dict[Tuple[str, str], str] = {}

    def secret(self, provider: str, name: str = "api_key") -> Optional[str]:
        cache_key = (provider, name)
        if cache_key in self._cache:
            return self._cache[cache_key]
        service = self._map.get(provider, {}).get(name, provider)
        for src in self._sources:
            val = src.get(service)
            if val:
                log.debug("Resolved %s %s via %s", provider, name, type(src).__name__)
                self._cache[cache_key] = val
                return val
        return None

    def api_key(self, provider: str, explicit: Optional[str] = None) -> Optional[str]:
        if explicit and explicit.strip():
            return explicit.strip()
        return self.secret(provider, "api_key")

    def require_api_key(self, provider: str, explicit: Optional[str] = None) -> str:
        key = self.api_key(provider, explicit)
        if not key:
            raise UnconfiguredError(
                f"No API key found. Set {env_var_name(provider)} or write it to {credential_path(provider)}.",
                provider=provider,
            )
        return key
