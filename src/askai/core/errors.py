from __future__ import annotations
from typing import Optional


class LLMError(Exception):
    """Base class for everything the client layer raises or emits."""

    def __init__(self, message: str, *, provider: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.provider = provider

    def __str__(self) -> str:
        return f"[{self.provider}] {self.message}" if self.provider else self.message


class UnconfiguredError(LLMError):
    """No credential could be resolved for the provider. Supply a key; retrying won't help."""


class ProviderError(LLMError):
    """Base class for provider-level failures."""

    def __init__(self, message: str, *, provider: Optional[str] = None, status: Optional[int] = None):
        super().__init__(message, provider=provider)
        self.status = status


class ProviderClientError(ProviderError):
    """
    Non-retryable: caller/config issue (4xx invalid request, auth, unknown model,
    unsupported parameter, etc.). The fix is change input/config, not retry.
    """


class ProviderTransientError(ProviderError):
    """
    Retryable: rate limits, timeouts, network hiccups, 5xx, etc.
    Retrying with backoff is appropriate.
    """


class StreamingUnsupportedError(LLMError):
    """Provider was asked to stream and has no native or emulated streaming."""


class StreamCancelledError(LLMError):
    """Terminal error of a stream whose cancel token fired."""


def _status_of(exc: Exception) -> Optional[int]:
    status = getattr(exc, "status_code", None) or getattr(exc, "http_status", None)
    if status is None:
        # httpx.HTTPStatusError keeps it on the response
        response = getattr(exc, "response", None)
        status = getattr(response, "status_code", None)
    try:
        return int(status) if status is not None else None
    except (TypeError, ValueError):
        return None


def classify_exception(exc: Exception, provider: Optional[str] = None) -> LLMError:
    """
    Convert SDK/HTTP exceptions into neutral provider errors.
    Avoid hard dependency on specific SDK exception classes by inspecting attributes/message.
    """
    if isinstance(exc, LLMError):
        if exc.provider is None:
            exc.provider = provider
        return exc

    status = _status_of(exc)
    msg = str(exc) or exc.__class__.__name__

    if status is not None:
        if status == 429 or 500 <= status <= 599:
            return ProviderTransientError(msg, provider=provider, status=status)
        if 400 <= status < 500:
            return ProviderClientError(msg, provider=provider, status=status)
        return ProviderTransientError(msg, provider=provider, status=status)

    if isinstance(exc, (TimeoutError, ConnectionError)):
        return ProviderTransientError(msg, provider=provider)
    # Rejected arguments (bad override keys, out-of-range values)
    if isinstance(exc, ValueError):
        return ProviderClientError(msg, provider=provider)

    lower = msg.lower()
    if any(k in lower for k in ("rate limit", "temporarily unavailable", "timeout", "timed out", "connection")):
        return ProviderTransientError(msg, provider=provider)
    if any(k in lower for k in ("invalid_request_error", "unsupported", "parameter", "authentication", "not found")):
        return ProviderClientError(msg, provider=provider)
    return ProviderTransientError(msg, provider=provider)
