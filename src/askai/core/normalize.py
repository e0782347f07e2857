"""
Shared normalisation helpers for provider adapters.

Backends hand back SDK objects, plain dicts (raw HTTP JSON) or test stubs;
these helpers read both shapes and never raise on a missing field.
"""
from __future__ import annotations
import enum
import logging
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from .models import Message, Usage

log = logging.getLogger(__name__)

_MISSING = object()


def pluck(obj: Any, *path: Any, default: Any = None) -> Any:
    """
    Walk attributes / mapping keys / sequence indexes.
    pluck(resp, "choices", 0, "message", "content") works for SDK objects and dicts alike.
    """
    cur = obj
    for key in path:
        if cur is None:
            return default
        if isinstance(key, int):
            try:
                cur = cur[key]
            except (IndexError, KeyError, TypeError):
                return default
            continue
        if isinstance(cur, dict):
            cur = cur.get(key, _MISSING)
        else:
            cur = getattr(cur, key, _MISSING)
        if cur is _MISSING:
            return default
    return cur if cur is not None else default


def as_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def sum_tokens(*values: Optional[int]) -> Optional[int]:
    """Sum of the reported counts; None when nothing was reported."""
    present = [v for v in values if v is not None]
    return sum(present) if present else None


def make_usage(prompt: Any = None, completion: Any = None, total: Any = None) -> Usage:
    return Usage(prompt_tokens=as_int(prompt), completion_tokens=as_int(completion), total_tokens=as_int(total))


def text_or_empty(value: Any, *, provider: str, what: str = "content") -> str:
    """Coerce a backend content field to text. Missing/odd shapes become "" and are logged."""
    if isinstance(value, str):
        return value
    if value is None:
        log.warning("Malformed %s response: %s missing; using empty content", provider, what)
        return ""
    log.warning("Malformed %s response: %s has unexpected type %s", provider, what, type(value).__name__)
    return str(value)


def finish_reason_of(value: Any) -> Optional[str]:
    if value is None:
        return None
    # SDK enums (e.g. google FinishReason)
    if isinstance(value, enum.Enum):
        return str(value.name).lower()
    return str(value)


def split_system(messages: Iterable[Message]) -> Tuple[Optional[str], List[Message]]:
    """
    Pull every system message out of the turn list.
    Returns (joined system text or None, remaining turns in original order).
    """
    system_parts: List[str] = []
    turns: List[Message] = []
    for m in messages:
        if m.role == "system":
            if m.content:
                system_parts.append(m.content)
        else:
            turns.append(m)
    return ("\n\n".join(system_parts) if system_parts else None), turns


def wire_messages(messages: Sequence[Message]) -> List[dict]:
    return [m.to_dict() for m in messages]


def last_user_text(messages: Sequence[Message]) -> Optional[str]:
    for m in reversed(messages):
        if m.role == "user":
            return m.content
    return None
