from __future__ import annotations
from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, Literal, Mapping, Optional, Union

Role = Literal["system", "user", "assistant"]
EventKind = Literal["data", "done", "error"]

ROLES = ("system", "user", "assistant")
EVENT_KINDS = ("data", "done", "error")


@dataclass(frozen=True)
class Message:
    role: Role
    content: str

    def __post_init__(self) -> None:
        if self.role not in ROLES:
            raise ValueError(f"Unknown role '{self.role}'. Expected one of {ROLES}.")

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "Message":
        return cls(role=str(d["role"]), content=str(d.get("content") or ""))


@dataclass(frozen=True)
class GenerationConfig:
    """
    Per-request generation parameters.
    Immutable: use merged() to get a per-call copy with overrides applied.
    """
    model_name: str
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    api_key: Optional[str] = None
    stream: bool = False

    def __post_init__(self) -> None:
        if not self.model_name or not str(self.model_name).strip():
            raise ValueError("model_name must be a non-empty string")
        if self.max_tokens is not None and (isinstance(self.max_tokens, bool) or int(self.max_tokens) <= 0):
            raise ValueError(f"max_tokens must be a positive integer, got {self.max_tokens!r}")
        if self.temperature is not None and not (0.0 <= float(self.temperature) <= 2.0):
            raise ValueError(f"temperature must be within [0, 2], got {self.temperature!r}")

    def merged(self, override: Union[Mapping[str, Any], "GenerationConfig", None] = None) -> "GenerationConfig":
        if override is None:
            return self
        if isinstance(override, GenerationConfig):
            items = {f.name: getattr(override, f.name) for f in fields(override)}
        else:
            items = dict(override)
        known = {f.name for f in fields(self)}
        unknown = sorted(k for k in items if k not in known)
        if unknown:
            raise ValueError(f"Unknown generation config keys: {unknown}")
        changes = {k: v for k, v in items.items() if v is not None}
        return replace(self, **changes) if changes else self


@dataclass(frozen=True)
class Usage:
    # None means the provider did not report the value
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None


@dataclass(frozen=True)
class Response:
    content: str
    finish_reason: Optional[str] = None
    usage: Usage = field(default_factory=Usage)


@dataclass(frozen=True)
class StreamEvent:
    kind: EventKind
    payload: Any = None

    def __post_init__(self) -> None:
        if self.kind not in EVENT_KINDS:
            raise ValueError(f"Unknown stream event kind '{self.kind}'")

    @property
    def is_terminal(self) -> bool:
        return self.kind != "data"
