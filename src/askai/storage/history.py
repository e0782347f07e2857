from __future__ import annotations
import json
import datetime as dt
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from askai.core.models import Message, ROLES

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Conversation:
    id: int
    timestamp: str
    model: str


@dataclass(frozen=True)
class ConversationItem:
    conversation_id: int
    role: str
    content: str
    prompt_tokens: int
    completion_tokens: int
    timestamp: str


def _now() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat()


class HistoryStore:
    """
    Conversation log.
    - If root_dir is provided: one JSONL file per conversation at <root_dir>/<id>.jsonl
      (a header record, then one record per item, appended in order)
    - If root_dir is None: in-memory only
    Ids are sequential integers. One writer at a time is assumed.
    """

    def __init__(self, root_dir: Optional[Path] = None):
        self._root_dir = Path(root_dir) if root_dir else None
        self._records: Dict[int, List[Dict]] = {}
        if self._root_dir:
            self._root_dir.mkdir(parents=True, exist_ok=True)

    @property
    def root_dir(self) -> Optional[Path]:
        return self._root_dir

    # ----- writes -----

    def create_conversation(self, model: str) -> int:
        conversation_id = (self.last_conversation_id() or 0) + 1
        header = {"type": "header", "id": conversation_id, "ts": _now(), "model": model}
        if self._root_dir:
            with self._path(conversation_id).open("x", encoding="utf-8") as f:
                f.write(json.dumps(header, ensure_ascii=False) + "\n")
        else:
            self._records[conversation_id] = [header]
        log.debug("Created conversation %s (model=%s)", conversation_id, model)
        return conversation_id

    def append_item(
        self,
        conversation_id: int,
        role: str,
        content: str,
        prompt_tokens: int = 0,
        completion_tokens: int = 0,
    ) -> None:
        if role not in ROLES:
            raise ValueError(f"Unknown role '{role}'")
        if not self._exists(conversation_id):
            raise KeyError(f"Conversation {conversation_id} not found")
        rec = {
            "type": "message",
            "ts": _now(),
            "role": role,
            "content": content,
            "prompt_tokens": int(prompt_tokens or 0),
            "completion_tokens": int(completion_tokens or 0),
        }
        if self._root_dir:
            with self._path(conversation_id).open("a", encoding="utf-8") as f:
                f.write(json.dumps(rec, ensure_ascii=False) + "\n")
        else:
            self._records[conversation_id].append(rec)

    # ----- reads -----

    def get_messages(self, conversation_id: int, context_limit: Optional[int] = 0) -> List[Message]:
        """Chronological messages; a positive limit keeps only the most recent N items."""
        items = self.get_conversation(conversation_id)
        if context_limit and context_limit > 0:
            items = items[-context_limit:]
        return [Message(role=i.role, content=i.content) for i in items]

    def get_conversation(self, conversation_id: int) -> List[ConversationItem]:
        return [
            ConversationItem(
                conversation_id=conversation_id,
                role=r["role"],
                content=r.get("content", ""),
                prompt_tokens=int(r.get("prompt_tokens") or 0),
                completion_tokens=int(r.get("completion_tokens") or 0),
                timestamp=r.get("ts", ""),
            )
            for r in self._load(conversation_id)
            if r.get("type") == "message" and r.get("role") in ROLES
        ]

    def conversation(self, conversation_id: int) -> Optional[Conversation]:
        for r in self._load(conversation_id):
            if r.get("type") == "header":
                return Conversation(id=conversation_id, timestamp=r.get("ts", ""), model=r.get("model", ""))
        return None

    def last_conversation_id(self) -> Optional[int]:
        ids = self._ids()
        return ids[-1] if ids else None

    def recent_conversations(self, limit: int = 10) -> List[Conversation]:
        out: List[Conversation] = []
        for cid in reversed(self._ids()):
            if len(out) >= limit:
                break
            conv = self.conversation(cid)
            if conv:
                out.append(conv)
        return out

    def search(self, query: str) -> List[Conversation]:
        """Conversations with an item containing `query` (case-insensitive), newest first."""
        needle = query.lower()
        hits: List[Conversation] = []
        for cid in reversed(self._ids()):
            if any(needle in item.content.lower() for item in self.get_conversation(cid)):
                conv = self.conversation(cid)
                if conv:
                    hits.append(conv)
        return hits

    # Internal helpers

    def _path(self, conversation_id: int) -> Path:
        assert self._root_dir is not None
        return self._root_dir / f"{int(conversation_id)}.jsonl"

    def _ids(self) -> List[int]:
        if not self._root_dir:
            return sorted(self._records)
        ids = []
        for p in self._root_dir.glob("*.jsonl"):
            if p.stem.isdigit():
                ids.append(int(p.stem))
        return sorted(ids)

    def _exists(self, conversation_id: int) -> bool:
        if self._root_dir:
            return self._path(conversation_id).exists()
        return conversation_id in self._records

    def _load(self, conversation_id: int) -> List[Dict]:
        if not self._root_dir:
            return list(self._records.get(conversation_id, []))
        path = self._path(conversation_id)
        if not path.exists():
            return []
        records: List[Dict] = []
        with path.open("r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    records.append(json.loads(line))
                except ValueError:
                    log.warning("Skipping corrupt line in %s", path)
        return records
