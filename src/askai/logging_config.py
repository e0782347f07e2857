from __future__ import annotations
import json
import logging
import logging.handlers
import sys
from datetime import datetime, timezone
from pathlib import Path

DEFAULT_LOG_MAX_BYTES = 1_000_000
DEFAULT_LOG_BACKUP_COUNT = 3
_NOISY = ("asyncio", "httpx", "httpcore", "openai", "anthropic", "google_genai")


class JsonFormatter(logging.Formatter):
    """One JSON object per line; dict passed as extra={"extra": {...}} is merged in."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        extra = getattr(record, "extra", None)
        if isinstance(extra, dict):
            payload.update(extra)
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


class _ConsoleFormatter(logging.Formatter):
    def __init__(self):
        super().__init__("%(asctime)s | %(levelname)-8s | %(name)s | %(message)s", "%H:%M:%S")


def init_logging(log_path: Path, level: str = "INFO", *, debug: bool = False,
                 max_bytes: int = DEFAULT_LOG_MAX_BYTES, backup_count: int = DEFAULT_LOG_BACKUP_COUNT) -> Path:
    """
    Configure the root logger: rotating JSON-lines file, plus stderr when debugging.
    Safe to call more than once (handlers are replaced).
    """
    log_path = Path(log_path)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    lvl = logging.DEBUG if debug else getattr(logging, str(level).upper(), logging.INFO)

    root = logging.getLogger()
    # Only handlers installed here are replaced on re-init
    for h in list(root.handlers):
        if getattr(h, "_askai", False):
            root.removeHandler(h)
            h.close()
    root.setLevel(lvl)

    fh = logging.handlers.RotatingFileHandler(
        str(log_path), maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8", delay=True
    )
    fh.setFormatter(JsonFormatter())
    fh.setLevel(lvl)
    fh._askai = True
    root.addHandler(fh)

    # Console only when debugging; stdout belongs to the answer
    if debug:
        ch = logging.StreamHandler(sys.stderr)
        ch.setFormatter(_ConsoleFormatter())
        ch.setLevel(logging.DEBUG)
        ch._askai = True
        root.addHandler(ch)

    for noisy in _NOISY:
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logging.getLogger(__name__).debug("Logging initialized -> %s", log_path)
    return log_path
