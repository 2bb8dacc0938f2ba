"""Structured Logging — JSON log lines carrying coordinator correlation fields.

Invariants:
    - Every line has timestamp, level, logger and message
    - Correlation fields (holder, nonce, position, ledger_step, ...) copied from
      `extra=` when present, so one nonce can be traced submit -> execute -> settle
    - setup_logging is idempotent: a second call replaces the handler it installed

Design Decisions:
    - JSONFormatter on stdlib logging, text format for local runs (LOG_FORMAT=text)
    - SQLAlchemy engine and httpx request logs capped at WARNING: per-query and
      per-request INFO lines drown the execution trail
"""

import json
import logging
from datetime import datetime, timezone

EXTRA_FIELDS = (
    "holder", "nonce", "parent_nonce", "op_type", "position", "status",
    "error_code", "ledger_step", "source_event_id", "attempt",
)

_NOISY_LOGGERS = ("sqlalchemy.engine", "httpx", "httpcore")

_handler: logging.Handler | None = None


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        line = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in EXTRA_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                line[key] = value
        if record.exc_info:
            line["exception"] = self.formatException(record.exc_info)
        return json.dumps(line, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO", fmt: str = "json") -> logging.Handler:
    """Install the root handler (once per process, replaced on re-entry)."""
    global _handler
    handler = logging.StreamHandler()
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s [%(nonce)s] %(message)s",
            defaults={"nonce": "-"},
        ))
    if _handler is not None:
        logging.root.removeHandler(_handler)
    logging.root.addHandler(handler)
    logging.root.setLevel(getattr(logging, level.upper(), logging.INFO))
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    _handler = handler
    return handler
