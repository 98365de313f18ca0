"""Console logging and the JSON-lines audit trail for custody staking.

Console output goes through Rich. The audit trail is one append-only file
holding every committed custody event, interleaved with the package's log
records, so a release can be traced from the relay request to the pool
transfer.
"""

from __future__ import annotations

import json
import logging
import threading
from enum import Enum
from logging import Logger
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from rich.console import Console
from rich.logging import RichHandler

from .events import Event, EventBus

LOGGER_NAME = "custody_staking"


def configure_logging(*, level: int = logging.INFO, audit: Optional["AuditTrail"] = None) -> Logger:
    """Route the package logger to the console and, optionally, an audit trail."""

    handler = RichHandler(
        console=Console(stderr=True),
        show_time=False,
        show_path=False,
        markup=False,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    logger.handlers.clear()
    logger.addHandler(handler)
    if audit is not None:
        logger.addHandler(audit.handler())
    return logger


def _encode(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.name
    if isinstance(value, bytes):
        return "0x" + value.hex()
    return str(value)


class AuditTrail:
    """Append-only JSON-lines file shared by custody events and log records.

    Events arrive through :meth:`record_event` once the bus publishes them,
    so rolled-back operations never reach the file.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def write(self, entry: Mapping[str, Any]) -> None:
        line = json.dumps(dict(entry), default=_encode)
        with self._lock, self.path.open("a", encoding="utf-8") as handle:
            handle.write(line + "\n")

    def record_event(self, event: Event) -> None:
        self.write(
            {
                "kind": "event",
                "type": event.type,
                "sequence": event.sequence,
                "timestamp": event.timestamp,
                "payload": event.payload,
            }
        )

    def attach(self, bus: EventBus) -> "AuditTrail":
        bus.subscribe(self.record_event)
        return self

    def handler(self, level: int = logging.INFO) -> logging.Handler:
        return _AuditTrailHandler(self, level)

    def entries(self) -> List[Dict[str, Any]]:
        if not self.path.exists():
            return []
        with self.path.open(encoding="utf-8") as handle:
            return [json.loads(line) for line in handle if line.strip()]


class _AuditTrailHandler(logging.Handler):
    def __init__(self, trail: AuditTrail, level: int) -> None:
        super().__init__(level)
        self._trail = trail

    def emit(self, record: logging.LogRecord) -> None:
        try:
            entry: Dict[str, Any] = {
                "kind": "log",
                "level": record.levelname,
                "logger": record.name,
                "message": record.getMessage(),
            }
            if hasattr(record, "event"):
                entry["event"] = getattr(record, "event")
            if hasattr(record, "data"):
                entry["data"] = getattr(record, "data")
            if record.exc_info:
                entry["exc_info"] = logging.Formatter().formatException(record.exc_info)
            self._trail.write(entry)
        except Exception:
            self.handleError(record)


__all__ = ["AuditTrail", "LOGGER_NAME", "configure_logging"]
