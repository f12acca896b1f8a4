"""
Dual-sink logging for the generation service.

Console output goes through rich; every record is also appended as one JSON
object per line. Structured context travels in ``extra``:

    logger.warning("...", extra={"event": "generation.orchestrator.fallback",
                                 "account_id": ..., "request_id": ...,
                                 "detail": {...}})
"""

import json
import logging
import os
import re
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, NoReturn

from rich.logging import RichHandler

CONSOLE_HANDLER_NAME = "pretty_handler"
JSONL_HANDLER_NAME = "jsonl_handler"
DEFAULT_JSONL_PATH = "logs/companion.jsonl"
NOISY_LIBRARIES = ("openai", "httpx", "aiohttp", "aiohttp.access", "urllib3")

_LEVEL_ICONS = (
    (logging.ERROR, "✖"),
    (logging.WARNING, "⚠"),
    (logging.INFO, "✔"),
)


class LevelIconFilter(logging.Filter):
    """Adds a level icon to each record for console output."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.level_icon = next((icon for level, icon in _LEVEL_ICONS if record.levelno >= level), "ℹ")
        return True


class JsonlFormatter(logging.Formatter):
    """One JSON object per record with a frozen key set; empty keys are dropped."""

    KEYS = (
        "ts",
        "level",
        "name",
        "subsys",
        "account_id",
        "request_id",
        "event",
        "detail",
    )

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(timespec="milliseconds")

        detail: Any = getattr(record, "detail", None)
        message = record.getMessage()
        if detail is None:
            detail = message
        elif isinstance(detail, dict):
            detail = {"message": message, **detail}

        values = {
            "ts": ts,
            "level": record.levelname,
            "name": record.name,
            # companion.generation.providers.base -> generation
            "subsys": getattr(record, "subsys", None) or _subsystem(record.name),
            "account_id": getattr(record, "account_id", None),
            "request_id": getattr(record, "request_id", None),
            "event": getattr(record, "event", None),
            "detail": detail,
        }
        if record.exc_info:
            values["detail"] = {"message": message, "exception": self.formatException(record.exc_info)}

        obj = {key: values[key] for key in self.KEYS if values.get(key) is not None}
        return json.dumps(obj, ensure_ascii=False, default=str)


def _subsystem(logger_name: str) -> str:
    parts = logger_name.split(".")
    if parts[0] == "companion" and len(parts) > 1:
        return parts[1]
    return parts[0]


class SensitiveDataFilter(logging.Filter):
    """Redacts provider credentials from structured extras and message text."""

    SECRET_KEY_PATTERN = re.compile(r"(api[_-]?key|authorization|x-key|secret|token|bearer|^key$)", re.IGNORECASE)
    BEARER_PATTERN = re.compile(r"(Bearer\s+)[A-Za-z0-9._\-]+")
    REDACTED = "[REDACTED]"

    def filter(self, record: logging.LogRecord) -> bool:
        for name, value in list(record.__dict__.items()):
            if isinstance(value, dict):
                record.__dict__[name] = self._scrub(value)
        if isinstance(record.msg, str) and "Bearer" in record.msg:
            record.msg = self.BEARER_PATTERN.sub(rf"\1{self.REDACTED}", record.msg)
        return True

    def _scrub(self, obj: Dict[str, Any]) -> Dict[str, Any]:
        cleaned: Dict[str, Any] = {}
        for key, value in obj.items():
            if isinstance(value, dict):
                cleaned[key] = self._scrub(value)
            elif isinstance(value, str) and self.SECRET_KEY_PATTERN.search(str(key)):
                cleaned[key] = self.REDACTED
            else:
                cleaned[key] = value
        return cleaned


def _build_console_handler() -> logging.Handler:
    handler = RichHandler(
        rich_tracebacks=True,
        show_path=False,
        show_time=True,
        enable_link_path=False,
        log_time_format="%H:%M:%S.%f",
    )
    handler.set_name(CONSOLE_HANDLER_NAME)
    handler.addFilter(LevelIconFilter())
    handler.setFormatter(logging.Formatter(fmt="%(level_icon)s %(message)s"))
    return handler


def _build_jsonl_handler(path: Path) -> logging.Handler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(str(path), encoding="utf-8")
    handler.set_name(JSONL_HANDLER_NAME)
    handler.setFormatter(JsonlFormatter())
    return handler


def init_logging() -> None:
    """Install exactly the console and JSONL sinks on the root logger."""
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    jsonl_path = Path(os.getenv("LOG_JSONL_PATH", DEFAULT_JSONL_PATH))

    handlers = [_build_console_handler(), _build_jsonl_handler(jsonl_path)]
    scrubber = SensitiveDataFilter()
    for handler in handlers:
        handler.addFilter(scrubber)

    logging.basicConfig(handlers=handlers, level=level, force=True, format="%(message)s")

    names = sorted(h.get_name() for h in logging.getLogger().handlers)
    if names != sorted([CONSOLE_HANDLER_NAME, JSONL_HANDLER_NAME]):
        sys.stderr.write(f"[logging] expected {CONSOLE_HANDLER_NAME} + {JSONL_HANDLER_NAME}, got {names}\n")
        sys.stderr.flush()
        logging.shutdown()
        sys.exit(2)

    third_party_level = os.getenv("THIRD_PARTY_LOG_LEVEL", "WARNING").upper()
    for name in NOISY_LIBRARIES:
        logging.getLogger(name).setLevel(third_party_level)

    logging.getLogger(__name__).info(
        f"Logging initialized (level {level}, jsonl {jsonl_path})", extra={"subsys": "logging"}
    )


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def shutdown_logging_and_exit(exit_code: int) -> NoReturn:
    try:
        logging.getLogger(__name__).info("Shutting down", extra={"subsys": "logging"})
    finally:
        logging.shutdown()
        sys.exit(exit_code)
