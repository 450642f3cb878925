from __future__ import annotations

"""Logging helpers for structured payloads and phrase-level metadata."""

from typing import Any, Dict, Iterable, Optional
from pathlib import Path
import contextvars
from datetime import datetime, timezone
import json
import logging
import os

import numpy as np


def summarize_payload(value: Any, *, max_list: int = 20, max_str: int = 200, depth: int = 3) -> Any:
    """Return a safe, size-limited summary of a payload for logging."""
    if depth <= 0:
        return f"<{type(value).__name__}>"
    if isinstance(value, np.ndarray):
        return {"__ndarray__": list(value.shape), "dtype": str(value.dtype)}
    if isinstance(value, dict):
        items = list(value.items())
        summarized: Dict[str, Any] = {}
        for key, val in items[:max_list]:
            summarized[str(key)] = summarize_payload(val, max_list=max_list, max_str=max_str, depth=depth - 1)
        if len(items) > max_list:
            summarized["__truncated__"] = True
            summarized["__len__"] = len(items)
        return summarized
    if isinstance(value, (list, tuple)):
        if len(value) > max_list:
            return {
                "__len__": len(value),
                "sample": [
                    summarize_payload(item, max_list=max_list, max_str=max_str, depth=depth - 1)
                    for item in value[:5]
                ],
            }
        return [
            summarize_payload(item, max_list=max_list, max_str=max_str, depth=depth - 1)
            for item in value
        ]
    if isinstance(value, str):
        if len(value) > max_str:
            return value[:max_str] + "...(truncated)"
        return value
    if isinstance(value, Path):
        return str(value)
    return value


DEFAULT_LOG_FORMAT = (
    "%(asctime)s %(levelname)s %(name)s %(filename)s:%(lineno)d:%(funcName)s "
    "singer=%(singer)s phrase_id=%(phrase_id)s %(message)s"
)


_STANDARD_LOG_RECORD_KEYS = set(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()
)


_singer = contextvars.ContextVar("log_singer", default="-")
_phrase_id = contextvars.ContextVar("log_phrase_id", default="-")


def set_log_context(*, singer: Optional[str] = None, phrase_id: Optional[str] = None) -> None:
    """Set context variables for log enrichment."""
    if singer is not None:
        _singer.set(singer)
    if phrase_id is not None:
        _phrase_id.set(phrase_id)


def clear_log_context() -> None:
    """Reset log context variables to their default values."""
    _singer.set("-")
    _phrase_id.set("-")


class LoggingContextFilter(logging.Filter):
    """Inject singer/phrase IDs into each log record."""
    def filter(self, record: logging.LogRecord) -> bool:
        record.singer = _singer.get()
        record.phrase_id = _phrase_id.get()
        return True


class JsonFormatter(logging.Formatter):
    """Format log records as JSON for structured logging sinks."""
    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(
            timespec="milliseconds"
        )
        payload = {
            "timestamp": timestamp,
            "severity": record.levelname,
            "logger": record.name,
            "file": record.filename,
            "line": record.lineno,
            "function": record.funcName,
            "message": record.getMessage(),
            "singer": getattr(record, "singer", "-"),
            "phrase_id": getattr(record, "phrase_id", "-"),
        }
        extras = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _STANDARD_LOG_RECORD_KEYS and key not in payload
        }
        if extras:
            payload.update(extras)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True, default=str)


def _use_json_logs() -> bool:
    """Return True when environment config requests JSON logs."""
    return os.getenv("LOG_FORMAT", "").lower() == "json" or os.getenv(
        "LOG_JSON", ""
    ).lower() in {"1", "true", "yes"}


def _app_env() -> str:
    """Return the current application environment name."""
    return os.getenv("APP_ENV") or os.getenv("ENV") or "prod"


def is_dev_env() -> bool:
    """Return True when running in development-like environments."""
    return _app_env().lower() in {"dev", "development", "local"}


def build_formatter() -> logging.Formatter:
    """Build the active log formatter based on environment settings."""
    if _use_json_logs():
        return JsonFormatter()
    return logging.Formatter(DEFAULT_LOG_FORMAT)


def attach_context_filter(handler: logging.Handler) -> None:
    """Ensure a handler includes the logging context filter."""
    if not any(isinstance(f, LoggingContextFilter) for f in handler.filters):
        handler.addFilter(LoggingContextFilter())


def ensure_timestamped_handlers(logger_names: Iterable[str] | None = None) -> None:
    """Apply consistent formatting/context to known logger handlers."""
    formatter = build_formatter()
    if logger_names is None:
        logger_names = ("", "dsphonemizer")
    for name in logger_names:
        logger = logging.getLogger(name)
        for handler in logger.handlers:
            handler.setFormatter(formatter)
            attach_context_filter(handler)


def configure_logging(level: str | int | None = None) -> None:
    """Install a root handler and apply environment overrides."""
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=logging.INFO)
    level_override = level or os.getenv("DSPHONEMIZER_LOG_LEVEL")
    if level_override:
        if isinstance(level_override, str):
            level_override = level_override.upper()
        root.setLevel(level_override)
    ensure_timestamped_handlers()


def get_logger(module_name: str) -> logging.Logger:
    """Return a logger and attach a per-module file handler in dev."""
    logger = logging.getLogger(module_name)
    if getattr(logger, "_file_handler_attached", False):
        return logger
    if not is_dev_env():
        logger.propagate = True
        return logger
    log_dir = Path(os.getenv("DSPHONEMIZER_LOG_DIR", "logs"))
    log_dir.mkdir(parents=True, exist_ok=True)
    filename = module_name.replace(".", "_") + ".log"
    handler = logging.FileHandler(log_dir / filename, encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(build_formatter())
    attach_context_filter(handler)
    logger.addHandler(handler)
    logger.propagate = True
    setattr(logger, "_file_handler_attached", True)
    return logger
