"""
Logging setup for the flowgraph engine.

Run scoped fields (run id, workflow id) live in a context variable, so
concurrent requests served by the same process never see each other's
context. Every handler installed by ``setup_logging`` carries a
``RunContextFilter`` that copies those fields onto each record.
"""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, List, Optional


DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(run_tag)s%(message)s"

QUIET_LOGGERS: Dict[str, int] = {
    "uvicorn": logging.INFO,
    "uvicorn.access": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "sqlalchemy.pool": logging.WARNING,
    "asyncio": logging.WARNING,
}

_run_context: ContextVar[Optional[Dict[str, Any]]] = ContextVar("flowgraph_run_context", default=None)


def current_logging_context() -> Dict[str, Any]:
    return dict(_run_context.get() or {})


def set_logging_context(**fields: Any) -> None:
    """Attach ``fields`` to every record logged from the current context."""
    _run_context.set({**current_logging_context(), **fields})


def clear_logging_context(*keys: str) -> None:
    """Drop the named fields, or all of them when no key is given."""
    if not keys:
        _run_context.set(None)
        return
    remaining = {key: value for key, value in current_logging_context().items() if key not in keys}
    _run_context.set(remaining or None)


def log_with_context(logger: logging.Logger, level: int, message: str, **fields: Any) -> None:
    """Log ``message`` with ``fields`` attached; they win over the run context."""
    logger.log(level, message, extra={"context_fields": fields})


class RunContextFilter(logging.Filter):
    """Merges the run context into ``record.context_fields`` and sets ``record.run_tag``."""

    def filter(self, record: logging.LogRecord) -> bool:
        explicit = getattr(record, "context_fields", None) or {}
        record.context_fields = {**current_logging_context(), **explicit}
        run_id = record.context_fields.get("run_id")
        record.run_tag = f"[run {str(run_id)[:8]}] " if run_id else ""
        return True


class StructuredFormatter(logging.Formatter):
    """One JSON object per line: fixed keys first, then the context fields."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "source": f"{record.module}:{record.funcName}:{record.lineno}",
        }
        for key, value in (getattr(record, "context_fields", None) or {}).items():
            payload.setdefault(key, value)

        if record.exc_info and record.exc_info[0] is not None:
            payload["error"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info),
            }

        return json.dumps(payload, default=str)


class _PlainFormatter(logging.Formatter):
    """Text formatter tolerating records that never went through ``RunContextFilter``."""

    def format(self, record: logging.LogRecord) -> str:
        if not hasattr(record, "run_tag"):
            record.run_tag = ""
        return super().format(record)


def _build_handlers(
    formatter: logging.Formatter,
    log_file: Optional[str],
    max_size: int,
    backup_count: int
) -> List[logging.Handler]:
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(RotatingFileHandler(log_file, maxBytes=max_size, backupCount=backup_count))

    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(RunContextFilter())
    return handlers


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    log_format: Optional[str] = None,
    structured: bool = False,
    max_size: int = 10 * 1024 * 1024,
    backup_count: int = 5
) -> logging.Logger:
    """
    Replace the root handlers with a stdout handler and an optional rotating file.

    Args:
        level: Root level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Rotating log file; parent directories are created
        log_format: Text format; may reference ``%(run_tag)s``
        structured: Emit JSON lines instead of text
        max_size: Bytes before the log file rotates
        backup_count: Rotated files kept

    Returns:
        The root logger
    """
    if structured:
        formatter: logging.Formatter = StructuredFormatter()
    else:
        formatter = _PlainFormatter(fmt=log_format or DEFAULT_LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    logging.basicConfig(
        level=level.upper(),
        handlers=_build_handlers(formatter, log_file, max_size, backup_count),
        force=True,
    )

    for name, quiet_level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)

    return logging.getLogger()


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
