from __future__ import annotations

import logging
import sys
import time
import traceback
import contextvars
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

# Correlation id for one ingestion (normally the video file name)
_CORRELATION_ID: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("collector_correlation_id", default=None)

_CONFIGURED = False

DEFAULT_PREFIX = "match_collector"


class ContextFilter(logging.Filter):
    """Attach correlation id to LogRecord as `correlation_id` for formatters."""

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        record.correlation_id = get_correlation_id() or "-"
        return True


class CollectorFormatter(logging.Formatter):
    """Logging formatter that tolerates missing correlation_id values."""

    def format(self, record: logging.LogRecord) -> str:
        if not hasattr(record, "correlation_id"):
            record.correlation_id = get_correlation_id() or "-"
        return super().format(record)


LOG_FORMAT = "%(asctime)s %(levelname)-5s %(name)s [video=%(correlation_id)s] %(message)s"


def configure_logging(*, level: int | str = logging.INFO, log_file: Optional[str] = None) -> None:
    """
    Configure root logging once per process.

    ``level`` accepts a level name ("DEBUG" shows per-frame OCR output);
    ``log_file`` mirrors stdout to a file when it can be opened.
    """
    global _CONFIGURED
    if _CONFIGURED:
        return

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    formatter = CollectorFormatter(LOG_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S%z")
    handlers: List[logging.Handler] = [logging.StreamHandler(stream=sys.stdout)]
    file_error: Optional[OSError] = None
    if log_file:
        try:
            handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
        except OSError as exc:
            file_error = exc

    root = logging.getLogger()
    root.setLevel(level)
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(ContextFilter())
        root.addHandler(handler)
    _CONFIGURED = True

    if file_error is not None:
        get_logger().warning("cannot open log file %s, logging to stdout only: %s", log_file, file_error)


def set_correlation_id(cid: Optional[str]) -> contextvars.Token:
    """
    Set a correlation id for the current context.
    Ingestion sets it to the video file name so every line of one video's
    processing can be grepped together. Returns the token for reset.
    """
    return _CORRELATION_ID.set(cid)


def reset_correlation_id(token: contextvars.Token) -> None:
    """Restore the correlation id that was active before ``set_correlation_id``."""
    _CORRELATION_ID.reset(token)


def get_correlation_id() -> Optional[str]:
    """Return current correlation id (or None)."""
    return _CORRELATION_ID.get()


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Returns a logger under the ``match_collector`` prefix with ContextFilter attached.

    Usage:
        logger = get_logger("session_engine")
        logger.debug("reusing session %s", session.id)
    """
    full_name = f"{DEFAULT_PREFIX}.{name}" if name else DEFAULT_PREFIX
    logger = logging.getLogger(full_name)
    if not any(isinstance(f, ContextFilter) for f in logger.filters):
        logger.addFilter(ContextFilter())
    return logger


def log_exception(logger: logging.Logger, exc: BaseException, *, context: Optional[str] = None, extra: Optional[Dict[str, Any]] = None) -> None:
    """
    Log an exception with traceback and structured context.

    Example:
        try:
            ...
        except StorageError as e:
            log_exception(logger, e, context="ingest.register_video", extra={"path": path})
    """
    msg = f"Exception in {context or 'unknown'}: {type(exc).__name__}: {exc}"
    tb = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    if extra:
        logger.error("%s | extra=%r\n%s", msg, extra, tb)
    else:
        logger.error("%s\n%s", msg, tb)


@contextmanager
def timed(logger: logging.Logger, action: str):
    """Log how long the wrapped block took, at WARNING if it raised."""
    start = time.monotonic()
    try:
        yield
    except Exception:
        logger.warning("%s failed after %.3fs", action, time.monotonic() - start)
        raise
    logger.info("%s completed in %.3fs", action, time.monotonic() - start)
