"""Loguru configuration for the API and the CLI.

Every record is enriched with the current request context (request id,
authenticated user, operation) through a Loguru patcher. Two sink formats
are available:

- human-readable colored lines for development
- one JSON object per line for staging and production

Example:
    >>> from mymetas.logging import logger, set_request_context
    >>> set_request_context(request_id="f3a1", user_id="42")
    >>> logger.info("Meta created")
"""

import json
import sys
import traceback
from contextvars import ContextVar
from pathlib import Path
from typing import Any

from loguru import logger as loguru_logger

from mymetas.config import settings

CONTEXT_KEYS = ("request_id", "user_id", "operation")

_request_context: ContextVar[dict[str, str]] = ContextVar("request_context", default={})

TEXT_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> | "
    "{extra[context]}<level>{message}</level>"
)


# =============================================================================
# Request Context
# =============================================================================


def set_request_context(
    request_id: str | None = None,
    user_id: str | int | None = None,
    operation: str | None = None,
) -> None:
    """Attach values to every record logged in the current context.

    Arguments left as None keep their previous value.
    """
    context = dict(_request_context.get())
    for key, value in zip(CONTEXT_KEYS, (request_id, user_id, operation)):
        if value is not None:
            context[key] = str(value)
    _request_context.set(context)


def clear_request_context() -> None:
    _request_context.set({})


def get_request_context() -> dict[str, str | None]:
    context = _request_context.get()
    return {key: context.get(key) for key in CONTEXT_KEYS}


# =============================================================================
# Record Processing
# =============================================================================


def _add_context(record: dict[str, Any]) -> None:
    context = _request_context.get()
    record["extra"].update(context)
    record["extra"]["context"] = (
        f"[{context['request_id']}] " if "request_id" in context else ""
    )


def to_json(record: dict[str, Any]) -> str:
    """Render a record as a single JSON line.

    Args:
        record: Loguru record, already enriched with the request context

    Returns:
        JSON document with time, level, location, message, context values,
        bound extras and exception details
    """
    payload: dict[str, Any] = {
        "time": record["time"].isoformat(),
        "level": record["level"].name,
        "logger": record["name"],
        "line": record["line"],
        "message": record["message"],
    }
    payload.update({k: v for k, v in record["extra"].items() if k != "context"})

    if record["exception"] is not None:
        exc = record["exception"]
        payload["exception"] = {
            "type": exc.type.__name__ if exc.type else None,
            "value": str(exc.value),
            "traceback": "".join(traceback.format_exception(exc.type, exc.value, exc.traceback)),
        }
    return json.dumps(payload, default=str)


def _json_format(record: dict[str, Any]) -> str:
    record["extra"]["json"] = to_json(record)
    return "{extra[json]}\n"


# =============================================================================
# Setup
# =============================================================================


def setup_logging(
    level: str = "INFO",
    json_logs: bool = False,
    log_file: Path | None = None,
    colorize: bool = True,
) -> Any:
    """Replace Loguru's default handler with the MyMetas sinks.

    Args:
        level: Minimum level
        json_logs: Emit JSON lines instead of colored text
        log_file: Optional rotating log file
        colorize: Color the text format

    Returns:
        Logger patched with the request context
    """
    loguru_logger.remove()
    patched = loguru_logger.patch(_add_context)

    line_format = _json_format if json_logs else TEXT_FORMAT
    patched.add(sys.stderr, level=level, format=line_format, colorize=colorize and not json_logs)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        patched.add(
            log_file,
            level=level,
            format=_json_format,
            rotation="50 MB",
            retention="14 days",
            compression="zip",
            enqueue=True,
        )

    return patched


logger = setup_logging(
    level=settings.log_level,
    json_logs=settings.log_json,
    log_file=settings.data_dir / "mymetas.log" if settings.log_to_file else None,
    colorize=not settings.log_json,
)


__all__ = [
    "logger",
    "setup_logging",
    "to_json",
    "set_request_context",
    "clear_request_context",
    "get_request_context",
]
