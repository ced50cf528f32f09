"""Structured logging built on structlog and the stdlib logging tree.

Every entry emitted while a request is in flight is tagged with:
- trace_id: the request's correlation ID (same value as the X-Trace-ID header)
- path: request path without the query string
- method: HTTP method

plus level, logger name and an ISO8601 timestamp. ENVIRONMENT=production
renders one JSON object per line; anything else renders for a terminal.

Usage:
    from stencil.logging import configure_logging, get_logger

    configure_logging(level=settings.log_level, json_format=settings.is_production)

    logger = get_logger(__name__)
    logger.info("example_request_processed", name=name)

The trace ID ContextVar is private to this module. Read and write it through
bind_trace_id() / get_trace_id() only.
"""

import logging
import sys
from contextvars import ContextVar

import structlog

_trace_id_var: ContextVar[str | None] = ContextVar("stencil_trace_id", default=None)

path_var: ContextVar[str | None] = ContextVar("path", default=None)
method_var: ContextVar[str | None] = ContextVar("method", default=None)

_LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}

# Loggers whose output duplicates our own
_QUIET_LOGGERS = ("uvicorn.access",)


def parse_log_level(level: str) -> int:
    """Map a LOG_LEVEL name to a stdlib level. Unknown names map to INFO."""
    return _LOG_LEVELS.get(level.strip().lower(), logging.INFO)


def add_request_context(logger: logging.Logger, method_name: str, event_dict: dict) -> dict:
    """structlog processor injecting the request's ContextVars.

    Unset values are skipped and fields given at the call site are kept.
    """
    for key, var in (("trace_id", _trace_id_var), ("path", path_var), ("method", method_var)):
        value = var.get()
        if value:
            event_dict.setdefault(key, value)
    return event_dict


def _pre_chain() -> list:
    # Runs for structlog entries and for foreign (stdlib) records alike
    return [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        add_request_context,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]


def _renderer(json_format: bool):
    if json_format:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer()


def configure_logging(level: str = "info", json_format: bool = True) -> None:
    """Route structlog and stdlib logging through one stdout handler.

    Args:
        level: LOG_LEVEL name (debug, info, warn, error).
        json_format: Render JSON lines instead of console output.
    """
    pre_chain = _pre_chain()

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(json_format),
            ],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(parse_log_level(level))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger, usually get_logger(__name__)."""
    return structlog.get_logger(name)


def bind_trace_id(trace_id: str | None) -> None:
    """Attach the request's correlation ID to the current context."""
    _trace_id_var.set(trace_id)


def get_trace_id() -> str | None:
    """Get the current request's correlation ID, if any."""
    return _trace_id_var.get()


def set_request_context(path: str | None = None, method: str | None = None) -> None:
    """Record the request's path and method for the current async context."""
    if path is not None:
        path_var.set(path)
    if method is not None:
        method_var.set(method)


def clear_request_context() -> None:
    """Reset every request-scoped ContextVar once the request is done."""
    for var in (_trace_id_var, path_var, method_var):
        var.set(None)
