"""Structured logging setup.

Configures structlog on top of the stdlib ``logging`` package so every
contract, the host and the CLI emit structured events: JSON by default,
or a console renderer for humans.

Quick start
-----------
    from stakegov.logging import setup_logging, get_logger

    setup_logging()            # once, at process start
    log = get_logger(__name__)
    log.info("pool_deployed", address="staking")

Environment
-----------
- STAKEGOV_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: WARNING)
- STAKEGOV_LOG_FORMAT: "json" (default) or "console"
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Any, Iterable, Optional, Union

import structlog
from structlog.contextvars import merge_contextvars


REDACT_KEYS = {"credential", "viewing_key", "key", "preimage"}


def _redact_secrets(_: Any, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Mask values of well-known secret-bearing keys."""
    for k in list(event_dict.keys()):
        if k.lower() in REDACT_KEYS and event_dict[k] is not None:
            event_dict[k] = "***"
    return event_dict


def _base_processors(service_name: str) -> Iterable:
    yield structlog.stdlib.add_log_level
    yield structlog.processors.TimeStamper(fmt="iso", utc=True)
    yield merge_contextvars
    yield structlog.processors.StackInfoRenderer()
    yield structlog.processors.format_exc_info
    yield _redact_secrets

    def _ensure_service(_: Any, __: str, ev: dict[str, Any]) -> dict[str, Any]:
        ev.setdefault("service", service_name)
        return ev

    yield _ensure_service


def setup_logging(
    *,
    service_name: str = "stakegov",
    level: Optional[Union[str, int]] = None,
    log_format: Optional[str] = None,
) -> None:
    """Configure structlog and stdlib logging. Call once per process.

    level and log_format default to $STAKEGOV_LOG_LEVEL / $STAKEGOV_LOG_FORMAT.
    """
    level = level or os.getenv("STAKEGOV_LOG_LEVEL", "").upper() or "WARNING"
    log_format = (log_format or os.getenv("STAKEGOV_LOG_FORMAT", "") or "json").lower()
    if log_format not in ("json", "console"):
        raise ValueError(f"Unknown log format {log_format!r}; expected 'json' or 'console'")

    processors = list(_base_processors(service_name))
    if log_format == "console":
        renderer: Any = structlog.dev.ConsoleRenderer(colors=False, sort_keys=False)
    else:
        renderer = structlog.processors.JSONRenderer(sort_keys=True)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            *processors,
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        cache_logger_on_first_use=False,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)
    root.addHandler(handler)
    root.setLevel(level)


def get_logger(name: Optional[str] = None) -> Any:
    """Return a structlog logger, bound to `name` when given."""
    return structlog.get_logger(name) if name else structlog.get_logger()


def bind_context(**kv: Any) -> None:
    """Bind key/value pairs (e.g. scenario, tx) into every following event."""
    structlog.contextvars.bind_contextvars(**kv)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


__all__ = ["setup_logging", "get_logger", "bind_context", "clear_context"]
