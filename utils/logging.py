from __future__ import annotations

import logging
import os
from collections.abc import Callable
from typing import Any

import structlog
from structlog.contextvars import merge_contextvars

_REDACT_REPLACEMENT = "***REDACTED***"
_DEFAULT_REDACT_FIELDS = {"authorization", "password", "pass", "token", "jwt_secret"}


def _log_level(debug: bool) -> int:
    if debug:
        return logging.DEBUG
    level_name = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    if not level_name:
        return logging.INFO
    return getattr(logging, level_name, logging.INFO)


def _redaction_processor(
    redact_fields: set[str],
) -> Callable[[Any, str, dict[str, Any]], dict[str, Any]]:
    lower_fields = {field.lower() for field in redact_fields}

    def processor(_: Any, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        for key in list(event_dict.keys()):
            if isinstance(key, str) and key.lower() in lower_fields:
                event_dict[key] = _REDACT_REPLACEMENT
        return event_dict

    return processor


def _redact_fields_from_env() -> set[str]:
    raw = os.getenv("LOG_REDACT_FIELDS", "")
    fields = {item.strip() for item in raw.split(",") if item.strip()}
    return set(_DEFAULT_REDACT_FIELDS).union(fields)


def configure_logging(debug: bool = False) -> None:
    """Configure structlog with JSON output, contextvars, and redaction."""

    level = _log_level(debug)

    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logging.basicConfig(level=level, format="%(message)s", handlers=[handler], force=True)

    structlog.configure(
        processors=[
            merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            _redaction_processor(_redact_fields_from_env()),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )
