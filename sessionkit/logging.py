from __future__ import annotations

import logging
import os
import uuid
from contextvars import ContextVar
from typing import Any, Dict, Mapping, Optional

import structlog

# Set by the calling HTTP layer so every session event of one request shares an id
correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

# Context keys whose values are credentials or identify a person
SENSITIVE_KEY_MARKERS = ("password", "secret", "token", "authorization", "email")

_MAX_REDACTION_DEPTH = 5


def get_correlation_id() -> Optional[str]:
    return correlation_id_var.get()


def set_correlation_id(correlation_id: Optional[str] = None) -> str:
    """Bind ``correlation_id`` (or a fresh uuid4) to the current context and return it."""
    cid = correlation_id or str(uuid.uuid4())
    correlation_id_var.set(cid)
    return cid


def _is_sensitive(key: str) -> bool:
    lower_key = key.lower()
    return any(marker in lower_key for marker in SENSITIVE_KEY_MARKERS)


def mask_value(value: str) -> str:
    """Mask a credential or address, keeping just enough to correlate log lines.

    Emails keep their domain (``al***@example.com``); other strings keep two
    characters at each end. Anything of four characters or fewer is fully masked.
    """
    local, sep, domain = value.partition("@")
    if sep and domain:
        return f"{local[:2]}***@{domain}"
    if len(value) > 4:
        return value[:2] + "***" + value[-2:]
    return "***"


def _redact(data: Mapping[str, Any], depth: int = 0) -> Dict[str, Any]:
    redacted: Dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, Mapping) and depth < _MAX_REDACTION_DEPTH:
            # Header maps and nested context carry Authorization values too
            redacted[key] = _redact(value, depth + 1)
        elif isinstance(key, str) and _is_sensitive(key) and isinstance(value, str):
            redacted[key] = mask_value(value)
        else:
            redacted[key] = value
    return redacted


def _add_correlation_id(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    cid = get_correlation_id()
    if cid:
        event_dict["correlation_id"] = cid
    return event_dict


def _redact_pii(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """Processor masking credentials, tokens and emails before rendering."""
    return _redact(event_dict)


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def configure_logging(
    log_level: Optional[str] = None,
    json_output: Optional[bool] = None,
    development_mode: Optional[bool] = None,
) -> None:
    """Configure structlog for the session subsystem.

    Arguments left as ``None`` fall back to ``LOG_LEVEL``, ``LOG_JSON`` and
    ``LOG_DEV_MODE``. JSON lines are the default; development mode or
    ``LOG_JSON=false`` switches to the console renderer.
    """
    level_name = (log_level or os.getenv("LOG_LEVEL", "INFO")).upper()
    if json_output is None:
        json_output = _env_flag("LOG_JSON", True)
    if development_mode is None:
        development_mode = _env_flag("LOG_DEV_MODE", False)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _add_correlation_id,
        _redact_pii,
    ]
    if development_mode or not json_output:
        processors.append(structlog.dev.ConsoleRenderer(colors=development_mode))
    else:
        processors.extend(
            [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
        )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level_name, logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


configure_logging()


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
