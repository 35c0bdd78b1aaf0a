"""Structured logging setup: JSON-lines or plain output with secret redaction.

Library modules log through ``structlog.get_logger(__name__)`` with an event
name and keyword fields. :func:`setup_logging` installs one stdlib handler set
on the package logger and renders both structlog events and plain stdlib
records through the same processor chain, so redaction applies to everything.
"""

from __future__ import annotations

import json
import logging
import math
import re
import sys
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import IO, Any, Final

import structlog

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]
LogRedactor = Callable[[JSONValue], JSONValue]

_REDACTED_VALUE: Final[str] = "***REDACTED***"
_DEFAULT_LOGGER_NAME: Final[str] = "alliage_sandbox"
_HANDLER_MARKER: Final[str] = "_alliage_sandbox_handler"
_RESERVED_KEYS: Final[frozenset[str]] = frozenset(
    {"event", "level", "logger", "timestamp", "exception"}
)

_SENSITIVE_KEY_TERMS: Final[tuple[str, ...]] = (
    "secret",
    "token",
    "password",
    "passphrase",
    "api_key",
    "apikey",
    "authorization",
    "credential",
    "cookie",
    "private_key",
)

_SENSITIVE_ASSIGNMENT_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"(?i)\b(api[_-]?key|token|password|secret|client_secret|authorization)\b\s*([:=])\s*([^\s,;]+)"
)
_BEARER_TOKEN_PATTERN: Final[re.Pattern[str]] = re.compile(r"(?i)\bbearer\s+[A-Za-z0-9._~+/-]+=*")


def setup_logging(
    *,
    level: int | str = "INFO",
    json_output: bool = False,
    stream: IO[str] | None = None,
    log_file: Path | str | None = None,
    redactor: LogRedactor | None = None,
    logger_name: str = _DEFAULT_LOGGER_NAME,
) -> logging.Logger:
    """Configure the package logger and route structlog through it.

    Calling it again replaces the handlers installed by the previous call.
    """

    parsed_level = _parse_log_level(level)
    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"),
        structlog.processors.format_exc_info,
        _redaction_processor(redactor if redactor is not None else default_log_redactor),
    ]
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            _render_json if json_output else _render_plain,
        ],
    )

    handlers: list[logging.Handler] = [logging.StreamHandler(stream or sys.stderr)]
    if log_file is not None:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))

    logger = logging.getLogger(logger_name)
    _remove_installed_handlers(logger)
    logger.setLevel(parsed_level)
    logger.propagate = False
    for handler in handlers:
        handler.setLevel(parsed_level)
        handler.setFormatter(formatter)
        setattr(handler, _HANDLER_MARKER, True)
        logger.addHandler(handler)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )
    return logger


def shutdown_logging(logger_name: str = _DEFAULT_LOGGER_NAME) -> None:
    """Flush and close handlers installed by :func:`setup_logging`, reset structlog."""

    _remove_installed_handlers(logging.getLogger(logger_name))
    structlog.reset_defaults()


def default_log_redactor(value: JSONValue) -> JSONValue:
    """Deep redaction for secrets in keys, assignments and bearer tokens."""
    return _redact_value(value, key_context=None)


def _redaction_processor(redactor: LogRedactor) -> Callable[[Any, str, Any], Any]:
    def redact(_logger: Any, _method_name: str, event_dict: Any) -> Any:
        for key, value in list(event_dict.items()):
            if key.startswith("_") or key in {"level", "logger", "timestamp"}:
                continue
            redacted = redactor({key: _normalize_json_value(value)})
            event_dict[key] = redacted[key] if isinstance(redacted, dict) else redacted
        return event_dict

    return redact


def _render_json(_logger: Any, _method_name: str, event_dict: Any) -> str:
    payload: dict[str, JSONValue] = {
        "timestamp": event_dict.get("timestamp"),
        "level": str(event_dict.get("level", "")).upper(),
        "logger": event_dict.get("logger"),
        "message": _coerce_log_message(event_dict.get("event")),
    }
    fields = _extra_fields(event_dict)
    if fields:
        payload["fields"] = fields
    if "exception" in event_dict:
        payload["exception"] = _coerce_log_message(event_dict["exception"])
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _render_plain(_logger: Any, _method_name: str, event_dict: Any) -> str:
    line = (
        f"{str(event_dict.get('level', '')).upper()} {event_dict.get('logger')}: "
        f"{_coerce_log_message(event_dict.get('event'))}"
    )
    fields = _extra_fields(event_dict)
    if fields:
        rendered = " ".join(
            f"{key}={_coerce_log_message(value)}" for key, value in sorted(fields.items())
        )
        line = f"{line} {rendered}"
    if "exception" in event_dict:
        line = f"{line}\n{event_dict['exception']}"
    return line


def _extra_fields(event_dict: Mapping[str, Any]) -> dict[str, JSONValue]:
    return {
        key: _normalize_json_value(value)
        for key, value in event_dict.items()
        if key not in _RESERVED_KEYS and not key.startswith("_")
    }


def _remove_installed_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        if getattr(handler, _HANDLER_MARKER, False):
            logger.removeHandler(handler)
            handler.flush()
            handler.close()


def _parse_log_level(value: int | str) -> int:
    if isinstance(value, int):
        return value

    parsed = logging.getLevelName(value.strip().upper())
    if isinstance(parsed, int):
        return parsed
    raise ValueError(f"unsupported logging level {value!r}")


def _coerce_log_message(value: object) -> str:
    if isinstance(value, str):
        return value
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _normalize_json_value(value: object) -> JSONValue:
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else _REDACTED_VALUE
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, Mapping):
        return {str(key): _normalize_json_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_normalize_json_value(item) for item in value]
    if isinstance(value, (set, frozenset)):
        return sorted((_normalize_json_value(item) for item in value), key=repr)
    return repr(value)


def _redact_value(value: JSONValue, *, key_context: str | None) -> JSONValue:
    if key_context is not None and any(
        term in key_context.lower() for term in _SENSITIVE_KEY_TERMS
    ):
        return _REDACTED_VALUE
    if isinstance(value, str):
        redacted = _SENSITIVE_ASSIGNMENT_PATTERN.sub(
            lambda match: f"{match.group(1)}{match.group(2)}{_REDACTED_VALUE}", value
        )
        return _BEARER_TOKEN_PATTERN.sub(f"Bearer {_REDACTED_VALUE}", redacted)
    if isinstance(value, list):
        return [_redact_value(item, key_context=None) for item in value]
    if isinstance(value, dict):
        return {key: _redact_value(item, key_context=key) for key, item in value.items()}
    return value


__all__ = [
    "JSONScalar",
    "JSONValue",
    "LogRedactor",
    "default_log_redactor",
    "setup_logging",
    "shutdown_logging",
]
