"""Public observability primitives: structured logging with redaction."""

from alliage_sandbox.observability.logging import (
    LogRedactor,
    default_log_redactor,
    setup_logging,
    shutdown_logging,
)

__all__ = [
    "LogRedactor",
    "default_log_redactor",
    "setup_logging",
    "shutdown_logging",
]
