"""Logging configuration for the application."""

import json
import logging
import sys

from app.core.config import get_settings

AUDIT_LOGGER_NAME = "app.audit.permission"


class AuditFormatter(logging.Formatter):
    """Append the structured audit payload (record.audit) as JSON."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        audit = getattr(record, "audit", None)
        if audit is None:
            return message
        return f"{message} audit={json.dumps(audit, sort_keys=True, default=str)}"


def setup_logging() -> None:
    """Configure application-wide logging.

    Level is DEBUG when settings.debug is True, otherwise INFO.
    Output goes to stdout. Permission audit records get their own handler
    so the structured payload is always written, whatever the root format.
    """
    settings = get_settings()
    log_level = logging.DEBUG if settings.debug else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    audit_logger = logging.getLogger(AUDIT_LOGGER_NAME)
    if not any(isinstance(h.formatter, AuditFormatter) for h in audit_logger.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(
            AuditFormatter("%(asctime)s - AUDIT - %(levelname)s - %(message)s")
        )
        audit_logger.addHandler(handler)
    audit_logger.setLevel(logging.INFO)
    audit_logger.propagate = False


def get_logger(name: str) -> logging.Logger:
    """Return a logger for the given module name.

    Args:
        name: Usually __name__ of the calling module.

    Returns:
        Logger instance.
    """
    return logging.getLogger(name)
