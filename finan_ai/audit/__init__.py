"""Structured logging and the audit trail."""

from finan_ai.audit.logger import (
    MAX_STORED_EVENTS,
    AuditLogger,
    configure_logging,
    create_correlation_id,
)

__all__ = ["MAX_STORED_EVENTS", "AuditLogger", "configure_logging", "create_correlation_id"]
