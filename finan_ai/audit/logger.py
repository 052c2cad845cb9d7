"""
Structured logging and the per-user audit trail

configure_logging() sets structlog up once per process with JSON output.
AuditLogger writes every AuditEvent to that log and, when a store is given,
to the user's "audit" collection, capped at MAX_STORED_EVENTS.

DESIGN DECISION: Writing the audit trail can fail like any other storage
call, but that must never abort the flow that produced the event. log()
reports success as a bool instead of raising.
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from finan_ai.models.audit import AuditEvent, AuditEventBuilder
from finan_ai.services.storage import KeyValueStoreInterface, namespaced_key


MAX_STORED_EVENTS = 500

_configured = False


def configure_logging(level: str = "INFO") -> None:
    """Idempotent; the level of the first call wins."""
    global _configured
    if _configured:
        return

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper())
        ),
        cache_logger_on_first_use=True,
    )
    _configured = True


class AuditLogger:
    """Sends audit events to structlog and to key-value storage."""

    def __init__(
        self,
        storage: Optional[KeyValueStoreInterface] = None,
        key_prefix: str = "finan-ai",
    ):
        self._storage = storage
        self._key_prefix = key_prefix
        self._logger = structlog.get_logger("finan_ai.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Emit the event and append it to the user's trail.

        Returns False only when the storage write failed. Events without a
        user (system errors) and loggers without storage count as success.
        """
        emit = getattr(self._logger, event.severity.value)
        emit("audit_event", **event.to_log_dict())

        if self._storage is None or not event.user_id:
            return True

        key = namespaced_key("audit", event.user_id, self._key_prefix)
        try:
            events = await self._storage.get(key, [])
            if not isinstance(events, list):
                events = []
            events.append(event.model_dump(mode="json"))
            await self._storage.set(key, events[-MAX_STORED_EVENTS:])
            return True
        except Exception as e:
            self._logger.error(
                "audit_storage_failed",
                error=str(e),
                event_id=str(event.event_id),
            )
            return False

    async def recent_events(self, user_id: str, limit: int = 50) -> list[AuditEvent]:
        """Most recent stored events for a user, newest first."""
        if self._storage is None:
            return []
        key = namespaced_key("audit", user_id, self._key_prefix)
        raw = await self._storage.get(key, [])
        events = []
        for item in raw if isinstance(raw, list) else []:
            try:
                events.append(AuditEvent.model_validate(item))
            except ValueError:
                continue
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]

    async def log_ai_failure(
        self,
        operation: str,
        error_message: str,
        user_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an AI service call that failed outright."""
        await self.log(AuditEventBuilder.ai_request_failed(
            operation=operation,
            error_message=error_message,
            user_id=user_id,
            correlation_id=correlation_id,
        ))

    async def log_ai_rejection(
        self,
        operation: str,
        reason: str,
        issues: list[dict],
        user_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an AI reply that did not pass the schema gate."""
        await self.log(AuditEventBuilder.ai_response_rejected(
            operation=operation,
            reason=reason,
            issues=issues,
            user_id=user_id,
            correlation_id=correlation_id,
        ))

    async def log_storage_failure(
        self,
        operation: str,
        error_message: str,
        user_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.storage_failed(
            operation=operation,
            error_message=error_message,
            user_id=user_id,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """One id per session start or import, shared by all of its events."""
    return uuid4()
