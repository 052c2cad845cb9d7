"""
Audit trail records

An event is written whenever the ledger changes (by hand, by import, by the
assistant or by recurring rules) and whenever an AI or storage call fails.
The app shows the most recent ones on the settings page.

DESIGN DECISION: Events are immutable once built (frozen model).
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field


class AuditEventType(str, Enum):
    TRANSACTION_ADDED = "transaction_added"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"
    RECURRING_MATERIALIZED = "recurring_materialized"

    IMPORT_PREVIEWED = "import_previewed"
    IMPORT_CONFIRMED = "import_confirmed"
    IMPORT_REJECTED = "import_rejected"

    CHAT_ACTION_EXECUTED = "chat_action_executed"
    AI_REQUEST_FAILED = "ai_request_failed"
    AI_RESPONSE_REJECTED = "ai_response_rejected"

    SESSION_STARTED = "session_started"
    USER_REGISTERED = "user_registered"
    USER_SIGNED_IN = "user_signed_in"

    STORAGE_FAILED = "storage_failed"
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Doubles as the structlog method name the event is emitted with."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class AuditEvent(BaseModel):
    """One entry of a user's audit trail."""

    model_config = ConfigDict(frozen=True)

    event_id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    user_id: Optional[str] = None
    # transaction, recurring, import or user
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    # Shared by every event of one session start or one import
    correlation_id: Optional[UUID] = None

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None
    is_user_action: bool = False

    def to_log_dict(self) -> dict[str, Any]:
        """Flat JSON-safe mapping passed as structlog key/values."""
        return self.model_dump(mode="json")


class AuditEventBuilder:
    """Named constructors, one per thing that happens in a flow."""

    @staticmethod
    def transaction_added(
        user_id: str,
        transaction_id: str,
        description: str,
        amount: str,
        source: str = "manual",
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_ADDED,
            user_id=user_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction added: {description} - {amount}",
            details={
                "amount": amount,
                "source": source,
            },
            is_user_action=source == "manual",
        )

    @staticmethod
    def transaction_deleted(
        user_id: str,
        transaction_id: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            user_id=user_id,
            entity_type="transaction",
            entity_id=transaction_id,
            description="Transaction deleted",
            is_user_action=True,
        )

    @staticmethod
    def transaction_updated(
        user_id: str,
        transaction_id: str,
        fields: list[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_UPDATED,
            user_id=user_id,
            entity_type="transaction",
            entity_id=transaction_id,
            description="Transaction edited",
            details={"fields": fields},
            is_user_action=True,
        )

    @staticmethod
    def recurring_materialized(
        user_id: str,
        transaction_count: int,
        rule_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECURRING_MATERIALIZED,
            user_id=user_id,
            entity_type="recurring",
            correlation_id=correlation_id,
            description=(
                f"Materialized {transaction_count} recurring transactions "
                f"from {rule_count} rules"
            ),
            details={
                "transaction_count": transaction_count,
                "rule_count": rule_count,
            },
        )

    @staticmethod
    def import_previewed(
        user_id: str,
        filename: str,
        found: int,
        dropped: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.IMPORT_PREVIEWED,
            user_id=user_id,
            entity_type="import",
            correlation_id=correlation_id,
            description=f"Import of {filename}: {found} transactions found",
            details={
                "filename": filename,
                "found": found,
                "dropped": dropped,
            },
            is_user_action=True,
        )

    @staticmethod
    def import_confirmed(
        user_id: str,
        added: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.IMPORT_CONFIRMED,
            user_id=user_id,
            entity_type="import",
            correlation_id=correlation_id,
            description=f"User confirmed import of {added} transactions",
            details={"added": added},
            is_user_action=True,
        )

    @staticmethod
    def chat_action_executed(
        user_id: str,
        action: str,
        transaction_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CHAT_ACTION_EXECUTED,
            user_id=user_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Assistant executed action: {action}",
            details={"action": action},
        )

    @staticmethod
    def ai_request_failed(
        operation: str,
        error_message: str,
        user_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.AI_REQUEST_FAILED,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"AI request failed: {operation}",
            error_message=error_message,
            details={"operation": operation},
        )

    @staticmethod
    def ai_response_rejected(
        operation: str,
        reason: str,
        issues: list[dict],
        user_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.AI_RESPONSE_REJECTED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"AI response rejected for {operation}: {reason}",
            details={
                "operation": operation,
                "reason": reason,
                "issues": issues,
            },
        )

    @staticmethod
    def session_started(
        user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SESSION_STARTED,
            user_id=user_id,
            correlation_id=correlation_id,
            description="Session started",
            is_user_action=True,
        )

    @staticmethod
    def import_rejected(
        user_id: str,
        filename: str,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.IMPORT_REJECTED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type="import",
            correlation_id=correlation_id,
            description=f"Upload of {filename} refused",
            error_message=reason,
            details={"filename": filename},
            is_user_action=True,
        )

    @staticmethod
    def user_signed_in(user_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.USER_SIGNED_IN,
            user_id=user_id,
            entity_type="user",
            entity_id=user_id,
            description="User signed in",
            is_user_action=True,
        )

    @staticmethod
    def user_registered(user_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.USER_REGISTERED,
            user_id=user_id,
            entity_type="user",
            entity_id=user_id,
            description="User registered",
            is_user_action=True,
        )

    @staticmethod
    def storage_failed(
        operation: str,
        error_message: str,
        user_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_FAILED,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Storage operation failed: {operation}",
            error_message=error_message,
            details={"operation": operation},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
