"""
Data Models Package

This package contains all Pydantic models used in Finan AI.
All data flowing through the system must conform to these schemas.
"""

from finan_ai.models.finance import (
    DEFAULT_CATEGORIES,
    Budget,
    BudgetPeriod,
    Category,
    ChatMessage,
    ChatMode,
    ChatRole,
    Frequency,
    Goal,
    Investment,
    ManualEntry,
    RecurringTransaction,
    Transaction,
    TransactionDraft,
    TransactionType,
    User,
    new_id,
)
from finan_ai.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Finance models
    "DEFAULT_CATEGORIES",
    "Budget",
    "BudgetPeriod",
    "Category",
    "ChatMessage",
    "ChatMode",
    "ChatRole",
    "Frequency",
    "Goal",
    "Investment",
    "ManualEntry",
    "RecurringTransaction",
    "Transaction",
    "TransactionDraft",
    "TransactionType",
    "User",
    "new_id",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
