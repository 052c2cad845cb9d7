"""Recurring transaction materialization package."""

from finan_ai.recurrence.materializer import (
    MaterializationResult,
    materialize_recurring,
    materialize_rule,
    next_occurrence,
)

__all__ = [
    "MaterializationResult",
    "materialize_recurring",
    "materialize_rule",
    "next_occurrence",
]
