"""
Recurring Transaction Materializer

Turns calendar time passing into concrete ledger entries: every recurring
rule emits one transaction per occurrence that has become due, and its
next_due_date cursor moves past all of them.

This module is a pure function of (today, rules). It reads no storage and
writes no storage. The caller applies both outputs and persists them in a
single atomic save (see AppState.process_recurring).

STEP POLICY:
- daily   -> +1 day
- weekly  -> +7 days
- monthly -> +1 calendar month, on the rule's anchor day
- yearly  -> +1 calendar year, on the rule's anchor day

The anchor day is the day-of-month of the rule's start date. When the
target month is shorter, the date is clamped to its last day, and the next
step returns to the anchor: Jan 31 -> Feb 29 -> Mar 31 -> Apr 30.
"""

from dataclasses import dataclass, field
from datetime import date, timedelta

from dateutil.relativedelta import relativedelta

from finan_ai.models.finance import (
    Frequency,
    RecurringTransaction,
    TransactionDraft,
)


@dataclass
class MaterializationResult:
    """Output of one materialization pass."""

    new_transactions: list[TransactionDraft] = field(default_factory=list)
    # Only rules whose next_due_date moved, as updated copies
    updated_rules: list[RecurringTransaction] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.new_transactions or self.updated_rules)


def next_occurrence(rule: RecurringTransaction, current: date) -> date:
    """The occurrence after `current` for this rule's frequency."""
    if rule.frequency == Frequency.DAILY:
        return current + timedelta(days=1)
    if rule.frequency == Frequency.WEEKLY:
        return current + timedelta(days=7)

    anchor = rule.start_date.day
    if rule.frequency == Frequency.MONTHLY:
        return current + relativedelta(months=+1, day=anchor)
    if rule.frequency == Frequency.YEARLY:
        return current + relativedelta(years=+1, day=anchor)

    raise ValueError(f"Unsupported frequency: {rule.frequency}")


def _is_expired(rule: RecurringTransaction, on: date) -> bool:
    return rule.end_date is not None and on > rule.end_date


def materialize_rule(
    rule: RecurringTransaction,
    today: date,
) -> tuple[list[TransactionDraft], date]:
    """
    Materialize one rule.

    Returns:
        (drafts, next_due_date) - the due transactions in date order and
        the rule's new cursor. The cursor is unchanged when nothing is due.
    """
    cursor = rule.next_due_date

    # A rule that has already run past its end date stays inert
    if _is_expired(rule, cursor):
        return [], cursor

    drafts: list[TransactionDraft] = []
    while cursor <= today and not _is_expired(rule, cursor):
        drafts.append(rule.occurrence(cursor))
        cursor = next_occurrence(rule, cursor)
        if _is_expired(rule, cursor):
            break

    return drafts, cursor


def materialize_recurring(
    today: date,
    rules: list[RecurringTransaction],
) -> MaterializationResult:
    """
    Produce every transaction that became due as of `today`.

    Running this again with the same `today` on the updated rules emits
    nothing: every cursor is already past `today` (or past its end date).

    Args:
        today: Local calendar day the pass runs for
        rules: All of the user's recurring rules (not mutated)

    Returns:
        MaterializationResult with the new drafts (rule order, then date
        order) and the rules whose cursor moved
    """
    result = MaterializationResult()

    for rule in rules:
        drafts, next_due = materialize_rule(rule, today)
        result.new_transactions.extend(drafts)
        if next_due != rule.next_due_date:
            result.updated_rules.append(
                rule.model_copy(update={"next_due_date": next_due})
            )

    return result
