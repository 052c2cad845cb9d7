"""Tests for the recurring transaction materializer."""

from datetime import date, timedelta
from decimal import Decimal

import pytest

from finan_ai.models import Frequency, RecurringTransaction, TransactionType
from finan_ai.recurrence import materialize_recurring, materialize_rule, next_occurrence


def make_rule(frequency, start, end=None, next_due=None, **overrides):
    rule = RecurringTransaction.create(
        description=overrides.get("description", "Rent"),
        amount=overrides.get("amount", Decimal("15000")),
        type=overrides.get("type", TransactionType.EXPENSE),
        category_id=overrides.get("category_id", "3"),
        frequency=frequency,
        start_date=start,
        end_date=end,
    )
    if next_due is not None:
        rule = rule.model_copy(update={"next_due_date": next_due})
    return rule


def dates(drafts):
    return [d.date for d in drafts]


class TestNextOccurrence:

    def test_daily_and_weekly_steps(self):
        assert next_occurrence(make_rule(Frequency.DAILY, date(2024, 2, 28)), date(2024, 2, 28)) == date(2024, 2, 29)
        assert next_occurrence(make_rule(Frequency.WEEKLY, date(2024, 1, 1)), date(2024, 12, 30)) == date(2025, 1, 6)

    def test_monthly_keeps_anchor_day_after_short_month(self):
        rule = make_rule(Frequency.MONTHLY, date(2024, 1, 31))
        assert next_occurrence(rule, date(2024, 1, 31)) == date(2024, 2, 29)
        assert next_occurrence(rule, date(2024, 2, 29)) == date(2024, 3, 31)
        assert next_occurrence(rule, date(2024, 3, 31)) == date(2024, 4, 30)

    def test_yearly_leap_day_clamps(self):
        rule = make_rule(Frequency.YEARLY, date(2024, 2, 29))
        assert next_occurrence(rule, date(2024, 2, 29)) == date(2025, 2, 28)
        assert next_occurrence(rule, date(2027, 2, 28)) == date(2028, 2, 29)


class TestMaterializeRule:

    def test_daily_emits_one_per_day_through_today(self):
        rule = make_rule(Frequency.DAILY, date(2024, 1, 1))
        drafts, next_due = materialize_rule(rule, date(2024, 1, 5))
        assert dates(drafts) == [date(2024, 1, d) for d in range(1, 6)]
        assert next_due == date(2024, 1, 6)

    def test_monthly_catch_up(self):
        rule = make_rule(Frequency.MONTHLY, date(2024, 1, 15))
        drafts, next_due = materialize_rule(rule, date(2024, 4, 20))
        assert dates(drafts) == [
            date(2024, 1, 15),
            date(2024, 2, 15),
            date(2024, 3, 15),
            date(2024, 4, 15),
        ]
        assert next_due == date(2024, 5, 15)

    def test_month_end_anchor(self):
        rule = make_rule(Frequency.MONTHLY, date(2024, 1, 31))
        drafts, next_due = materialize_rule(rule, date(2024, 5, 1))
        assert dates(drafts) == [
            date(2024, 1, 31),
            date(2024, 2, 29),
            date(2024, 3, 31),
            date(2024, 4, 30),
        ]
        assert next_due == date(2024, 5, 31)

    def test_due_today_is_included(self):
        rule = make_rule(Frequency.YEARLY, date(2024, 4, 20))
        drafts, next_due = materialize_rule(rule, date(2024, 4, 20))
        assert dates(drafts) == [date(2024, 4, 20)]
        assert next_due == date(2025, 4, 20)

    def test_future_rule_emits_nothing(self):
        rule = make_rule(Frequency.WEEKLY, date(2024, 5, 1))
        drafts, next_due = materialize_rule(rule, date(2024, 4, 20))
        assert drafts == []
        assert next_due == date(2024, 5, 1)

    def test_end_date_stops_emission(self):
        rule = make_rule(Frequency.WEEKLY, date(2024, 1, 1), end=date(2024, 1, 15))
        drafts, next_due = materialize_rule(rule, date(2024, 2, 1))
        assert dates(drafts) == [date(2024, 1, 1), date(2024, 1, 8), date(2024, 1, 15)]
        assert next_due == date(2024, 1, 22)

    def test_expired_rule_stays_inert(self):
        rule = make_rule(
            Frequency.WEEKLY, date(2024, 1, 1), end=date(2024, 1, 15), next_due=date(2024, 1, 22)
        )
        drafts, next_due = materialize_rule(rule, date(2024, 6, 1))
        assert drafts == []
        assert next_due == date(2024, 1, 22)

    def test_drafts_copy_rule_fields(self):
        rule = make_rule(
            Frequency.MONTHLY,
            date(2024, 4, 1),
            description="Salary",
            amount=Decimal("50000"),
            type=TransactionType.INCOME,
            category_id="7",
        )
        (draft,), _ = materialize_rule(rule, date(2024, 4, 20))
        assert draft.description == "Salary"
        assert draft.amount == Decimal("50000.00")
        assert draft.type == TransactionType.INCOME
        assert draft.category_id == "7"


class TestMaterializeRecurring:

    @pytest.mark.parametrize("days", [0, 1, 30, 366])
    def test_daily_rule_emits_one_per_day_since_start(self, days):
        start = date(2024, 2, 1)
        rule = make_rule(Frequency.DAILY, start)
        result = materialize_recurring(start + timedelta(days=days), [rule])

        assert len(result.new_transactions) == days + 1
        assert dates(result.new_transactions) == [start + timedelta(days=i) for i in range(days + 1)]
        assert result.updated_rules[0].next_due_date == start + timedelta(days=days + 1)

    def test_yearly_rule_ending_within_first_year_emits_once(self):
        rule = make_rule(Frequency.YEARLY, date(2024, 1, 1), end=date(2024, 6, 1))

        first = materialize_recurring(date(2025, 1, 1), [rule])
        assert dates(first.new_transactions) == [date(2024, 1, 1)]

        advanced = first.updated_rules
        for today in (date(2025, 1, 1), date(2026, 1, 1), date(2030, 1, 1)):
            later = materialize_recurring(today, advanced)
            assert later.new_transactions == []
            assert not later.changed

    def test_only_moved_rules_are_reported(self):
        due = make_rule(Frequency.MONTHLY, date(2024, 4, 1))
        future = make_rule(Frequency.MONTHLY, date(2024, 6, 1))
        result = materialize_recurring(date(2024, 4, 20), [due, future])

        assert len(result.new_transactions) == 1
        assert [r.id for r in result.updated_rules] == [due.id]
        assert result.updated_rules[0].next_due_date == date(2024, 5, 1)
        assert result.changed

    def test_second_pass_same_day_is_a_no_op(self):
        rules = [
            make_rule(Frequency.DAILY, date(2024, 4, 1)),
            make_rule(Frequency.MONTHLY, date(2024, 1, 15)),
        ]
        first = materialize_recurring(date(2024, 4, 20), rules)
        updated = {r.id: r for r in first.updated_rules}
        advanced = [updated.get(r.id, r) for r in rules]

        second = materialize_recurring(date(2024, 4, 20), advanced)
        assert second.new_transactions == []
        assert second.updated_rules == []
        assert not second.changed

    def test_inputs_are_not_mutated(self):
        rule = make_rule(Frequency.DAILY, date(2024, 4, 1))
        materialize_recurring(date(2024, 4, 20), [rule])
        assert rule.next_due_date == date(2024, 4, 1)

    def test_every_occurrence_is_after_previous_cursor(self):
        rule = make_rule(Frequency.WEEKLY, date(2024, 1, 3), next_due=date(2024, 3, 6))
        result = materialize_recurring(date(2024, 4, 20), [rule])
        assert all(rule.next_due_date <= d <= date(2024, 4, 20) for d in dates(result.new_transactions))
        assert result.updated_rules[0].next_due_date > date(2024, 4, 20)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
