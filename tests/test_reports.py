"""Tests for deterministic reports."""

from datetime import date
from decimal import Decimal

import pytest

from finan_ai.models import (
    DEFAULT_CATEGORIES,
    Budget,
    Goal,
    Investment,
    ManualEntry,
    Transaction,
    TransactionType,
)
from finan_ai.reports import (
    BudgetStatus,
    budget_progress,
    budget_status,
    current_and_previous_month,
    expenses_by_category,
    filter_transactions,
    goal_progress,
    investment_summary,
    month_bounds,
    monthly_income_vs_expense,
    net_worth,
    net_worth_history,
    totals,
)

CATEGORIES = list(DEFAULT_CATEGORIES)


def tx(day, amount, type=TransactionType.EXPENSE, category_id="1", description="x"):
    return Transaction(
        date=day,
        description=description,
        amount=Decimal(amount),
        type=type,
        category_id=category_id,
    )


@pytest.fixture
def ledger():
    return [
        tx(date(2024, 3, 1), "50000", TransactionType.INCOME, "7"),
        tx(date(2024, 3, 5), "1200", category_id="1"),
        tx(date(2024, 3, 9), "15000", category_id="3"),
        tx(date(2024, 4, 1), "50000", TransactionType.INCOME, "7"),
        tx(date(2024, 4, 2), "800", category_id="1"),
        tx(date(2024, 4, 3), "300", category_id="gone"),
    ]


class TestTotals:

    def test_totals(self, ledger):
        result = totals(ledger)
        assert result.income == Decimal("100000")
        assert result.expense == Decimal("17300")
        assert result.net_balance == Decimal("82700")

    def test_empty(self):
        assert totals([]).net_balance == Decimal("0")

    def test_filter_is_inclusive(self, ledger):
        selected = filter_transactions(ledger, date(2024, 3, 5), date(2024, 4, 1))
        assert [t.date.day for t in selected] == [5, 9, 1]

    def test_month_bounds(self):
        assert month_bounds(2023, 12) == (date(2023, 12, 1), date(2023, 12, 31))


class TestByCategoryAndMonth:

    def test_expenses_by_category_largest_first(self, ledger):
        assert expenses_by_category(ledger, CATEGORIES) == [
            ("Housing", Decimal("15000")),
            ("Food & Drinks", Decimal("2000")),
            ("Uncategorized", Decimal("300")),
        ]

    def test_expenses_by_category_in_range(self, ledger):
        rows = expenses_by_category(ledger, CATEGORIES, date(2024, 4, 1), date(2024, 4, 30))
        assert rows == [("Food & Drinks", Decimal("800")), ("Uncategorized", Decimal("300"))]

    def test_monthly_income_vs_expense(self, ledger):
        rows = monthly_income_vs_expense(ledger)
        assert [r.month for r in rows] == ["2024-03", "2024-04"]
        assert rows[0].expense == Decimal("16200")
        assert rows[1].income == Decimal("50000")

    def test_current_and_previous_month_across_year(self):
        ledger = [
            tx(date(2023, 12, 20), "500"),
            tx(date(2024, 1, 2), "200"),
        ]
        current, previous = current_and_previous_month(ledger, CATEGORIES, date(2024, 1, 15))
        assert (current.year, current.month) == (2024, 1)
        assert (previous.year, previous.month) == (2023, 12)
        assert previous.expenses == Decimal("500")
        assert current.savings == Decimal("-200")
        assert previous.to_dict()["category_expenses"] == {"Food & Drinks": 500.0}


class TestBudgetsAndGoals:

    @pytest.mark.parametrize("percent, status", [
        (0.0, BudgetStatus.OK),
        (80.0, BudgetStatus.OK),
        (80.5, BudgetStatus.WARNING),
        (100.0, BudgetStatus.WARNING),
        (100.01, BudgetStatus.OVER),
    ])
    def test_budget_status(self, percent, status):
        assert budget_status(percent) == status

    def test_budget_progress_uses_current_month(self, ledger):
        budgets = [
            Budget(category_id="1", limit=Decimal("1000")),
            Budget(category_id="3", limit=Decimal("10000")),
        ]
        food, housing = budget_progress(budgets, ledger, CATEGORIES, date(2024, 4, 20))

        assert food.spent == Decimal("800")
        assert food.status == BudgetStatus.OK
        assert food.remaining == Decimal("200")
        assert housing.spent == Decimal("0")
        assert housing.category_name == "Housing"

    def test_goal_progress(self):
        goals = [
            Goal(name="Trip", target_amount=Decimal("1000"), saved_amount=Decimal("1200")),
            Goal(name="Laptop", target_amount=Decimal("80000"), saved_amount=Decimal("20000")),
        ]
        trip, laptop = goal_progress(goals)
        assert trip.reached and trip.remaining == Decimal("0")
        assert not laptop.reached and laptop.remaining == Decimal("60000")


class TestInvestmentsAndNetWorth:

    @pytest.fixture
    def investments(self):
        return [
            Investment(
                name="A",
                quantity=Decimal("10"),
                purchase_price=Decimal("100"),
                purchase_date=date(2024, 1, 1),
                current_price=Decimal("120"),
            ),
            Investment(
                name="B",
                quantity=Decimal("2"),
                purchase_price=Decimal("500"),
                purchase_date=date(2024, 1, 1),
            ),
        ]

    def test_investment_summary(self, investments):
        summary = investment_summary(investments)
        assert summary.cost == Decimal("2000")
        assert summary.current_value == Decimal("2200")
        assert summary.profit_loss == Decimal("200")
        assert summary.profit_loss_percent == pytest.approx(10.0)
        assert (summary.priced, summary.unpriced) == (1, 1)

    def test_net_worth(self, ledger, investments):
        worth = net_worth(
            ledger,
            investments,
            [ManualEntry(name="Car", value=Decimal("300000"))],
            [ManualEntry(name="Loan", value=Decimal("100000"))],
        )
        assert worth.bank_balance == Decimal("82700")
        assert worth.total_assets == Decimal("384900")
        assert worth.net_worth == Decimal("284900")

    def test_net_worth_history(self, ledger):
        history = net_worth_history(ledger, [], [], [ManualEntry(name="Loan", value=Decimal("1000"))])
        assert [p.month for p in history] == ["2024-03", "2024-04"]
        assert history[0].bank_balance == Decimal("33800")
        assert history[1].bank_balance == Decimal("82700")
        assert history[1].net_worth == Decimal("81700")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
