"""
Deterministic Reports

Everything the dashboard, reports and net worth pages show is computed
here from the ledger, with no AI involvement. The AI agents receive these
numbers as input; they never compute them.

All money values are Decimal. Dates are compared as calendar dates, and
date ranges are inclusive on both ends.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional

from dateutil.relativedelta import relativedelta

from finan_ai.models.finance import (
    Budget,
    Category,
    Goal,
    Investment,
    ManualEntry,
    Transaction,
    TransactionType,
)


ZERO = Decimal("0")
UNCATEGORIZED = "Uncategorized"


def _names(categories: list[Category]) -> dict[str, str]:
    return {c.id: c.name for c in categories}


def _signed(tx: Transaction) -> Decimal:
    return tx.amount if tx.type == TransactionType.INCOME else -tx.amount


def month_bounds(year: int, month: int) -> tuple[date, date]:
    """
    First and last day of a month.

    >>> month_bounds(2024, 2)
    (datetime.date(2024, 2, 1), datetime.date(2024, 2, 29))
    """
    first = date(year, month, 1)
    return first, first + relativedelta(months=+1, days=-1)


def filter_transactions(
    transactions: list[Transaction],
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> list[Transaction]:
    """Transactions with start <= date <= end. Missing bounds are open."""
    return [
        t for t in transactions
        if (start is None or t.date >= start) and (end is None or t.date <= end)
    ]


# =============================================================================
# TOTALS
# =============================================================================

@dataclass(frozen=True)
class Totals:
    income: Decimal
    expense: Decimal

    @property
    def net_balance(self) -> Decimal:
        return self.income - self.expense


def totals(transactions: list[Transaction]) -> Totals:
    income = sum((t.amount for t in transactions if t.type == TransactionType.INCOME), ZERO)
    expense = sum((t.amount for t in transactions if t.type == TransactionType.EXPENSE), ZERO)
    return Totals(income=income, expense=expense)


def expenses_by_category(
    transactions: list[Transaction],
    categories: list[Category],
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> list[tuple[str, Decimal]]:
    """Expense total per category name, largest first."""
    names = _names(categories)
    by_name: dict[str, Decimal] = defaultdict(lambda: ZERO)
    for tx in filter_transactions(transactions, start, end):
        if tx.type == TransactionType.EXPENSE:
            by_name[names.get(tx.category_id, UNCATEGORIZED)] += tx.amount
    return sorted(by_name.items(), key=lambda item: (-item[1], item[0]))


@dataclass(frozen=True)
class MonthlyRow:
    month: str  # YYYY-MM
    income: Decimal
    expense: Decimal


def monthly_income_vs_expense(transactions: list[Transaction]) -> list[MonthlyRow]:
    """Income and expense per calendar month, oldest first."""
    income: dict[str, Decimal] = defaultdict(lambda: ZERO)
    expense: dict[str, Decimal] = defaultdict(lambda: ZERO)
    for tx in transactions:
        key = tx.date.strftime("%Y-%m")
        if tx.type == TransactionType.INCOME:
            income[key] += tx.amount
        else:
            expense[key] += tx.amount

    months = sorted(set(income) | set(expense))
    return [MonthlyRow(month=m, income=income[m], expense=expense[m]) for m in months]


@dataclass
class MonthStats:
    """One month's totals, the input of the month-over-month comparison."""
    year: int
    month: int
    income: Decimal = ZERO
    expenses: Decimal = ZERO
    category_expenses: dict[str, Decimal] = field(default_factory=dict)

    @property
    def savings(self) -> Decimal:
        return self.income - self.expenses

    def to_dict(self) -> dict:
        return {
            "month": f"{self.year:04d}-{self.month:02d}",
            "income": float(self.income),
            "expenses": float(self.expenses),
            "category_expenses": {k: float(v) for k, v in self.category_expenses.items()},
        }


def month_stats(
    transactions: list[Transaction],
    categories: list[Category],
    year: int,
    month: int,
) -> MonthStats:
    start, end = month_bounds(year, month)
    in_month = filter_transactions(transactions, start, end)
    month_totals = totals(in_month)
    return MonthStats(
        year=year,
        month=month,
        income=month_totals.income,
        expenses=month_totals.expense,
        category_expenses=dict(expenses_by_category(in_month, categories)),
    )


def current_and_previous_month(
    transactions: list[Transaction],
    categories: list[Category],
    today: date,
) -> tuple[MonthStats, MonthStats]:
    previous = today + relativedelta(months=-1)
    return (
        month_stats(transactions, categories, today.year, today.month),
        month_stats(transactions, categories, previous.year, previous.month),
    )


# =============================================================================
# BUDGETS & GOALS
# =============================================================================

class BudgetStatus(str, Enum):
    OK = "ok"
    WARNING = "warning"
    OVER = "over"


@dataclass(frozen=True)
class BudgetProgress:
    budget: Budget
    category_name: str
    spent: Decimal
    percent: float
    status: BudgetStatus

    @property
    def remaining(self) -> Decimal:
        return self.budget.limit - self.spent


def budget_status(percent: float, warning_percent: float = 80.0) -> BudgetStatus:
    """
    >>> budget_status(80.0), budget_status(80.1), budget_status(100.5)
    (<BudgetStatus.OK: 'ok'>, <BudgetStatus.WARNING: 'warning'>, <BudgetStatus.OVER: 'over'>)
    """
    if percent > 100:
        return BudgetStatus.OVER
    if percent > warning_percent:
        return BudgetStatus.WARNING
    return BudgetStatus.OK


def budget_progress(
    budgets: list[Budget],
    transactions: list[Transaction],
    categories: list[Category],
    today: date,
    warning_percent: float = 80.0,
) -> list[BudgetProgress]:
    """Spending against every monthly budget for the month containing today."""
    start, end = month_bounds(today.year, today.month)
    spent: dict[str, Decimal] = defaultdict(lambda: ZERO)
    for tx in filter_transactions(transactions, start, end):
        if tx.type == TransactionType.EXPENSE:
            spent[tx.category_id] += tx.amount

    names = _names(categories)
    rows = []
    for budget in budgets:
        amount = spent[budget.category_id]
        percent = float(amount / budget.limit * 100)
        rows.append(BudgetProgress(
            budget=budget,
            category_name=names.get(budget.category_id, UNCATEGORIZED),
            spent=amount,
            percent=percent,
            status=budget_status(percent, warning_percent),
        ))
    return rows


@dataclass(frozen=True)
class GoalProgress:
    goal: Goal
    percent: float
    remaining: Decimal
    reached: bool


def goal_progress(goals: list[Goal]) -> list[GoalProgress]:
    return [
        GoalProgress(
            goal=g,
            percent=g.progress,
            remaining=max(g.target_amount - g.saved_amount, ZERO),
            reached=g.saved_amount >= g.target_amount,
        )
        for g in goals
    ]


# =============================================================================
# INVESTMENTS & NET WORTH
# =============================================================================

@dataclass(frozen=True)
class InvestmentSummary:
    cost: Decimal
    current_value: Decimal
    profit_loss: Decimal
    priced: int
    unpriced: int

    @property
    def profit_loss_percent(self) -> Optional[float]:
        if self.cost == 0:
            return None
        return float(self.profit_loss / self.cost * 100)


def investment_summary(investments: list[Investment]) -> InvestmentSummary:
    """
    Portfolio totals.

    Holdings without a current price count at cost, so they add nothing
    to profit/loss.
    """
    cost = sum((i.cost_basis for i in investments), ZERO)
    value = sum((i.valuation for i in investments), ZERO)
    priced = sum(1 for i in investments if i.current_price is not None)
    return InvestmentSummary(
        cost=cost,
        current_value=value,
        profit_loss=value - cost,
        priced=priced,
        unpriced=len(investments) - priced,
    )


@dataclass(frozen=True)
class NetWorth:
    bank_balance: Decimal
    investment_value: Decimal
    manual_assets: Decimal
    liabilities: Decimal

    @property
    def total_assets(self) -> Decimal:
        return self.bank_balance + self.investment_value + self.manual_assets

    @property
    def net_worth(self) -> Decimal:
        return self.total_assets - self.liabilities


def net_worth(
    transactions: list[Transaction],
    investments: list[Investment],
    assets: list[ManualEntry],
    liabilities: list[ManualEntry],
) -> NetWorth:
    return NetWorth(
        bank_balance=totals(transactions).net_balance,
        investment_value=sum((i.valuation for i in investments), ZERO),
        manual_assets=sum((a.value for a in assets), ZERO),
        liabilities=sum((l.value for l in liabilities), ZERO),
    )


@dataclass(frozen=True)
class NetWorthPoint:
    month: str  # YYYY-MM
    bank_balance: Decimal
    net_worth: Decimal


def net_worth_history(
    transactions: list[Transaction],
    investments: Optional[list[Investment]] = None,
    assets: Optional[list[ManualEntry]] = None,
    liabilities: Optional[list[ManualEntry]] = None,
) -> list[NetWorthPoint]:
    """
    Running bank balance at the end of each month with activity.

    Investments and manual entries have no history, so their current
    values are added to every point.
    """
    offset = (
        sum((i.valuation for i in investments or []), ZERO)
        + sum((a.value for a in assets or []), ZERO)
        - sum((l.value for l in liabilities or []), ZERO)
    )

    balance = ZERO
    by_month: dict[str, Decimal] = {}
    for tx in sorted(transactions, key=lambda t: t.date):
        balance += _signed(tx)
        by_month[tx.date.strftime("%Y-%m")] = balance

    return [
        NetWorthPoint(month=month, bank_balance=value, net_worth=value + offset)
        for month, value in by_month.items()
    ]
