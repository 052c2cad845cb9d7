"""Deterministic financial reports."""

from finan_ai.reports.summary import (
    UNCATEGORIZED,
    BudgetProgress,
    BudgetStatus,
    GoalProgress,
    InvestmentSummary,
    MonthlyRow,
    MonthStats,
    NetWorth,
    NetWorthPoint,
    Totals,
    budget_progress,
    budget_status,
    current_and_previous_month,
    expenses_by_category,
    filter_transactions,
    goal_progress,
    investment_summary,
    month_bounds,
    month_stats,
    monthly_income_vs_expense,
    net_worth,
    net_worth_history,
    totals,
)

__all__ = [
    "UNCATEGORIZED",
    "BudgetProgress",
    "BudgetStatus",
    "GoalProgress",
    "InvestmentSummary",
    "MonthlyRow",
    "MonthStats",
    "NetWorth",
    "NetWorthPoint",
    "Totals",
    "budget_progress",
    "budget_status",
    "current_and_previous_month",
    "expenses_by_category",
    "filter_transactions",
    "goal_progress",
    "investment_summary",
    "month_bounds",
    "month_stats",
    "monthly_income_vs_expense",
    "net_worth",
    "net_worth_history",
    "totals",
]
