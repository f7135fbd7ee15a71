"""Ledger reports package."""

from smartfinance.reports.aggregates import (
    CategoryTotal,
    DashboardSummary,
    MonthlyTotals,
    ReportPeriod,
    RECENT_LIMIT,
    build_dashboard,
    category_breakdown,
    monthly_series,
    period_expense,
    total_assets,
    total_expense,
    total_income,
)

__all__ = [
    "CategoryTotal",
    "DashboardSummary",
    "MonthlyTotals",
    "ReportPeriod",
    "RECENT_LIMIT",
    "build_dashboard",
    "category_breakdown",
    "monthly_series",
    "period_expense",
    "total_assets",
    "total_expense",
    "total_income",
]
