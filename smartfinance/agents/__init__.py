"""AI Agents package."""

from smartfinance.agents.advisor import (
    ADVICE_EMPTY,
    ADVICE_FAILED,
    ADVICE_UNAVAILABLE,
    FinancialAdvisorAgent,
)

__all__ = [
    "ADVICE_EMPTY",
    "ADVICE_FAILED",
    "ADVICE_UNAVAILABLE",
    "FinancialAdvisorAgent",
]
