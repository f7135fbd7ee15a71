"""
Financial Advisor Agent

Pass-through to Google Gemini that turns a ledger snapshot into
plain-language advice.

CRITICAL BOUNDARIES:
- The agent only READS a snapshot. It never mutates the ledger.
- The response is opaque display text. Nothing parses or acts on it.
- It never raises: a missing API key returns ADVICE_UNAVAILABLE, a model
  failure returns ADVICE_FAILED, an empty answer returns ADVICE_EMPTY.
"""

from typing import Any, Iterable, Optional, Sequence

import google.generativeai as genai
import structlog

from smartfinance.config import GeminiSettings, get_settings
from smartfinance.models.ledger import Account, Category, Transaction
from smartfinance.reports.aggregates import (
    category_breakdown,
    total_assets,
    total_expense,
    total_income,
)


logger = structlog.get_logger(__name__)


ADVICE_UNAVAILABLE = (
    "AI advice is currently unavailable (missing API key). "
    "Please check that GEMINI_API_KEY is set."
)
ADVICE_FAILED = "An error occurred while generating AI advice."
ADVICE_EMPTY = "Could not generate advice, please try again later."


class FinancialAdvisorAgent:
    """
    AI agent producing a short financial health review.

    The model is created lazily on first use, so constructing the agent
    without an API key is fine.
    """

    def __init__(
        self,
        settings: Optional[GeminiSettings] = None,
        model: Optional[Any] = None,
    ):
        self._settings = settings or get_settings().gemini
        self._model = model

    @property
    def available(self) -> bool:
        """True if a model was injected or an API key is configured."""
        return self._model is not None or bool(self._settings.api_key)

    def _configure_genai(self):
        """Configure Google Generative AI."""
        genai.configure(api_key=self._settings.api_key)
        self._model = genai.GenerativeModel(
            model_name=self._settings.model_name,
            generation_config={
                "temperature": self._settings.temperature,
                "max_output_tokens": self._settings.max_tokens,
            }
        )

    def build_prompt(
        self,
        transactions: Sequence[Transaction],
        accounts: Sequence[Account],
        categories: Sequence[Category],
    ) -> str:
        """Summarize the ledger into the advice prompt."""
        breakdown = category_breakdown(transactions, categories)
        category_summary = ", ".join(
            f"{entry.category.name}: {entry.total}" for entry in breakdown
        ) or "no expenses recorded"

        return f"""You are a professional personal finance advisor.
Analyse the following figures and give concrete advice.

Current total assets: {total_assets(accounts)}
Total income recorded: {total_income(transactions)}
Total expense recorded: {total_expense(transactions)}
Expense by category: {category_summary}

Please provide:
1. An assessment of the spending structure (is it too high, where can the user save).
2. Three concrete, actionable money-management suggestions.
3. A financial health score (0-100) based on the balance of income and expense.

Answer in a friendly but professional tone."""

    async def request_summary(
        self,
        transactions: Iterable[Transaction],
        accounts: Iterable[Account],
        categories: Iterable[Category],
    ) -> str:
        """
        Ask the model for advice on a read-only ledger snapshot.

        Always returns display text; never raises.
        """
        if not self.available:
            return ADVICE_UNAVAILABLE

        prompt = self.build_prompt(
            list(transactions), list(accounts), list(categories)
        )

        try:
            if self._model is None:
                self._configure_genai()
            response = await self._model.generate_content_async(prompt)
            text = (response.text or "").strip()
        except Exception as e:
            logger.error("advice_generation_failed", error=str(e))
            return ADVICE_FAILED

        return text or ADVICE_EMPTY
