"""
AI Agents for Expense Tracker

DESIGN DECISION: The assistant is a capability behind a small interface:

    summarize(context, user_text) -> response_text

The ledger owns persisting the user's message and the reply.
The agent owns prompt construction and model selection, and nothing else.

CRITICAL BOUNDARIES:

1. CHAT AGENT:
   - CAN: Read the financial summary it is handed
   - CANNOT: Read or write the store directly
   - CANNOT: Fail the chat. Errors become a fixed apology reply.

2. INSIGHTS AGENT:
   - CAN: Comment on this month vs. last month
   - MUST: Return the three-part insights shape, or a placeholder

Model calls are retried with exponential backoff before falling back.
"""

import json
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional

import google.generativeai as genai
import structlog
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential

from expense_tracker.audit import AuditLogger
from expense_tracker.config import GeminiSettings, get_settings
from expense_tracker.models.ledger import (
    FinancialSummary,
    SpendingInsights,
    Transaction,
    format_money,
)


logger = structlog.get_logger(__name__)

FALLBACK_CHAT_RESPONSE = (
    "I'm experiencing technical difficulties right now. "
    "Please try again in a moment."
)
EMPTY_CHAT_RESPONSE = "I'm sorry, I couldn't process that request. Please try again."

FALLBACK_INSIGHTS = SpendingInsights(
    insights=["Unable to generate insights at this time"],
    recommendations=["Please try again later"],
    monthly_trend="Trend analysis unavailable",
)


def _rupees(amount: Decimal) -> str:
    return f"₹{format_money(amount)}"


def build_financial_context(context: FinancialSummary) -> str:
    """
    Render the summary as the assistant's read-only context block.

    Deterministic: the same summary always renders the same text.
    """
    categories = ", ".join(
        f"{category.value}: {_rupees(amount)}"
        for category, amount in context.category_spending.items()
    ) or "none"

    lines = [
        f"- Total Balance: {_rupees(context.total_balance)}",
        f"- This Month Spent: {_rupees(context.monthly_spent)}",
        f"- Category Spending: {categories}",
        f"- Total Owed by User: {_rupees(context.total_owed)}",
        f"- Total Owed to User: {_rupees(context.total_owed_to_user)}",
    ]

    if context.upcoming_reminders:
        reminders = ", ".join(
            f"{r.title} ({_rupees(r.amount)} due {r.due_date.date().isoformat()})"
            for r in context.upcoming_reminders[:3]
        )
        lines.append(f"- Upcoming Reminders: {reminders}")

    return "\n".join(lines)


class FinancialAssistant(ABC):
    """
    Capability interface for the chat assistant.

    Implementations return the reply text, which is stored verbatim.
    """

    model_name: str = "unknown"

    @abstractmethod
    async def summarize(self, context: FinancialSummary, user_text: str) -> str:
        """Answer the user's message using the financial summary as context."""
        pass


class _GeminiAgent:
    """Shared Gemini plumbing: configuration, retries, error reporting."""

    def __init__(
        self,
        settings: Optional[GeminiSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._settings = settings or get_settings().gemini
        self._audit_logger = audit_logger
        genai.configure(api_key=self._settings.api_key)

    async def _generate(self, model: "genai.GenerativeModel", prompt: str) -> str:
        """Call the model, retrying transient failures."""
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._settings.max_retries),
            wait=wait_exponential(multiplier=1, min=1, max=8),
            reraise=True,
        ):
            with attempt:
                response = await model.generate_content_async(prompt)
        return (response.text or "").strip()

    async def _report_failure(self, model_name: str, error: Exception) -> None:
        logger.error("gemini_call_failed", model=model_name, error=str(error))
        if self._audit_logger:
            await self._audit_logger.log_external_service_error(
                service=f"gemini:{model_name}",
                error_message=str(error),
            )


class GeminiChatAgent(_GeminiAgent, FinancialAssistant):
    """
    "ExpenseBot": the conversational assistant.

    RESPONSIBILITIES:
    - Answer questions about balances, spending, debts and reminders
    - Suggest actions, using the add_expense JSON format for expenses

    BOUNDARIES:
    - NEVER touches the store
    - ALWAYS returns text, even when the model is unavailable
    """

    def __init__(
        self,
        settings: Optional[GeminiSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        super().__init__(settings, audit_logger)
        self.model_name = self._settings.model_name
        self._model = genai.GenerativeModel(
            model_name=self._settings.model_name,
            generation_config={
                "temperature": self._settings.temperature,
                "max_output_tokens": self._settings.max_tokens,
            }
        )

    def build_prompt(self, context: FinancialSummary, user_text: str) -> str:
        return f"""You are ExpenseBot, a helpful AI assistant for a college student's expense tracking app. You have access to the user's financial data and can help with:

1. Adding expenses and income
2. Providing spending insights and analytics
3. Tracking debts and loans with friends
4. Setting up reminders for bills and payments
5. Answering questions about spending patterns

Current Financial Context:
{build_financial_context(context)}

Always format currency in Indian Rupees (₹). Be conversational, helpful, and provide actionable insights. If the user wants to add an expense or perform an action, respond with the appropriate JSON command format.

For expense additions, respond with: {{"action": "add_expense", "amount": number, "description": string, "category": string, "account": string}}
For insights, provide helpful analysis with specific numbers and recommendations.

User Message: {user_text}"""

    async def summarize(self, context: FinancialSummary, user_text: str) -> str:
        prompt = self.build_prompt(context, user_text)

        try:
            text = await self._generate(self._model, prompt)
        except Exception as e:
            await self._report_failure(self.model_name, e)
            return FALLBACK_CHAT_RESPONSE

        return text or EMPTY_CHAT_RESPONSE


class InsightsAgent(_GeminiAgent):
    """
    Generates month-over-month spending commentary.

    The model is asked for JSON only; anything unparseable
    falls back to placeholder insights.
    """

    def __init__(
        self,
        settings: Optional[GeminiSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        super().__init__(settings, audit_logger)
        self.model_name = self._settings.insights_model_name
        self._model = genai.GenerativeModel(
            model_name=self._settings.insights_model_name,
            generation_config={
                "temperature": self._settings.temperature,
                "max_output_tokens": self._settings.max_tokens,
                "response_mime_type": "application/json",
            }
        )

    def build_prompt(
        self,
        this_month_spent: Decimal,
        last_month_spent: Decimal,
        monthly_transactions: list[Transaction],
    ) -> str:
        recent = ", ".join(
            f"{t.description}: {_rupees(t.amount)} ({t.category.value})"
            for t in monthly_transactions[:10]
        ) or "none"

        return f"""Analyze this college student's spending data and provide insights:

This Month Spent: {_rupees(this_month_spent)}
Last Month Spent: {_rupees(last_month_spent)}
Recent Transactions: {recent}

Provide a JSON response with:
{{
  "insights": ["insight1", "insight2", "insight3"],
  "recommendations": ["rec1", "rec2", "rec3"],
  "monthlyTrend": "trend analysis"
}}"""

    @staticmethod
    def parse_response(text: str) -> SpendingInsights:
        """
        Parse the model's JSON reply.

        Raises ValueError if no JSON object can be found.
        """
        start = text.find("{")
        end = text.rfind("}") + 1
        if start < 0 or end <= start:
            raise ValueError("Empty response from model")

        data = json.loads(text[start:end])
        return SpendingInsights(
            insights=[str(i) for i in data.get("insights") or []],
            recommendations=[str(r) for r in data.get("recommendations") or []],
            monthly_trend=data.get("monthlyTrend") or "No trend data available",
        )

    async def generate_insights(
        self,
        this_month_spent: Decimal,
        last_month_spent: Decimal,
        monthly_transactions: list[Transaction],
    ) -> SpendingInsights:
        prompt = self.build_prompt(this_month_spent, last_month_spent, monthly_transactions)

        try:
            text = await self._generate(self._model, prompt)
            return self.parse_response(text)
        except Exception as e:
            await self._report_failure(self.model_name, e)
            return FALLBACK_INSIGHTS.model_copy(deep=True)
