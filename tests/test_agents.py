"""
Tests for the Gemini agents.

google.generativeai is patched out in every test: no network calls,
no API key needed.
"""

from datetime import datetime, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from expense_tracker.agents import (
    FALLBACK_CHAT_RESPONSE,
    FALLBACK_INSIGHTS,
    GeminiChatAgent,
    InsightsAgent,
    build_financial_context,
)
from expense_tracker.agents.ai_agents import EMPTY_CHAT_RESPONSE
from expense_tracker.audit import AuditLogger
from expense_tracker.config import GeminiSettings
from expense_tracker.models.audit import AuditEventType
from expense_tracker.models.ledger import (
    Category,
    FinancialSummary,
    Reminder,
    Transaction,
    TransactionType,
)
from expense_tracker.services.storage import InMemoryAuditStorage


NOW = datetime(2025, 3, 15, 12, 0).astimezone()


def make_summary() -> FinancialSummary:
    return FinancialSummary(
        generated_at=NOW,
        total_balance=Decimal("11150.00"),
        monthly_spent=Decimal("50.00"),
        category_spending={Category.FOOD: Decimal("50.00")},
        total_owed=Decimal("200.00"),
        total_owed_to_user=Decimal("80.00"),
        upcoming_reminders=[
            Reminder(
                id="r1",
                title="Hostel rent",
                amount=Decimal("4500"),
                due_date=NOW + timedelta(days=3),
                created_at=NOW,
            ),
        ],
    )


def make_transaction(amount="50.00") -> Transaction:
    return Transaction(
        id="t1",
        account_id="a1",
        type=TransactionType.EXPENSE,
        amount=amount,
        description="Canteen lunch",
        category=Category.FOOD,
        created_at=NOW,
    )


@pytest.fixture
def gemini_settings():
    return GeminiSettings(api_key="test-key", max_retries=1)


@pytest.fixture
def mock_genai():
    with patch("expense_tracker.agents.ai_agents.genai") as genai:
        model = MagicMock()
        model.generate_content_async = AsyncMock()
        genai.GenerativeModel.return_value = model
        yield genai


def reply(text):
    response = MagicMock()
    response.text = text
    return response


class TestFinancialContext:
    """Tests for the context block handed to the assistant."""

    def test_contains_every_figure(self):
        """Test all summary figures appear in rupees."""
        text = build_financial_context(make_summary())

        assert "Total Balance: ₹11150.00" in text
        assert "This Month Spent: ₹50.00" in text
        assert "food: ₹50.00" in text
        assert "Total Owed by User: ₹200.00" in text
        assert "Total Owed to User: ₹80.00" in text
        assert "Hostel rent" in text

    def test_is_deterministic(self):
        """Test the same summary renders the same text."""
        assert build_financial_context(make_summary()) == build_financial_context(make_summary())

    def test_empty_categories(self):
        """Test an empty breakdown renders as none."""
        summary = make_summary().model_copy(update={"category_spending": {}})
        assert "Category Spending: none" in build_financial_context(summary)


class TestGeminiChatAgent:
    """Tests for the chat assistant."""

    def test_configures_gemini(self, mock_genai, gemini_settings):
        """Test the API key and model name are passed through."""
        agent = GeminiChatAgent(gemini_settings)

        mock_genai.configure.assert_called_once_with(api_key="test-key")
        assert agent.model_name == "gemini-2.5-flash"

    def test_prompt_includes_context_and_message(self, mock_genai, gemini_settings):
        """Test the prompt carries the summary and the user text."""
        agent = GeminiChatAgent(gemini_settings)
        prompt = agent.build_prompt(make_summary(), "Can I afford a movie?")

        assert "ExpenseBot" in prompt
        assert "₹11150.00" in prompt
        assert prompt.endswith("User Message: Can I afford a movie?")

    async def test_summarize_returns_model_text(self, mock_genai, gemini_settings):
        """Test the model reply is returned stripped."""
        agent = GeminiChatAgent(gemini_settings)
        agent._model.generate_content_async.return_value = reply("  Yes, go for it!  ")

        assert await agent.summarize(make_summary(), "Movie?") == "Yes, go for it!"

    async def test_empty_reply(self, mock_genai, gemini_settings):
        """Test an empty model reply becomes a polite message."""
        agent = GeminiChatAgent(gemini_settings)
        agent._model.generate_content_async.return_value = reply("")

        assert await agent.summarize(make_summary(), "Hi") == EMPTY_CHAT_RESPONSE

    async def test_failure_falls_back_and_audits(self, mock_genai, gemini_settings):
        """Test model errors never escape the chat."""
        audit_storage = InMemoryAuditStorage()
        agent = GeminiChatAgent(gemini_settings, AuditLogger(audit_storage))
        agent._model.generate_content_async.side_effect = RuntimeError("quota exceeded")

        assert await agent.summarize(make_summary(), "Hi") == FALLBACK_CHAT_RESPONSE

        events = await audit_storage.get_recent_events()
        assert events[0].event_type == AuditEventType.EXTERNAL_SERVICE_ERROR
        assert "quota exceeded" in events[0].error_message


class TestInsightsAgent:
    """Tests for spending insights."""

    def test_parse_response(self):
        """Test the three-part JSON shape is parsed."""
        insights = InsightsAgent.parse_response(
            '{"insights": ["Food is 40%"], "recommendations": ["Cook twice a week"],'
            ' "monthlyTrend": "Spending rose 12%"}'
        )
        assert insights.insights == ["Food is 40%"]
        assert insights.recommendations == ["Cook twice a week"]
        assert insights.monthly_trend == "Spending rose 12%"

    def test_parse_response_inside_fences(self):
        """Test JSON wrapped in markdown fences is found."""
        insights = InsightsAgent.parse_response(
            '```json\n{"insights": ["a"], "recommendations": []}\n```'
        )
        assert insights.insights == ["a"]
        assert insights.monthly_trend == "No trend data available"

    def test_parse_response_without_json(self):
        """Test text with no JSON object is rejected."""
        with pytest.raises(ValueError):
            InsightsAgent.parse_response("I cannot help with that.")

    def test_prompt_lists_transactions(self, mock_genai, gemini_settings):
        """Test month figures and transactions are in the prompt."""
        agent = InsightsAgent(gemini_settings)
        prompt = agent.build_prompt(Decimal("50"), Decimal("120"), [make_transaction()])

        assert "This Month Spent: ₹50.00" in prompt
        assert "Last Month Spent: ₹120.00" in prompt
        assert "Canteen lunch: ₹50.00 (food)" in prompt

    async def test_generate_insights(self, mock_genai, gemini_settings):
        """Test a well-formed reply is parsed."""
        agent = InsightsAgent(gemini_settings)
        agent._model.generate_content_async.return_value = reply(
            '{"insights": ["x"], "recommendations": ["y"], "monthlyTrend": "flat"}'
        )

        insights = await agent.generate_insights(Decimal("50"), Decimal("50"), [])
        assert insights.monthly_trend == "flat"

    async def test_garbage_reply_falls_back(self, mock_genai, gemini_settings):
        """Test unparseable replies yield placeholder insights."""
        agent = InsightsAgent(gemini_settings)
        agent._model.generate_content_async.return_value = reply("{not json")

        insights = await agent.generate_insights(Decimal("50"), Decimal("50"), [])
        assert insights == FALLBACK_INSIGHTS


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
