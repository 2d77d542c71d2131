"""AI Agents package."""

from expense_tracker.agents.ai_agents import (
    FALLBACK_CHAT_RESPONSE,
    FALLBACK_INSIGHTS,
    FinancialAssistant,
    GeminiChatAgent,
    InsightsAgent,
    build_financial_context,
)

__all__ = [
    "FALLBACK_CHAT_RESPONSE",
    "FALLBACK_INSIGHTS",
    "FinancialAssistant",
    "GeminiChatAgent",
    "InsightsAgent",
    "build_financial_context",
]
