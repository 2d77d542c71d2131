"""
Integration tests for the ledger facade and the chat flow.

The assistant is always a fake; no model is ever called.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from conftest import FakeAssistant, account_named
from expense_tracker.agents import FALLBACK_CHAT_RESPONSE, FALLBACK_INSIGHTS
from expense_tracker.config import LedgerSettings, Settings
from expense_tracker.models.audit import AuditEventType, AuditSeverity
from expense_tracker.models.ledger import (
    Category,
    ReminderStatus,
    SpendingInsights,
    TransactionCreate,
    TransactionType,
)
from expense_tracker.orchestrator import ChatFlow, LedgerService, create_app_components
from expense_tracker.services.storage import (
    InMemoryLedgerStorage,
    InvariantViolation,
    NotFoundError,
)
from expense_tracker.summary import SummaryService
from expense_tracker.validation import ValidationError


class BrokenAssistant(FakeAssistant):
    """Fails every call the way a misconfigured backend would."""

    model_name = "broken-assistant"

    async def summarize(self, context, user_text):
        self.calls.append((context, user_text))
        raise RuntimeError("backend unavailable")


class FakeInsightsAgent:
    """Stands in for InsightsAgent and records its inputs."""

    def __init__(self):
        self.calls = []

    async def generate_insights(self, this_month_spent, last_month_spent, monthly_transactions):
        self.calls.append((this_month_spent, last_month_spent, monthly_transactions))
        return SpendingInsights(
            insights=[f"You spent {this_month_spent} this month"],
            recommendations=["Cook more"],
            monthly_trend="up",
        )


@pytest.fixture
def ledger(store, audit_logger, clock):
    return LedgerService(
        storage=store,
        audit_logger=audit_logger,
        settings=LedgerSettings(),
        clock=clock,
    )


@pytest.fixture
def chat(store, assistant, audit_logger, clock):
    return ChatFlow(
        storage=store,
        assistant=assistant,
        summary_service=SummaryService(store, clock=clock),
        audit_logger=audit_logger,
    )


async def ledger_expense(store, account_id, amount):
    return await store.create_transaction(TransactionCreate(
        account_id=account_id,
        type=TransactionType.EXPENSE,
        amount=amount,
        description="Canteen",
        category=Category.FOOD,
    ))


async def event_types(audit_storage):
    events = await audit_storage.get_recent_events(limit=1000)
    return [e.event_type for e in reversed(events)]


class TestLedgerTransactions:
    """Tests for posting through the facade."""

    async def test_create_transaction_from_dict(self, ledger, store, audit_storage):
        """Test a raw payload is validated, posted and audited."""
        main = await account_named(store, "Main Account")

        transaction = await ledger.create_transaction({
            "account_id": main.id,
            "type": "expense",
            "amount": 50,
            "description": "Canteen lunch",
            "category": "food",
        })

        assert transaction.amount == Decimal("50.00")
        assert (await store.get_account(main.id)).balance == Decimal("2400.00")
        assert await event_types(audit_storage) == [
            AuditEventType.TRANSACTION_POSTED,
            AuditEventType.BALANCE_ADJUSTED,
        ]

        events = await audit_storage.get_recent_events()
        assert events[0].details["previous_balance"] == "2450.00"
        assert events[0].details["new_balance"] == "2400.00"
        assert events[0].correlation_id == events[1].correlation_id

    async def test_invalid_payload_is_audited(self, ledger, store, audit_storage):
        """Test schema failures raise and leave an audit trail."""
        main = await account_named(store, "Main Account")

        with pytest.raises(ValidationError):
            await ledger.create_transaction({
                "account_id": main.id,
                "type": "expense",
                "amount": -5,
                "description": "Bad",
                "category": "food",
            })

        assert await store.list_transactions() == []
        assert await event_types(audit_storage) == [AuditEventType.VALIDATION_FAILED]

    async def test_unknown_account_is_audited(self, ledger, audit_storage):
        """Test NotFoundError is audited as an error and re-raised."""
        with pytest.raises(NotFoundError):
            await ledger.create_transaction({
                "account_id": "missing",
                "type": "income",
                "amount": "10",
                "description": "Gift",
                "category": "other",
            })

        events = await audit_storage.get_recent_events()
        assert events[0].event_type == AuditEventType.SYSTEM_ERROR
        assert events[0].error_code == "NotFoundError"

    async def test_list_transactions_filters(self, ledger, store):
        """Test facade filters pass through to the store."""
        main = await account_named(store, "Main Account")
        for category in ("food", "transport", "food"):
            await ledger.create_transaction({
                "account_id": main.id,
                "type": "expense",
                "amount": "1",
                "description": "x",
                "category": category,
            })

        assert len(await ledger.list_transactions(category=Category.FOOD)) == 2
        assert len(await ledger.list_transactions(account_id=main.id)) == 3
        assert await ledger.list_transactions(account_id="other") == []

    async def test_delete_without_reversal_warns(self, ledger, store, audit_storage):
        """Test the default delete keeps the balance and logs a warning."""
        main = await account_named(store, "Main Account")
        transaction = await ledger.create_transaction({
            "account_id": main.id,
            "type": "expense",
            "amount": "50",
            "description": "Movie",
            "category": "entertainment",
        })

        assert await ledger.delete_transaction(transaction.id) is True
        assert await ledger.delete_transaction(transaction.id) is False

        events = await audit_storage.get_recent_events()
        deletions = [e for e in events if e.event_type == AuditEventType.TRANSACTION_DELETED]
        assert len(deletions) == 1
        assert deletions[0].severity == AuditSeverity.WARNING
        assert (await store.get_account(main.id)).balance == Decimal("2400.00")

    async def test_create_account(self, ledger, audit_storage):
        """Test opening an account."""
        account = await ledger.create_account({"name": "Wallet", "type": "other"})

        assert account.balance == Decimal("0.00")
        assert len(await ledger.list_accounts()) == 3
        assert await event_types(audit_storage) == [AuditEventType.ACCOUNT_CREATED]


class TestLedgerDebts:
    """Tests for debts through the facade."""

    async def test_settle_debt(self, ledger, audit_storage):
        """Test settling removes the debt from the totals."""
        debt = await ledger.create_debt({
            "friend_name": "Ravi",
            "type": "owe",
            "amount": "300",
            "description": "Concert ticket",
        })
        assert (await ledger.get_summary()).total_owed == Decimal("300.00")

        settled = await ledger.settle_debt(debt.id)

        assert settled.settled is True
        assert (await ledger.get_summary()).total_owed == Decimal("0.00")
        assert AuditEventType.DEBT_SETTLED in await event_types(audit_storage)

    async def test_update_debt_from_dict(self, ledger):
        """Test a partial dict edit."""
        debt = await ledger.create_debt({
            "friend_name": "Ravi",
            "type": "owed",
            "amount": "40",
            "description": "Snacks",
        })
        updated = await ledger.update_debt(debt.id, {"amount": "45.5"})

        assert updated.amount == Decimal("45.50")
        assert updated.description == "Snacks"

    async def test_update_rejects_unknown_fields(self, ledger):
        """Test id and created_at cannot be overwritten."""
        debt = await ledger.create_debt({
            "friend_name": "Ravi",
            "type": "owed",
            "amount": "40",
            "description": "Snacks",
        })
        with pytest.raises(ValidationError):
            await ledger.update_debt(debt.id, {"id": "hijack"})

    @pytest.mark.parametrize("field", ["description", "settled", "friend_name", "amount"])
    async def test_update_rejects_null_fields(self, ledger, store, audit_storage, field):
        """Test an explicit null is refused before it reaches the store."""
        debt = await ledger.create_debt({
            "friend_name": "Ravi",
            "type": "owed",
            "amount": "40",
            "description": "Snacks",
        })

        with pytest.raises(ValidationError) as exc_info:
            await ledger.update_debt(debt.id, {field: None})

        assert exc_info.value.result.issues[0].field == field
        assert (await store.get_debt(debt.id)) == debt
        types = await event_types(audit_storage)
        assert AuditEventType.VALIDATION_FAILED in types
        assert AuditEventType.SYSTEM_ERROR not in types

    async def test_settle_unknown_debt(self, ledger, audit_storage):
        """Test unknown ids raise and are audited."""
        with pytest.raises(NotFoundError):
            await ledger.settle_debt("missing")
        assert await event_types(audit_storage) == [AuditEventType.SYSTEM_ERROR]

    async def test_delete_debt_is_idempotent(self, ledger):
        """Test repeated deletes."""
        debt = await ledger.create_debt({
            "friend_name": "Ravi",
            "type": "owe",
            "amount": "1",
            "description": "Tea",
        })
        assert await ledger.delete_debt(debt.id) is True
        assert await ledger.delete_debt(debt.id) is False
        assert await ledger.list_debts() == []


class TestLedgerReminders:
    """Tests for reminders through the facade."""

    async def _reminder(self, ledger, clock, days=3):
        return await ledger.create_reminder({
            "title": "Hostel rent",
            "amount": "4500",
            "due_date": clock.now + timedelta(days=days),
        })

    async def test_snooze_moves_due_date_forward(self, ledger, clock):
        """Test snoozing adds a day to the current due date."""
        reminder = await self._reminder(ledger, clock)

        snoozed = await ledger.snooze_reminder(reminder.id)

        assert snoozed.status == ReminderStatus.SNOOZED
        assert snoozed.due_date == reminder.due_date + timedelta(days=1)

    async def test_snooze_overdue_reminder_starts_from_now(self, ledger, clock):
        """Test an overdue reminder is snoozed relative to now."""
        reminder = await self._reminder(ledger, clock, days=-2)

        snoozed = await ledger.snooze_reminder(reminder.id, days=2)

        assert snoozed.due_date == clock.now + timedelta(days=2)

    async def test_snooze_rejects_non_positive_days(self, ledger, clock):
        """Test a snooze must move the reminder."""
        reminder = await self._reminder(ledger, clock)
        with pytest.raises(ValueError):
            await ledger.snooze_reminder(reminder.id, days=0)

    async def test_snooze_unknown_reminder(self, ledger):
        """Test unknown ids raise NotFoundError."""
        with pytest.raises(NotFoundError):
            await ledger.snooze_reminder("missing")

    async def test_snooze_paid_reminder_is_refused(self, ledger, store, clock, audit_storage):
        """Test a paid reminder keeps its status and due date."""
        reminder = await self._reminder(ledger, clock)
        paid = await ledger.mark_reminder_paid(reminder.id)

        with pytest.raises(InvariantViolation):
            await ledger.snooze_reminder(reminder.id)

        assert await store.get_reminder(reminder.id) == paid
        events = await audit_storage.get_recent_events()
        assert events[0].event_type == AuditEventType.SYSTEM_ERROR
        assert events[0].error_code == "InvariantViolation"

    async def test_update_reminder_can_clear_description(self, ledger, clock):
        """Test description is the one reminder field that accepts null."""
        reminder = await ledger.create_reminder({
            "title": "Hostel rent",
            "description": "Pay the warden",
            "amount": "4500",
            "due_date": clock.now + timedelta(days=3),
        })

        updated = await ledger.update_reminder(reminder.id, {"description": None})

        assert updated.description is None
        with pytest.raises(ValidationError):
            await ledger.update_reminder(reminder.id, {"title": None})

    async def test_mark_paid_leaves_upcoming(self, ledger, clock):
        """Test paid reminders drop out of the summary."""
        reminder = await self._reminder(ledger, clock)
        assert len((await ledger.get_summary()).upcoming_reminders) == 1

        paid = await ledger.mark_reminder_paid(reminder.id)

        assert paid.status == ReminderStatus.PAID
        assert (await ledger.get_summary()).upcoming_reminders == []

    async def test_past_due_date_is_accepted_with_warning(self, ledger, clock, audit_storage):
        """Test a past due date is stored and the warning audited."""
        reminder = await self._reminder(ledger, clock, days=-1)

        assert reminder.id
        assert AuditEventType.VALIDATION_FAILED in await event_types(audit_storage)

    async def test_update_reminder(self, ledger, clock):
        """Test a partial dict edit."""
        reminder = await self._reminder(ledger, clock)
        updated = await ledger.update_reminder(reminder.id, {"recurring": True})

        assert updated.recurring is True
        assert updated.title == "Hostel rent"

    async def test_delete_reminder(self, ledger, clock):
        """Test repeated deletes."""
        reminder = await self._reminder(ledger, clock)
        assert await ledger.delete_reminder(reminder.id) is True
        assert await ledger.delete_reminder(reminder.id) is False


class TestInsights:
    """Tests for the insights operation."""

    async def test_without_agent_returns_placeholder(self, ledger):
        """Test a missing agent yields the placeholder insights."""
        insights = await ledger.get_insights()
        assert insights == FALLBACK_INSIGHTS

    async def test_with_agent(self, store, audit_logger, clock):
        """Test month figures are handed to the agent."""
        agent = FakeInsightsAgent()
        ledger = LedgerService(store, audit_logger, insights_agent=agent, clock=clock)
        main = await account_named(store, "Main Account")
        await ledger.create_transaction({
            "account_id": main.id,
            "type": "expense",
            "amount": "80",
            "description": "Books",
            "category": "study",
        })

        insights = await ledger.get_insights()

        this_month, last_month, transactions = agent.calls[0]
        assert this_month == Decimal("80.00")
        assert last_month == Decimal("0.00")
        assert len(transactions) == 1
        assert insights.monthly_trend == "up"


class TestChatFlow:
    """Tests for the assistant conversation."""

    async def test_user_message_gets_a_reply(self, chat, assistant):
        """Test a user message stores the message and the reply, in order."""
        stored = await chat.post_message({"content": "How much did I spend?", "is_user": True})

        messages = await chat.list_messages()
        assert stored.is_user is True
        assert [(m.content, m.is_user) for m in messages] == [
            ("How much did I spend?", True),
            (assistant.reply, False),
        ]
        assert messages[0].created_at <= messages[1].created_at

    async def test_assistant_receives_summary(self, chat, assistant, store):
        """Test the assistant sees the current summary and the text."""
        main = await account_named(store, "Main Account")
        await ledger_expense(store, main.id, "50.00")

        await chat.post_message({"content": "Balance?", "is_user": True})

        context, text = assistant.calls[0]
        assert text == "Balance?"
        assert context.total_balance == Decimal("11150.00")
        assert context.monthly_spent == Decimal("50.00")

    async def test_non_user_message_skips_assistant(self, chat, assistant):
        """Test non-user messages are stored alone."""
        await chat.post_message({"content": "Welcome back!", "is_user": False})

        assert len(await chat.list_messages()) == 1
        assert assistant.calls == []

    async def test_long_reply_is_stored_verbatim(self, store, clock):
        """Test replies beyond the input limit are not truncated."""
        reply = "x" * 5000
        chat = ChatFlow(store, FakeAssistant(reply), SummaryService(store, clock=clock))

        await chat.post_message({"content": "Essay please", "is_user": True})

        assert (await chat.list_messages())[1].content == reply

    async def test_failing_assistant_still_answers(self, store, clock, audit_logger, audit_storage):
        """Test an assistant error is audited and the fallback reply stored."""
        assistant = BrokenAssistant()
        chat = ChatFlow(store, assistant, SummaryService(store, clock=clock), audit_logger)

        stored = await chat.post_message({"content": "hi", "is_user": True})

        messages = await chat.list_messages()
        assert stored.content == "hi"
        assert [(m.content, m.is_user) for m in messages] == [
            ("hi", True),
            (FALLBACK_CHAT_RESPONSE, False),
        ]
        assert len(assistant.calls) == 1

        events = await audit_storage.get_recent_events(limit=1000)
        failures = [e for e in events if e.event_type == AuditEventType.EXTERNAL_SERVICE_ERROR]
        assert len(failures) == 1
        assert "backend unavailable" in failures[0].error_message

    async def test_no_assistant_stores_fallback(self, store):
        """Test a missing assistant still answers."""
        chat = ChatFlow(store)
        await chat.post_message({"content": "Hello", "is_user": True})

        assert (await chat.list_messages())[1].content == FALLBACK_CHAT_RESPONSE

    async def test_empty_message_rejected(self, chat, assistant):
        """Test empty content is rejected before storage."""
        with pytest.raises(ValidationError):
            await chat.post_message({"content": "", "is_user": True})
        assert await chat.list_messages() == []
        assert assistant.calls == []

    async def test_clear_history(self, chat, audit_storage):
        """Test clearing reports how many messages were removed."""
        await chat.post_message({"content": "Hi", "is_user": True})

        assert await chat.clear_history() == 2
        assert await chat.list_messages() == []
        assert AuditEventType.CHAT_CLEARED in await event_types(audit_storage)


class TestCreateAppComponents:
    """Tests for the component factory."""

    def test_builds_seeded_components_without_ai(self):
        """Test the factory wires one seeded store into both facades."""
        ledger, chat, store = create_app_components(Settings(), use_ai=False)

        assert isinstance(ledger, LedgerService)
        assert isinstance(chat, ChatFlow)
        assert isinstance(store, InMemoryLedgerStorage)

    async def test_components_share_the_store(self):
        """Test chat and ledger see the same data."""
        assistant = FakeAssistant()
        ledger, chat, store = create_app_components(
            Settings(), assistant=assistant, insights_agent=FakeInsightsAgent()
        )

        await chat.post_message({"content": "Hi", "is_user": True})

        assert len(await store.list_chat_messages()) == 2
        assert len(await ledger.list_accounts()) == 2
        assert assistant.calls[0][0].total_balance == Decimal("11200.00")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
