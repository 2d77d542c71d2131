"""
Main Orchestrator for Expense Tracker

This module ties together all the components and defines the
operations an HTTP or UI layer calls:
1. Ledger (accounts, transactions, debts, reminders, summary, insights)
2. Chat (message → assistant reply → both stored)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Payloads are validated before reaching the store
- The store alone decides whether a posting succeeds
- Every mutation is audited, every failure is audited then re-raised

Components are built once by create_app_components() and passed around
explicitly. There is no module-level store.
"""

from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional, TypeVar
from uuid import UUID

import structlog

from expense_tracker.agents import (
    FALLBACK_CHAT_RESPONSE,
    FALLBACK_INSIGHTS,
    FinancialAssistant,
    GeminiChatAgent,
    InsightsAgent,
)
from expense_tracker.audit import AuditLogger, create_correlation_id
from expense_tracker.config import LedgerSettings, Settings, get_settings
from expense_tracker.models.ledger import (
    Account,
    Category,
    ChatMessage,
    ChatMessageCreate,
    Debt,
    FinancialSummary,
    Reminder,
    ReminderStatus,
    SetDebtSettled,
    SetReminderDueDate,
    SetReminderStatus,
    SpendingInsights,
    Transaction,
    TransactionFilter,
    ValidationResult,
    ensure_aware,
    format_money,
)
from expense_tracker.services.storage import (
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    InvariantViolation,
    LedgerStorageInterface,
    StorageError,
)
from expense_tracker.summary import SummaryService
from expense_tracker.validation import LedgerValidator, ValidationError
from expense_tracker.validation.validator import Payload


logger = structlog.get_logger(__name__)

T = TypeVar("T")


def _local_now() -> datetime:
    return datetime.now().astimezone()


class LedgerService:
    """
    Facade over the ledger store.

    Flow for every write:
    1. Validate payload (schema errors raise ValidationError)
    2. Apply to the store (unknown ids raise NotFoundError)
    3. Audit the outcome

    Deletes are idempotent; get/update on an unknown id raise NotFoundError.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        validator: Optional[LedgerValidator] = None,
        summary_service: Optional[SummaryService] = None,
        insights_agent: Optional[InsightsAgent] = None,
        settings: Optional[LedgerSettings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._storage = storage
        self._settings = settings or LedgerSettings()
        self._clock = clock or _local_now
        self._audit_logger = audit_logger or AuditLogger()
        self._validator = validator or LedgerValidator(self._settings, clock=self._clock)
        self._summary = summary_service or SummaryService(
            storage, self._settings, clock=self._clock
        )
        self._insights_agent = insights_agent

    @property
    def summary(self) -> SummaryService:
        return self._summary

    async def _validate(self, method, payload: Payload, correlation_id: UUID):
        """Run a validator method, auditing rejections and warnings."""
        try:
            model, result = method(payload)
        except ValidationError as e:
            await self._audit_validation(e.result, "schema", correlation_id)
            raise

        if result.warnings:
            await self._audit_validation(result, "semantic", correlation_id)
        return model

    async def _guarded(
        self,
        call: Awaitable[T],
        correlation_id: Optional[UUID] = None,
        **details,
    ) -> T:
        """Await a store call, auditing storage failures before re-raising."""
        try:
            return await call
        except StorageError as e:
            await self._audit_logger.log_error(
                error_type=type(e).__name__,
                error_message=str(e),
                details=details or None,
                correlation_id=correlation_id,
            )
            raise

    async def _audit_validation(
        self,
        result: ValidationResult,
        stage: str,
        correlation_id: UUID,
    ) -> None:
        await self._audit_logger.log_validation_failed(
            entity_type=result.entity_type,
            stage=stage,
            issues=[
                {"field": i.field, "type": i.issue_type, "message": i.message}
                for i in result.issues
            ],
            correlation_id=correlation_id,
        )

    # -------------------------------------------------------------------------
    # Accounts
    # -------------------------------------------------------------------------

    async def list_accounts(self) -> list[Account]:
        return await self._storage.list_accounts()

    async def create_account(self, payload: Payload) -> Account:
        correlation_id = create_correlation_id()
        data = await self._validate(self._validator.validate_account, payload, correlation_id)

        account = await self._storage.create_account(data)
        await self._audit_logger.log_account_created(
            account_id=account.id,
            name=account.name,
            opening_balance=format_money(account.balance),
            correlation_id=correlation_id,
        )
        return account

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    async def list_transactions(
        self,
        account_id: Optional[str] = None,
        category: Optional[Category] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> list[Transaction]:
        """List transactions newest first, with optional inclusive date bounds."""
        filters = TransactionFilter(
            account_id=account_id,
            category=category,
            start_date=start_date,
            end_date=end_date,
        )
        return await self._storage.list_transactions(filters)

    async def create_transaction(self, payload: Payload) -> Transaction:
        """
        Post a transaction and adjust its account's balance.

        Raises:
            ValidationError: Malformed payload
            NotFoundError: account_id doesn't exist (nothing is changed)
        """
        correlation_id = create_correlation_id()
        data = await self._validate(self._validator.validate_transaction, payload, correlation_id)

        previous = await self._guarded(
            self._storage.get_account(data.account_id),
            correlation_id,
            account_id=data.account_id,
        )
        transaction = await self._guarded(
            self._storage.create_transaction(data),
            correlation_id,
            account_id=data.account_id,
        )

        account = await self._storage.get_account(transaction.account_id)

        await self._audit_logger.log_transaction_posted(
            transaction_id=transaction.id,
            account_id=transaction.account_id,
            transaction_type=transaction.type.value,
            amount=format_money(transaction.amount),
            category=transaction.category.value,
            correlation_id=correlation_id,
        )
        # previous balance is read outside the store lock, so it is informational
        await self._audit_logger.log_balance_adjusted(
            account_id=account.id,
            previous_balance=format_money(previous.balance),
            new_balance=format_money(account.balance),
            transaction_id=transaction.id,
            correlation_id=correlation_id,
        )
        return transaction

    async def delete_transaction(self, transaction_id: str) -> bool:
        """Delete a transaction. Idempotent. See LedgerSettings.reverse_balance_on_delete."""
        removed = await self._storage.delete_transaction(transaction_id)
        if removed:
            await self._audit_logger.log_transaction_deleted(
                transaction_id=transaction_id,
                balance_reversed=getattr(self._storage, "reverse_on_delete", False),
            )
        return removed

    # -------------------------------------------------------------------------
    # Debts
    # -------------------------------------------------------------------------

    async def list_debts(self) -> list[Debt]:
        return await self._storage.list_debts()

    async def create_debt(self, payload: Payload) -> Debt:
        correlation_id = create_correlation_id()
        data = await self._validate(self._validator.validate_debt, payload, correlation_id)

        debt = await self._storage.create_debt(data)
        await self._audit_logger.log_debt_created(
            debt_id=debt.id,
            friend_name=debt.friend_name,
            debt_type=debt.type.value,
            amount=format_money(debt.amount),
            correlation_id=correlation_id,
        )
        return debt

    async def update_debt(self, debt_id: str, payload: Payload) -> Debt:
        """Apply a schema-checked partial edit to a debt."""
        correlation_id = create_correlation_id()
        change = await self._validate(self._validator.validate_debt_update, payload, correlation_id)

        debt = await self._guarded(
            self._storage.update_debt(debt_id, change), correlation_id, debt_id=debt_id
        )
        changed = sorted(change.model_dump(exclude_unset=True))
        await self._audit_logger.log_debt_updated(
            debt_id=debt.id,
            changed_fields=changed,
            correlation_id=correlation_id,
        )
        return debt

    async def settle_debt(self, debt_id: str) -> Debt:
        debt = await self._guarded(
            self._storage.update_debt(debt_id, SetDebtSettled(settled=True)),
            debt_id=debt_id,
        )
        await self._audit_logger.log_debt_settled(
            debt_id=debt.id,
            friend_name=debt.friend_name,
            amount=format_money(debt.amount),
        )
        return debt

    async def delete_debt(self, debt_id: str) -> bool:
        removed = await self._storage.delete_debt(debt_id)
        await self._audit_logger.log_entity_deleted("debt", debt_id, existed=removed)
        return removed

    # -------------------------------------------------------------------------
    # Reminders
    # -------------------------------------------------------------------------

    async def list_reminders(self) -> list[Reminder]:
        return await self._storage.list_reminders()

    async def create_reminder(self, payload: Payload) -> Reminder:
        correlation_id = create_correlation_id()
        data = await self._validate(self._validator.validate_reminder, payload, correlation_id)

        reminder = await self._storage.create_reminder(data)
        await self._audit_logger.log_reminder_created(
            reminder_id=reminder.id,
            title=reminder.title,
            due_date=reminder.due_date,
            correlation_id=correlation_id,
        )
        return reminder

    async def update_reminder(self, reminder_id: str, payload: Payload) -> Reminder:
        """Apply a schema-checked partial edit to a reminder."""
        correlation_id = create_correlation_id()
        change = await self._validate(
            self._validator.validate_reminder_update, payload, correlation_id
        )

        reminder = await self._guarded(
            self._storage.update_reminder(reminder_id, change),
            correlation_id,
            reminder_id=reminder_id,
        )
        await self._audit_logger.log_reminder_updated(
            reminder_id=reminder.id,
            changed_fields=sorted(change.model_dump(exclude_unset=True)),
            correlation_id=correlation_id,
        )
        return reminder

    async def mark_reminder_paid(self, reminder_id: str) -> Reminder:
        reminder = await self._guarded(
            self._storage.update_reminder(
                reminder_id, SetReminderStatus(status=ReminderStatus.PAID)
            ),
            reminder_id=reminder_id,
        )
        await self._audit_logger.log_reminder_updated(
            reminder_id=reminder.id,
            changed_fields=["status"],
        )
        return reminder

    async def snooze_reminder(
        self,
        reminder_id: str,
        days: Optional[int] = None,
    ) -> Reminder:
        """
        Push a reminder's due date forward and mark it snoozed.

        The new due date is `days` (default: snooze_days setting) after
        whichever is later, now or the current due date, so a snooze
        never moves a reminder earlier.
        Paid reminders cannot be snoozed.
        """
        days = days if days is not None else self._settings.snooze_days
        if days < 1:
            raise ValueError("Snooze must be at least one day")

        current = await self._guarded(
            self._storage.get_reminder(reminder_id), reminder_id=reminder_id
        )
        if current.status == ReminderStatus.PAID:
            error = InvariantViolation(f"Reminder {reminder_id} is already paid")
            await self._audit_logger.log_error(
                error_type=type(error).__name__,
                error_message=str(error),
                details={"reminder_id": reminder_id},
            )
            raise error

        now = ensure_aware(self._clock())
        new_due_date = max(now, current.due_date) + timedelta(days=days)

        reminder = await self._guarded(
            self._storage.update_reminder(
                reminder_id,
                SetReminderDueDate(due_date=new_due_date, status=ReminderStatus.SNOOZED),
            ),
            reminder_id=reminder_id,
        )
        await self._audit_logger.log_reminder_snoozed(
            reminder_id=reminder.id,
            new_due_date=reminder.due_date,
        )
        return reminder

    async def delete_reminder(self, reminder_id: str) -> bool:
        removed = await self._storage.delete_reminder(reminder_id)
        await self._audit_logger.log_entity_deleted("reminder", reminder_id, existed=removed)
        return removed

    # -------------------------------------------------------------------------
    # Analytics
    # -------------------------------------------------------------------------

    async def get_summary(
        self,
        reference_date: Optional[datetime] = None,
    ) -> FinancialSummary:
        """The dashboard bundle in one call."""
        return await self._summary.build_summary(reference_date)

    async def get_insights(
        self,
        reference_date: Optional[datetime] = None,
    ) -> SpendingInsights:
        """
        AI commentary on this month vs. last month.

        Returns placeholder insights when no insights agent is configured.
        """
        if self._insights_agent is None:
            logger.warning("insights_agent_not_configured")
            return FALLBACK_INSIGHTS.model_copy(deep=True)

        reference = ensure_aware(reference_date or self._clock())
        this_month = await self._summary.monthly_spent(reference)
        last_month = await self._summary.previous_month_spent(reference)
        transactions = await self._summary.monthly_transactions(reference)

        return await self._insights_agent.generate_insights(
            this_month_spent=this_month,
            last_month_spent=last_month,
            monthly_transactions=transactions,
        )


class ChatFlow:
    """
    Orchestrates the assistant conversation.

    FLOW (user message):
    1. Store the user's message
    2. Build the financial summary
    3. Ask the assistant, with the summary as read-only context
    4. Store the reply verbatim as a non-user message

    Non-user messages are stored without calling the assistant.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        assistant: Optional[FinancialAssistant] = None,
        summary_service: Optional[SummaryService] = None,
        audit_logger: Optional[AuditLogger] = None,
        validator: Optional[LedgerValidator] = None,
    ):
        self._storage = storage
        self._assistant = assistant
        self._summary = summary_service or SummaryService(storage)
        self._audit_logger = audit_logger or AuditLogger()
        self._validator = validator or LedgerValidator()

    async def list_messages(self) -> list[ChatMessage]:
        return await self._storage.list_chat_messages()

    async def post_message(self, payload: Payload) -> ChatMessage:
        """
        Store a message, and the assistant's reply if the user wrote it.

        Returns:
            The stored message from the payload (not the reply)
        """
        correlation_id = create_correlation_id()
        try:
            data, _ = self._validator.validate_chat_message(payload)
        except ValidationError as e:
            await self._audit_logger.log_validation_failed(
                entity_type="chat_message",
                stage="schema",
                issues=[{"field": i.field, "message": i.message} for i in e.result.issues],
                correlation_id=correlation_id,
            )
            raise

        message = await self._storage.create_chat_message(data)
        await self._audit_logger.log_chat_message_stored(
            message_id=message.id,
            is_user=message.is_user,
            length=len(message.content),
            correlation_id=correlation_id,
        )

        if data.is_user:
            model_name = getattr(self._assistant, "model_name", "unknown")
            reply_text = FALLBACK_CHAT_RESPONSE
            if self._assistant is not None:
                try:
                    context = await self._summary.build_summary()
                    reply_text = await self._assistant.summarize(context, data.content)
                except Exception as e:
                    # The user message is already stored; it always gets a reply
                    logger.error("assistant_failed", model=model_name, error=str(e))
                    await self._audit_logger.log_external_service_error(
                        service=f"assistant:{model_name}",
                        error_message=str(e),
                        correlation_id=correlation_id,
                    )
                    reply_text = FALLBACK_CHAT_RESPONSE

            # Stored verbatim; the input length limit applies to user text only
            reply = await self._storage.create_chat_message(
                ChatMessageCreate.model_construct(content=reply_text, is_user=False)
            )
            await self._audit_logger.log_assistant_response(
                model_name=model_name,
                response_length=len(reply_text),
                correlation_id=correlation_id,
            )
            await self._audit_logger.log_chat_message_stored(
                message_id=reply.id,
                is_user=False,
                length=len(reply.content),
                correlation_id=correlation_id,
            )

        return message

    async def clear_history(self) -> int:
        removed = await self._storage.clear_chat_messages()
        await self._audit_logger.log_chat_cleared(removed)
        return removed


def create_app_components(
    settings: Optional[Settings] = None,
    assistant: Optional[FinancialAssistant] = None,
    insights_agent: Optional[InsightsAgent] = None,
    use_ai: bool = True,
    clock: Optional[Callable[[], datetime]] = None,
) -> tuple[LedgerService, ChatFlow, InMemoryLedgerStorage]:
    """
    Factory function to create all application components.

    Call once at process start. Everything shares one store.

    Args:
        settings: Settings to use. Defaults to get_settings().
        assistant: Chat assistant. Built from Gemini settings when None.
        insights_agent: Insights agent. Built from Gemini settings when None.
        use_ai: Set to False to run without any Gemini agents.
        clock: Wall-clock source shared by all components.

    Returns:
        (ledger_service, chat_flow, storage)
    """
    settings = settings or get_settings()
    ledger_settings = settings.ledger

    storage = InMemoryLedgerStorage.from_settings(ledger_settings, clock=clock)
    audit_logger = AuditLogger(InMemoryAuditStorage())
    validator = LedgerValidator(ledger_settings, clock=clock)
    summary = SummaryService(storage, ledger_settings, clock=clock)

    if use_ai and (assistant is None or insights_agent is None):
        try:
            gemini_settings = settings.gemini
            assistant = assistant or GeminiChatAgent(gemini_settings, audit_logger)
            insights_agent = insights_agent or InsightsAgent(gemini_settings, audit_logger)
        except Exception as e:
            # Gemini not configured - continue without it
            logger.warning("assistant_not_configured", error=str(e))

    ledger = LedgerService(
        storage=storage,
        audit_logger=audit_logger,
        validator=validator,
        summary_service=summary,
        insights_agent=insights_agent if use_ai else None,
        settings=ledger_settings,
        clock=clock,
    )
    chat = ChatFlow(
        storage=storage,
        assistant=assistant if use_ai else None,
        summary_service=summary,
        audit_logger=audit_logger,
        validator=validator,
    )

    return ledger, chat, storage
