"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Keep the in-memory store for tests and single-process use
2. Swap in a relational backend later (one table per entity,
   transactions referencing accounts)
3. Keep summary and chat logic decoupled from storage

Any implementation MUST make "insert transaction + adjust balance"
a single atomic unit, and MUST return copies rather than live objects
from every read.

NOTE the deliberate asymmetry: get/update on an unknown id raise
NotFoundError, but delete on an unknown id is a silent no-op.
"""

from abc import ABC, abstractmethod
from typing import Optional

from expense_tracker.models.audit import AuditEvent
from expense_tracker.models.ledger import (
    Account,
    AccountCreate,
    ChatMessage,
    ChatMessageCreate,
    Debt,
    DebtChange,
    DebtCreate,
    LedgerSnapshot,
    Reminder,
    ReminderChange,
    ReminderCreate,
    Transaction,
    TransactionCreate,
    TransactionFilter,
)


class LedgerStorageInterface(ABC):
    """
    Abstract interface for the ledger's five entity collections.

    Ordering contracts:
    - accounts: insertion order
    - transactions: newest first
    - debts: newest first
    - reminders: earliest due date first
    - chat messages: oldest first
    """

    # -------------------------------------------------------------------------
    # Accounts
    # -------------------------------------------------------------------------

    @abstractmethod
    async def list_accounts(self) -> list[Account]:
        """List all accounts in insertion order."""
        pass

    @abstractmethod
    async def get_account(self, account_id: str) -> Account:
        """
        Get one account.

        Raises:
            NotFoundError: If the account doesn't exist
        """
        pass

    @abstractmethod
    async def create_account(self, payload: AccountCreate) -> Account:
        """Open an account with the payload's opening balance."""
        pass

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    @abstractmethod
    async def list_transactions(
        self,
        filters: Optional[TransactionFilter] = None,
    ) -> list[Transaction]:
        """
        List transactions, newest first.

        Args:
            filters: Optional account, category and inclusive date bounds
        """
        pass

    @abstractmethod
    async def get_transaction(self, transaction_id: str) -> Transaction:
        """
        Get one transaction.

        Raises:
            NotFoundError: If the transaction doesn't exist
        """
        pass

    @abstractmethod
    async def create_transaction(self, payload: TransactionCreate) -> Transaction:
        """
        Post a transaction and adjust the owning account's balance.

        Both effects happen as one atomic step.

        Raises:
            NotFoundError: If payload.account_id doesn't exist. Nothing
                is stored and no balance changes.
        """
        pass

    @abstractmethod
    async def delete_transaction(self, transaction_id: str) -> bool:
        """
        Delete a transaction. Idempotent.

        Returns:
            True if something was removed
        """
        pass

    # -------------------------------------------------------------------------
    # Debts
    # -------------------------------------------------------------------------

    @abstractmethod
    async def list_debts(self) -> list[Debt]:
        """List debts, newest first."""
        pass

    @abstractmethod
    async def get_debt(self, debt_id: str) -> Debt:
        """
        Get one debt.

        Raises:
            NotFoundError: If the debt doesn't exist
        """
        pass

    @abstractmethod
    async def create_debt(self, payload: DebtCreate) -> Debt:
        """Record a new, unsettled debt."""
        pass

    @abstractmethod
    async def update_debt(self, debt_id: str, change: DebtChange) -> Debt:
        """
        Apply an update variant to a debt.

        Raises:
            NotFoundError: If the debt doesn't exist
        """
        pass

    @abstractmethod
    async def delete_debt(self, debt_id: str) -> bool:
        """Delete a debt. Idempotent."""
        pass

    # -------------------------------------------------------------------------
    # Reminders
    # -------------------------------------------------------------------------

    @abstractmethod
    async def list_reminders(self) -> list[Reminder]:
        """List reminders, earliest due date first."""
        pass

    @abstractmethod
    async def get_reminder(self, reminder_id: str) -> Reminder:
        """
        Get one reminder.

        Raises:
            NotFoundError: If the reminder doesn't exist
        """
        pass

    @abstractmethod
    async def create_reminder(self, payload: ReminderCreate) -> Reminder:
        """Schedule a reminder."""
        pass

    @abstractmethod
    async def update_reminder(
        self,
        reminder_id: str,
        change: ReminderChange,
    ) -> Reminder:
        """
        Apply an update variant to a reminder.

        Raises:
            NotFoundError: If the reminder doesn't exist
        """
        pass

    @abstractmethod
    async def delete_reminder(self, reminder_id: str) -> bool:
        """Delete a reminder. Idempotent."""
        pass

    # -------------------------------------------------------------------------
    # Chat messages
    # -------------------------------------------------------------------------

    @abstractmethod
    async def list_chat_messages(self) -> list[ChatMessage]:
        """List chat messages, oldest first."""
        pass

    @abstractmethod
    async def create_chat_message(self, payload: ChatMessageCreate) -> ChatMessage:
        """Append a chat message."""
        pass

    @abstractmethod
    async def clear_chat_messages(self) -> int:
        """
        Remove every chat message.

        Returns:
            Number of messages removed
        """
        pass

    # -------------------------------------------------------------------------
    # Snapshot
    # -------------------------------------------------------------------------

    @abstractmethod
    async def snapshot(self) -> LedgerSnapshot:
        """
        Copy every collection in one consistent read.

        Summary computations run against this so they never see
        half of a concurrent mutation.
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """Get all events for one entity in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get the most recent audit events (newest first)."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")


class InvariantViolation(StorageError):
    """A ledger invariant would be broken by this operation."""
    pass
