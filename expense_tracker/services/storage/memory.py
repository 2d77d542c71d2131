"""
In-Memory Storage Implementation

DESIGN DECISION: The ledger lives in plain dicts keyed by id, one per
entity kind, guarded by a single re-entrant lock over the whole store.

WHY ONE LOCK:
- "Insert transaction + adjust balance" must be one atomic unit
- Snapshots for the summary service must never see half of a mutation
- Throughput is irrelevant for one user's ledger

No await happens while the lock is held, so the same store can be
shared between threads and event loops.

TRADEOFFS:
- Nothing survives a restart (durability is out of scope)
- Filtering and sorting are O(n) per read, which is fine at personal scale

Every read returns deep copies, so callers can never mutate the
store by mutating a result.
"""

import threading
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional
from uuid import uuid4

import structlog
from pydantic import BaseModel, ValidationError as SchemaError

from expense_tracker.config import LedgerSettings
from expense_tracker.models.audit import AuditEvent
from expense_tracker.models.ledger import (
    Account,
    AccountCreate,
    AccountType,
    ChatMessage,
    ChatMessageCreate,
    Debt,
    DebtChange,
    DebtCreate,
    DebtUpdate,
    LedgerSnapshot,
    Reminder,
    ReminderChange,
    ReminderCreate,
    ReminderUpdate,
    Transaction,
    TransactionCreate,
    TransactionFilter,
    ensure_aware,
)
from expense_tracker.services.balance import apply_transaction, reverse_transaction
from expense_tracker.services.storage.interface import (
    AuditStorageInterface,
    InvariantViolation,
    LedgerStorageInterface,
    NotFoundError,
)


logger = structlog.get_logger(__name__)


def _local_now() -> datetime:
    return datetime.now().astimezone()


class InMemoryLedgerStorage(LedgerStorageInterface):
    """
    In-memory implementation of ledger storage.

    A fresh store is seeded with two accounts:
    "Main Account" (2450.00) and "Savings Account" (8750.00).
    """

    def __init__(
        self,
        clock: Optional[Callable[[], datetime]] = None,
        seed: bool = True,
        main_opening_balance: Decimal = Decimal("2450.00"),
        savings_opening_balance: Decimal = Decimal("8750.00"),
        reverse_on_delete: bool = False,
    ):
        """
        Initialize the store.

        Args:
            clock: Source of wall-clock time. Defaults to local now.
            seed: Whether to create the two default accounts.
            main_opening_balance: Seed balance for the Main Account.
            savings_opening_balance: Seed balance for the Savings Account.
            reverse_on_delete: Undo a transaction's balance effect when
                it is deleted. Off by default.
        """
        self._clock = clock or _local_now
        self._lock = threading.RLock()
        self._last_timestamp: Optional[datetime] = None
        self.reverse_on_delete = reverse_on_delete

        self._accounts: dict[str, Account] = {}
        self._transactions: dict[str, Transaction] = {}
        self._debts: dict[str, Debt] = {}
        self._reminders: dict[str, Reminder] = {}
        self._chat_messages: dict[str, ChatMessage] = {}

        if seed:
            self._seed(main_opening_balance, savings_opening_balance)

    @classmethod
    def from_settings(
        cls,
        settings: LedgerSettings,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> "InMemoryLedgerStorage":
        """Build a seeded store from ledger settings."""
        return cls(
            clock=clock,
            main_opening_balance=settings.main_account_opening_balance,
            savings_opening_balance=settings.savings_account_opening_balance,
            reverse_on_delete=settings.reverse_balance_on_delete,
        )

    def _seed(self, main_balance: Decimal, savings_balance: Decimal) -> None:
        for name, account_type, balance in (
            ("Main Account", AccountType.MAIN, main_balance),
            ("Savings Account", AccountType.SAVINGS, savings_balance),
        ):
            account = Account(
                id=self._new_id(),
                name=name,
                type=account_type,
                balance=balance,
                created_at=self._now(),
            )
            self._accounts[account.id] = account

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _new_id() -> str:
        return str(uuid4())

    def _now(self) -> datetime:
        """Server-assigned timestamp, never earlier than the previous one."""
        now = ensure_aware(self._clock())
        if self._last_timestamp is not None and now < self._last_timestamp:
            now = self._last_timestamp
        self._last_timestamp = now
        return now

    @staticmethod
    def _copy(model):
        return model.model_copy(deep=True)

    @staticmethod
    def _check_amount(amount: Decimal) -> None:
        if amount is None or amount <= 0:
            raise InvariantViolation(f"Amount must be positive, got {amount}")

    @staticmethod
    def _change_fields(change: BaseModel) -> dict:
        """Turn an update variant into the fields it actually changes."""
        if isinstance(change, (DebtUpdate, ReminderUpdate)):
            fields = change.model_dump(exclude_unset=True)
            return {
                key: value
                for key, value in fields.items()
                if value is not None or key in change.nullable_fields
            }
        return change.model_dump(exclude_none=True)

    @staticmethod
    def _merge(model_cls, current: BaseModel, fields: dict):
        """Shallow-merge fields into an entity, re-validating the result."""
        try:
            return model_cls.model_validate({**current.model_dump(), **fields})
        except SchemaError as e:
            raise InvariantViolation(
                f"Update would leave {model_cls.__name__} {current.id} invalid: {e}"
            ) from e

    def _sorted_transactions(self) -> list[Transaction]:
        # Stable sort: equal timestamps keep insertion order
        return sorted(
            self._transactions.values(),
            key=lambda t: t.created_at,
            reverse=True,
        )

    def _sorted_debts(self) -> list[Debt]:
        return sorted(self._debts.values(), key=lambda d: d.created_at, reverse=True)

    def _sorted_reminders(self) -> list[Reminder]:
        return sorted(self._reminders.values(), key=lambda r: r.due_date)

    def _sorted_chat_messages(self) -> list[ChatMessage]:
        return sorted(self._chat_messages.values(), key=lambda m: m.created_at)

    # -------------------------------------------------------------------------
    # Accounts
    # -------------------------------------------------------------------------

    async def list_accounts(self) -> list[Account]:
        with self._lock:
            return [self._copy(a) for a in self._accounts.values()]

    async def get_account(self, account_id: str) -> Account:
        with self._lock:
            account = self._accounts.get(account_id)
            if account is None:
                raise NotFoundError("account", account_id)
            return self._copy(account)

    async def create_account(self, payload: AccountCreate) -> Account:
        with self._lock:
            account = Account(
                id=self._new_id(),
                created_at=self._now(),
                **payload.model_dump(),
            )
            self._accounts[account.id] = account
            logger.debug("account_created", account_id=account.id, name=account.name)
            return self._copy(account)

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    async def list_transactions(
        self,
        filters: Optional[TransactionFilter] = None,
    ) -> list[Transaction]:
        with self._lock:
            transactions = self._sorted_transactions()

        if filters:
            if filters.account_id:
                transactions = [t for t in transactions if t.account_id == filters.account_id]
            if filters.category:
                transactions = [t for t in transactions if t.category == filters.category]
            if filters.start_date:
                transactions = [t for t in transactions if t.created_at >= filters.start_date]
            if filters.end_date:
                transactions = [t for t in transactions if t.created_at <= filters.end_date]

        return [self._copy(t) for t in transactions]

    async def get_transaction(self, transaction_id: str) -> Transaction:
        with self._lock:
            transaction = self._transactions.get(transaction_id)
            if transaction is None:
                raise NotFoundError("transaction", transaction_id)
            return self._copy(transaction)

    async def create_transaction(self, payload: TransactionCreate) -> Transaction:
        self._check_amount(payload.amount)

        with self._lock:
            # Resolve the account before touching anything
            account = self._accounts.get(payload.account_id)
            if account is None:
                raise NotFoundError("account", payload.account_id)

            transaction = Transaction(
                id=self._new_id(),
                created_at=self._now(),
                **payload.model_dump(),
            )
            updated_account = apply_transaction(account, transaction)

            self._transactions[transaction.id] = transaction
            self._accounts[account.id] = updated_account

        logger.debug(
            "transaction_posted",
            transaction_id=transaction.id,
            account_id=account.id,
            previous_balance=str(account.balance),
            new_balance=str(updated_account.balance),
        )
        return self._copy(transaction)

    async def delete_transaction(self, transaction_id: str) -> bool:
        with self._lock:
            transaction = self._transactions.pop(transaction_id, None)
            if transaction is None:
                return False

            if self.reverse_on_delete:
                account = self._accounts.get(transaction.account_id)
                if account is not None:
                    self._accounts[account.id] = reverse_transaction(account, transaction)

        logger.debug(
            "transaction_deleted",
            transaction_id=transaction_id,
            balance_reversed=self.reverse_on_delete,
        )
        return True

    # -------------------------------------------------------------------------
    # Debts
    # -------------------------------------------------------------------------

    async def list_debts(self) -> list[Debt]:
        with self._lock:
            return [self._copy(d) for d in self._sorted_debts()]

    async def get_debt(self, debt_id: str) -> Debt:
        with self._lock:
            debt = self._debts.get(debt_id)
            if debt is None:
                raise NotFoundError("debt", debt_id)
            return self._copy(debt)

    async def create_debt(self, payload: DebtCreate) -> Debt:
        self._check_amount(payload.amount)

        with self._lock:
            debt = Debt(
                id=self._new_id(),
                created_at=self._now(),
                settled=False,
                **payload.model_dump(),
            )
            self._debts[debt.id] = debt
            return self._copy(debt)

    async def update_debt(self, debt_id: str, change: DebtChange) -> Debt:
        with self._lock:
            debt = self._debts.get(debt_id)
            if debt is None:
                raise NotFoundError("debt", debt_id)

            updated = self._merge(Debt, debt, self._change_fields(change))
            self._debts[debt_id] = updated
            return self._copy(updated)

    async def delete_debt(self, debt_id: str) -> bool:
        with self._lock:
            return self._debts.pop(debt_id, None) is not None

    # -------------------------------------------------------------------------
    # Reminders
    # -------------------------------------------------------------------------

    async def list_reminders(self) -> list[Reminder]:
        with self._lock:
            return [self._copy(r) for r in self._sorted_reminders()]

    async def get_reminder(self, reminder_id: str) -> Reminder:
        with self._lock:
            reminder = self._reminders.get(reminder_id)
            if reminder is None:
                raise NotFoundError("reminder", reminder_id)
            return self._copy(reminder)

    async def create_reminder(self, payload: ReminderCreate) -> Reminder:
        self._check_amount(payload.amount)

        with self._lock:
            reminder = Reminder(
                id=self._new_id(),
                created_at=self._now(),
                **payload.model_dump(),
            )
            self._reminders[reminder.id] = reminder
            return self._copy(reminder)

    async def update_reminder(
        self,
        reminder_id: str,
        change: ReminderChange,
    ) -> Reminder:
        with self._lock:
            reminder = self._reminders.get(reminder_id)
            if reminder is None:
                raise NotFoundError("reminder", reminder_id)

            updated = self._merge(Reminder, reminder, self._change_fields(change))
            self._reminders[reminder_id] = updated
            return self._copy(updated)

    async def delete_reminder(self, reminder_id: str) -> bool:
        with self._lock:
            return self._reminders.pop(reminder_id, None) is not None

    # -------------------------------------------------------------------------
    # Chat messages
    # -------------------------------------------------------------------------

    async def list_chat_messages(self) -> list[ChatMessage]:
        with self._lock:
            return [self._copy(m) for m in self._sorted_chat_messages()]

    async def create_chat_message(self, payload: ChatMessageCreate) -> ChatMessage:
        with self._lock:
            message = ChatMessage(
                id=self._new_id(),
                created_at=self._now(),
                **payload.model_dump(),
            )
            self._chat_messages[message.id] = message
            return self._copy(message)

    async def clear_chat_messages(self) -> int:
        with self._lock:
            removed = len(self._chat_messages)
            self._chat_messages.clear()
            return removed

    # -------------------------------------------------------------------------
    # Snapshot
    # -------------------------------------------------------------------------

    async def snapshot(self) -> LedgerSnapshot:
        with self._lock:
            return LedgerSnapshot(
                taken_at=ensure_aware(self._clock()),
                accounts=[self._copy(a) for a in self._accounts.values()],
                transactions=[self._copy(t) for t in self._sorted_transactions()],
                debts=[self._copy(d) for d in self._sorted_debts()],
                reminders=[self._copy(r) for r in self._sorted_reminders()],
                chat_messages=[self._copy(m) for m in self._sorted_chat_messages()],
            )


class InMemoryAuditStorage(AuditStorageInterface):
    """
    Append-only in-memory audit log.

    Used when no persistent audit backend is configured, and in tests.
    """

    def __init__(self):
        self._events: list[AuditEvent] = []
        self._lock = threading.Lock()

    async def append_event(self, event: AuditEvent) -> bool:
        with self._lock:
            self._events.append(event.model_copy(deep=True))
        return True

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        with self._lock:
            return [
                e.model_copy(deep=True)
                for e in self._events
                if e.entity_type == entity_type and e.entity_id == entity_id
            ]

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        with self._lock:
            return [e.model_copy(deep=True) for e in reversed(self._events[-limit:])] if limit > 0 else []
