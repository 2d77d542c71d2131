"""
Summary Aggregation Engine

DESIGN DECISION: Summaries are recomputed on every call.
There is no cache, so there is nothing to invalidate. A summary is
never staler than the last store mutation.

Each public method takes exactly one snapshot of the store and computes
from it, so a summary never mixes state from before and after a
concurrent mutation.

Months follow the LOCAL calendar (same month and year as the reference
date), not a rolling 30-day window.
"""

from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional

from expense_tracker.config import LedgerSettings
from expense_tracker.models.ledger import (
    Category,
    Debt,
    DebtType,
    FinancialSummary,
    LedgerSnapshot,
    NetDebt,
    Reminder,
    ReminderStatus,
    Transaction,
    TransactionType,
    ensure_aware,
    to_money,
)
from expense_tracker.services.storage import LedgerStorageInterface


def _local_now() -> datetime:
    return datetime.now().astimezone()


def _same_local_month(moment: datetime, reference: datetime) -> bool:
    moment = ensure_aware(moment).astimezone()
    reference = ensure_aware(reference).astimezone()
    return moment.year == reference.year and moment.month == reference.month


def _previous_month(reference: datetime) -> datetime:
    """A moment inside the calendar month before the reference."""
    reference = ensure_aware(reference).astimezone()
    if reference.month == 1:
        return reference.replace(year=reference.year - 1, month=12, day=1)
    return reference.replace(month=reference.month - 1, day=1)


def _sum(amounts) -> Decimal:
    return to_money(sum(amounts, Decimal("0.00")))


class SummaryService:
    """
    Computes read-only derived views over the ledger.

    GUARANTEES:
    - Never mutates or reorders the store
    - Truncation happens on the already-ordered list result
    - Money sums are exact decimals
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        settings: Optional[LedgerSettings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._storage = storage
        self._settings = settings or LedgerSettings()
        self._clock = clock or _local_now

    def _reference(self, reference_date: Optional[datetime]) -> datetime:
        return ensure_aware(reference_date or self._clock())

    # -------------------------------------------------------------------------
    # Pure computations over one snapshot
    # -------------------------------------------------------------------------

    @staticmethod
    def _total_balance(snapshot: LedgerSnapshot) -> Decimal:
        return _sum(account.balance for account in snapshot.accounts)

    @staticmethod
    def _monthly_expenses(
        snapshot: LedgerSnapshot,
        reference: datetime,
    ) -> list[Transaction]:
        return [
            t for t in snapshot.transactions
            if t.type == TransactionType.EXPENSE
            and _same_local_month(t.created_at, reference)
        ]

    @classmethod
    def _monthly_spent(cls, snapshot: LedgerSnapshot, reference: datetime) -> Decimal:
        return _sum(t.amount for t in cls._monthly_expenses(snapshot, reference))

    @classmethod
    def _category_spending(
        cls,
        snapshot: LedgerSnapshot,
        reference: datetime,
    ) -> dict[Category, Decimal]:
        totals: dict[Category, Decimal] = defaultdict(lambda: Decimal("0.00"))
        for t in cls._monthly_expenses(snapshot, reference):
            totals[t.category] += t.amount
        return {category: to_money(amount) for category, amount in totals.items()}

    @staticmethod
    def _net_debt(snapshot: LedgerSnapshot) -> NetDebt:
        open_debts = [d for d in snapshot.debts if not d.settled]
        return NetDebt(
            total_owed=_sum(d.amount for d in open_debts if d.type == DebtType.OWE),
            total_owed_to_user=_sum(d.amount for d in open_debts if d.type == DebtType.OWED),
        )

    @staticmethod
    def _upcoming_reminders(
        snapshot: LedgerSnapshot,
        limit: int,
        reference: datetime,
    ) -> list[Reminder]:
        upcoming = [
            r for r in snapshot.reminders
            if r.status == ReminderStatus.PENDING and r.due_date > reference
        ]
        return upcoming[:max(limit, 0)]

    @staticmethod
    def _active_debts(snapshot: LedgerSnapshot, limit: int) -> list[Debt]:
        return [d for d in snapshot.debts if not d.settled][:max(limit, 0)]

    # -------------------------------------------------------------------------
    # Public views
    # -------------------------------------------------------------------------

    async def total_balance(self) -> Decimal:
        """Sum of every account balance."""
        snapshot = await self._storage.snapshot()
        return self._total_balance(snapshot)

    async def monthly_spent(self, reference_date: Optional[datetime] = None) -> Decimal:
        """Expenses created in the reference date's calendar month."""
        snapshot = await self._storage.snapshot()
        return self._monthly_spent(snapshot, self._reference(reference_date))

    async def category_spending(
        self,
        reference_date: Optional[datetime] = None,
    ) -> dict[Category, Decimal]:
        """This month's expenses grouped by category. Empty categories are absent."""
        snapshot = await self._storage.snapshot()
        return self._category_spending(snapshot, self._reference(reference_date))

    async def net_debt(self) -> NetDebt:
        """Unsettled debt totals in each direction."""
        snapshot = await self._storage.snapshot()
        return self._net_debt(snapshot)

    async def upcoming_reminders(
        self,
        limit: Optional[int] = None,
        reference_date: Optional[datetime] = None,
    ) -> list[Reminder]:
        """Pending reminders due strictly after the reference, earliest first."""
        snapshot = await self._storage.snapshot()
        return self._upcoming_reminders(
            snapshot,
            limit if limit is not None else self._settings.upcoming_reminders_limit,
            self._reference(reference_date),
        )

    async def recent_transactions(self, limit: Optional[int] = None) -> list[Transaction]:
        """Newest transactions first."""
        snapshot = await self._storage.snapshot()
        limit = limit if limit is not None else self._settings.recent_transactions_limit
        return snapshot.transactions[:max(limit, 0)]

    async def active_debts(self, limit: Optional[int] = None) -> list[Debt]:
        """Unsettled debts, newest first."""
        snapshot = await self._storage.snapshot()
        return self._active_debts(
            snapshot,
            limit if limit is not None else self._settings.active_debts_limit,
        )

    async def monthly_transactions(
        self,
        reference_date: Optional[datetime] = None,
    ) -> list[Transaction]:
        """Every transaction (income and expense) in the reference month."""
        snapshot = await self._storage.snapshot()
        reference = self._reference(reference_date)
        return [t for t in snapshot.transactions if _same_local_month(t.created_at, reference)]

    async def previous_month_spent(
        self,
        reference_date: Optional[datetime] = None,
    ) -> Decimal:
        """Expenses in the calendar month before the reference date's month."""
        snapshot = await self._storage.snapshot()
        return self._monthly_spent(
            snapshot,
            _previous_month(self._reference(reference_date)),
        )

    async def build_summary(
        self,
        reference_date: Optional[datetime] = None,
    ) -> FinancialSummary:
        """
        The whole dashboard bundle from a single snapshot.

        Saves the presentation layer one call per figure.
        """
        snapshot = await self._storage.snapshot()
        reference = self._reference(reference_date)
        net = self._net_debt(snapshot)

        return FinancialSummary(
            generated_at=reference,
            total_balance=self._total_balance(snapshot),
            monthly_spent=self._monthly_spent(snapshot, reference),
            category_spending=self._category_spending(snapshot, reference),
            total_owed=net.total_owed,
            total_owed_to_user=net.total_owed_to_user,
            recent_transactions=snapshot.transactions[
                :self._settings.recent_transactions_limit
            ],
            upcoming_reminders=self._upcoming_reminders(
                snapshot, self._settings.upcoming_reminders_limit, reference
            ),
            active_debts=self._active_debts(snapshot, self._settings.active_debts_limit),
        )
