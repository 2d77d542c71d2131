"""Shared fixtures: a controllable clock and fresh, seeded stores."""

from datetime import datetime, timedelta

import pytest

from expense_tracker.audit import AuditLogger
from expense_tracker.config import LedgerSettings
from expense_tracker.models.ledger import FinancialSummary
from expense_tracker.agents import FinancialAssistant
from expense_tracker.services.storage import InMemoryAuditStorage, InMemoryLedgerStorage


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now

    def set(self, moment: datetime) -> None:
        self.now = moment


class FakeAssistant(FinancialAssistant):
    """Records every call and answers with a canned reply."""

    model_name = "fake-assistant"

    def __init__(self, reply: str = "You spent ₹50.00 on food this month."):
        self.reply = reply
        self.calls: list[tuple[FinancialSummary, str]] = []

    async def summarize(self, context: FinancialSummary, user_text: str) -> str:
        self.calls.append((context, user_text))
        return self.reply


@pytest.fixture
def clock():
    return FakeClock(datetime(2025, 3, 15, 12, 0).astimezone())


@pytest.fixture
def ledger_settings():
    return LedgerSettings()


@pytest.fixture
def store(clock):
    return InMemoryLedgerStorage(clock=clock)


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage):
    return AuditLogger(audit_storage)


@pytest.fixture
def assistant():
    return FakeAssistant()


async def account_named(store, name: str):
    """Look up a seeded account by name."""
    for account in await store.list_accounts():
        if account.name == name:
            return account
    raise LookupError(name)
