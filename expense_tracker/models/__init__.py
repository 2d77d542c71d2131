"""
Data Models Package

This package contains all Pydantic models used in the Expense Tracker.
All data flowing through the ledger must conform to these schemas.
"""

from expense_tracker.models.ledger import (
    Account,
    AccountCreate,
    AccountType,
    Category,
    ChatMessage,
    ChatMessageCreate,
    Debt,
    DebtChange,
    DebtCreate,
    DebtType,
    DebtUpdate,
    FinancialSummary,
    LedgerSnapshot,
    NetDebt,
    Reminder,
    ReminderChange,
    ReminderCreate,
    ReminderStatus,
    ReminderUpdate,
    SetDebtSettled,
    SetReminderDueDate,
    SetReminderRecurring,
    SetReminderStatus,
    SpendingInsights,
    Transaction,
    TransactionCreate,
    TransactionFilter,
    TransactionType,
    ValidationIssue,
    ValidationResult,
    ensure_aware,
    format_money,
    to_money,
)
from expense_tracker.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "Account",
    "AccountCreate",
    "AccountType",
    "Category",
    "ChatMessage",
    "ChatMessageCreate",
    "Debt",
    "DebtChange",
    "DebtCreate",
    "DebtType",
    "DebtUpdate",
    "FinancialSummary",
    "LedgerSnapshot",
    "NetDebt",
    "Reminder",
    "ReminderChange",
    "ReminderCreate",
    "ReminderStatus",
    "ReminderUpdate",
    "SetDebtSettled",
    "SetReminderDueDate",
    "SetReminderRecurring",
    "SetReminderStatus",
    "SpendingInsights",
    "Transaction",
    "TransactionCreate",
    "TransactionFilter",
    "TransactionType",
    "ValidationIssue",
    "ValidationResult",
    "ensure_aware",
    "format_money",
    "to_money",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
