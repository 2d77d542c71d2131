"""Services package."""

from expense_tracker.services.balance import (
    apply_transaction,
    balance_delta,
    reverse_transaction,
)
from expense_tracker.services.storage import (
    AuditStorageInterface,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    InvariantViolation,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
)

__all__ = [
    # Balance maintenance
    "apply_transaction",
    "balance_delta",
    "reverse_transaction",
    # Storage services
    "AuditStorageInterface",
    "InMemoryAuditStorage",
    "InMemoryLedgerStorage",
    "InvariantViolation",
    "LedgerStorageInterface",
    "NotFoundError",
    "StorageError",
]
