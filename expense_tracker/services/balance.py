"""
Balance Maintenance Rule

Keeps each account's balance in step with the transactions posted
against it: income adds the amount, expense subtracts it.

The rule is one-directional by default. Deleting a transaction does not
undo its effect on the balance; stores opt into symmetric reversal with
`reverse_on_delete`. Debts and reminders never touch balances.

These are pure functions. The store is responsible for calling them
inside the same critical section as the insert.
"""

from decimal import Decimal

from expense_tracker.models.ledger import (
    Account,
    Transaction,
    TransactionType,
    to_money,
)


def balance_delta(transaction_type: TransactionType, amount: Decimal) -> Decimal:
    """Signed change a transaction makes to its account's balance."""
    amount = to_money(amount)
    if transaction_type == TransactionType.INCOME:
        return amount
    return -amount


def apply_transaction(account: Account, transaction: Transaction) -> Account:
    """Return a copy of the account with the transaction posted."""
    if transaction.account_id != account.id:
        raise ValueError(
            f"Transaction {transaction.id} belongs to account "
            f"{transaction.account_id}, not {account.id}"
        )
    delta = balance_delta(transaction.type, transaction.amount)
    return account.model_copy(
        update={"balance": to_money(account.balance + delta)}
    )


def reverse_transaction(account: Account, transaction: Transaction) -> Account:
    """Return a copy of the account with the transaction's effect undone."""
    if transaction.account_id != account.id:
        raise ValueError(
            f"Transaction {transaction.id} belongs to account "
            f"{transaction.account_id}, not {account.id}"
        )
    delta = balance_delta(transaction.type, transaction.amount)
    return account.model_copy(
        update={"balance": to_money(account.balance - delta)}
    )
