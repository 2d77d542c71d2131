"""
Expense Tracker - Source Package

The ledger core of a personal-finance tracker for college students:
accounts, transactions, debts with friends, bill reminders and an
assistant chat.

DESIGN PRINCIPLES:
1. Every posting moves exactly one account balance, atomically
2. Fail early, fail visibly
3. Money is exact decimal, never float
4. Every mutation is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Expense Tracker Team"
