"""
Finance Tracker - Source Package

The ledger core of a personal finance application: accounts,
transactions (including recurring ones and scanned receipts) and a
monthly budget tracked against spending.

DESIGN PRINCIPLES:
1. The cached account balance always equals its opening balance plus the
   signed sum of its ledger
2. Every multi-row change commits as one unit or not at all
3. Balances move by increments, never by read-modify-write
4. Every lookup is scoped to the calling user
5. Money stays Decimal until the serialization boundary
"""

__version__ = "1.0.0"
__author__ = "Finance Tracker Team"
