"""
Wallet Ledger

This module provides:
- Two independent USD balances per user (home and gas-fee)
- An append-only transaction log whose sums reconcile with the balances
- Signup allocation, admin credits and withdrawals as single transactions
- Shared-secret gating for privileged operations
"""

from .models import (
    BalanceField,
    EntryCategory,
    LedgerEntry,
    Profile,
    ReconciliationReport,
)
from .service import LedgerService

__all__ = [
    "BalanceField",
    "EntryCategory",
    "LedgerEntry",
    "Profile",
    "ReconciliationReport",
    "LedgerService",
]
