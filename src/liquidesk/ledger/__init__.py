"""Ledger module for liquidity positions, transactions and settlements."""

from liquidesk.ledger.database import get_db, init_db
from liquidesk.ledger.models import (
    LiquidityPosition,
    LiquidityType,
    Network,
    Settlement,
    SettlementStatus,
    Transaction,
    TransactionStatus,
    TransactionType,
    Wallet,
)
from liquidesk.ledger.repository import LedgerRepository

__all__ = [
    # Models
    "LiquidityPosition",
    "Settlement",
    "Transaction",
    "Wallet",
    # Enums
    "LiquidityType",
    "Network",
    "SettlementStatus",
    "TransactionStatus",
    "TransactionType",
    # Database
    "get_db",
    "init_db",
    "LedgerRepository",
]
