"""Orchestration services."""

from liquidesk.services.balance_ledger import BalanceLedger, RefreshResult
from liquidesk.services.positions import PositionService, PositionSnapshot, TransactionPage
from liquidesk.services.reconciler import PendingReconciler, ReconcileReport
from liquidesk.services.settlement import (
    SettlementOrchestrator,
    SettlementReceipt,
    SettlementUpdate,
    WebhookOutcome,
    generate_settlement_id,
)
from liquidesk.services.withdrawal import (
    WithdrawalCommand,
    WithdrawalOrchestrator,
    WithdrawalResult,
)

__all__ = [
    "BalanceLedger",
    "RefreshResult",
    "PositionService",
    "PositionSnapshot",
    "TransactionPage",
    "PendingReconciler",
    "ReconcileReport",
    "SettlementOrchestrator",
    "SettlementReceipt",
    "SettlementUpdate",
    "WebhookOutcome",
    "generate_settlement_id",
    "WithdrawalCommand",
    "WithdrawalOrchestrator",
    "WithdrawalResult",
]
