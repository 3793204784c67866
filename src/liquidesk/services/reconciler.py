"""Reconciliation of transfers left open by a local transfer timeout.

A pending withdrawal is only finalized on the executor's word. If the
executor does not know the outcome either, the record stays pending.
Settlements whose transfer timed out before a hash came back are checked
the same way, keyed by settlement id.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from liquidesk.ledger.database import get_db
from liquidesk.ledger.models import Settlement, SettlementStatus, Transaction, utcnow
from liquidesk.ledger.repository import LedgerRepository
from liquidesk.services.balance_ledger import BalanceLedger
from liquidesk.transfer.base import TransferExecutor, TransferState

logger = logging.getLogger(__name__)


@dataclass
class ReconcileReport:
    checked: int = 0
    confirmed: int = 0
    failed: int = 0
    unresolved: int = 0
    errors: int = 0


class PendingReconciler:
    """Finalizes stale pending withdrawals and unsubmitted settlements."""

    def __init__(
        self,
        executor: TransferExecutor,
        ledger: BalanceLedger,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    ):
        self.executor = executor
        self.ledger = ledger
        self.session_factory = session_factory

    async def run_once(self, older_than_seconds: int = 300) -> ReconcileReport:
        """Check every stale record once.

        A record whose lookup raises is logged and counted as unresolved;
        the rest of the pass continues.
        """
        report = ReconcileReport()
        cutoff = utcnow() - timedelta(seconds=older_than_seconds)

        async with get_db(self.session_factory) as session:
            repo = LedgerRepository(session)
            pending = await repo.get_stale_pending_withdrawals(cutoff)
            settlements = await repo.get_stale_unsubmitted_settlements(cutoff)

        for transaction in pending:
            report.checked += 1
            try:
                await self._reconcile_withdrawal(transaction, report)
            except Exception as e:
                report.unresolved += 1
                report.errors += 1
                logger.error(f"Reconciling transaction {transaction.id} failed: {e}")

        for settlement in settlements:
            report.checked += 1
            try:
                await self._reconcile_settlement(settlement, report)
            except Exception as e:
                report.unresolved += 1
                report.errors += 1
                logger.error(f"Reconciling settlement {settlement.settlement_id} failed: {e}")

        if report.checked:
            logger.info(
                f"Reconciliation: checked={report.checked} confirmed={report.confirmed} "
                f"failed={report.failed} unresolved={report.unresolved} errors={report.errors}"
            )
        return report

    async def _reconcile_withdrawal(self, transaction: Transaction, report: ReconcileReport):
        status = await self.executor.get_status(str(transaction.id))

        if status.state == TransferState.CONFIRMED and status.receipt:
            async with get_db(self.session_factory) as session:
                applied = await LedgerRepository(session).confirm_transaction(
                    transaction.id,
                    tx_hash=status.receipt.tx_hash,
                    explorer_url=status.receipt.explorer_url,
                    gas_fee_paid_by=status.receipt.gas_fee_paid_by,
                )
            if applied:
                report.confirmed += 1
                logger.info(f"Reconciled transaction {transaction.id}: confirmed")
                await self.ledger.refresh(transaction.user_id)

        elif status.state == TransferState.FAILED:
            async with get_db(self.session_factory) as session:
                applied = await LedgerRepository(session).fail_transaction(
                    transaction.id, status.reason or "Transfer failed"
                )
            if applied:
                report.failed += 1
                logger.info(f"Reconciled transaction {transaction.id}: failed")

        else:
            report.unresolved += 1
            logger.debug(f"Transaction {transaction.id} still unresolved")

    async def _reconcile_settlement(self, settlement: Settlement, report: ReconcileReport):
        settlement_id = settlement.settlement_id
        status = await self.executor.get_status(settlement_id)

        if status.state == TransferState.CONFIRMED and status.receipt:
            # Status stays initiated; webhooks advance it
            async with get_db(self.session_factory) as session:
                applied = await LedgerRepository(session).attach_settlement_hash(
                    settlement_id, status.receipt.tx_hash
                )
            if applied:
                report.confirmed += 1
                logger.info(f"Reconciled settlement {settlement_id}: {status.receipt.tx_hash}")

        elif status.state == TransferState.FAILED:
            async with get_db(self.session_factory) as session:
                applied = await LedgerRepository(session).advance_settlement(
                    settlement_id,
                    SettlementStatus.FAILED,
                    failure_reason=status.reason or "Transfer failed",
                )
            if applied:
                report.failed += 1
                logger.info(f"Reconciled settlement {settlement_id}: failed")

        else:
            report.unresolved += 1
            logger.debug(f"Settlement {settlement_id} still unresolved")
