"""Simulated transfer executor for development and testing."""

import logging
import secrets
from decimal import Decimal
from typing import Optional

from liquidesk.transfer.base import (
    TransferError,
    TransferExecutor,
    TransferReceipt,
    TransferState,
    TransferStatus,
    explorer_url,
)
from liquidesk.wallets.dryrun import DryRunWalletService

logger = logging.getLogger(__name__)


class SimulatedTransferExecutor(TransferExecutor):
    """Pretends to relay transfers and moves simulated wallet balances."""

    def __init__(self, wallet_service: Optional[DryRunWalletService] = None):
        self.wallet_service = wallet_service
        self._receipts: dict[str, TransferReceipt] = {}

    def is_configured(self) -> bool:
        return True

    async def execute(
        self,
        user_id: str,
        network: str,
        destination: str,
        amount: Decimal,
        transaction_id: str,
    ) -> TransferReceipt:
        if transaction_id in self._receipts:
            return self._receipts[transaction_id]

        if self.wallet_service is not None:
            try:
                self.wallet_service.debit(user_id, network, amount)
            except ValueError as e:
                raise TransferError(str(e)) from e

        tx_hash = (
            f"0x{secrets.token_hex(32)}" if network == "base" else secrets.token_hex(44)
        )
        receipt = TransferReceipt(
            tx_hash=tx_hash,
            explorer_url=explorer_url(network, tx_hash),
            gas_fee_paid_by="platform",
        )
        self._receipts[transaction_id] = receipt

        logger.info(f"[SIMULATED] Transfer: {amount} USDC on {network} to {destination}")
        return receipt

    async def get_status(self, transaction_id: str) -> TransferStatus:
        receipt = self._receipts.get(transaction_id)
        if receipt is None:
            return TransferStatus(state=TransferState.UNKNOWN)
        return TransferStatus(state=TransferState.CONFIRMED, receipt=receipt)
