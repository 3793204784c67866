"""Base interfaces for gasless transfer execution.

Transfer flow:
1. Orchestrator commits a pending record
2. Executor moves USDC from the custodial wallet to the destination
3. Relay pays the network fee
4. Executor returns a receipt, or raises TransferError with a reason
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)

EXPLORERS = {
    "base": "https://basescan.org/tx/{tx_hash}",
    "solana": "https://solscan.io/tx/{tx_hash}",
}


def explorer_url(network: str, tx_hash: str) -> str:
    """Build a block explorer link for a transfer."""
    template = EXPLORERS.get(network.lower())
    return template.format(tx_hash=tx_hash) if template else ""


@dataclass
class TransferReceipt:
    """Proof that a transfer was executed."""

    tx_hash: str
    explorer_url: str = ""
    gas_fee_paid_by: str = "platform"


class TransferState(str, Enum):
    """Executor-side view of a transfer."""

    CONFIRMED = "confirmed"
    FAILED = "failed"
    UNKNOWN = "unknown"


@dataclass
class TransferStatus:
    """Result of asking the executor about an earlier transfer."""

    state: TransferState
    receipt: Optional[TransferReceipt] = None
    reason: Optional[str] = None


class TransferError(Exception):
    """Definitive transfer failure reported by the executor."""

    pass


class TransferTimeout(Exception):
    """The executor did not answer in time; the outcome is unknown."""

    pass


class TransferExecutor(ABC):
    """Abstract base class for transfer executors."""

    @abstractmethod
    def is_configured(self) -> bool:
        """Whether the executor has everything it needs to run."""
        pass

    @abstractmethod
    async def execute(
        self,
        user_id: str,
        network: str,
        destination: str,
        amount: Decimal,
        transaction_id: str,
    ) -> TransferReceipt:
        """Move `amount` USDC from the user's custodial wallet.

        Args:
            user_id: Owner of the source wallet
            network: base or solana
            destination: Recipient address
            amount: USDC amount
            transaction_id: Idempotency key for the relay

        Returns:
            TransferReceipt on success

        Raises:
            TransferError: on a definitive failure
        """
        pass

    @abstractmethod
    async def get_status(self, transaction_id: str) -> TransferStatus:
        """Look up the outcome of an earlier transfer by idempotency key."""
        pass
