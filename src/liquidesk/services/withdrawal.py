"""Withdrawal orchestration.

Withdrawal flow:
1. Check the transfer executor is usable (no side effects otherwise)
2. Under the per-user lock: refresh balances from chain, load the position,
   check the amount against the refreshed balance minus in-flight
   withdrawals, commit a pending transaction
3. Execute the gasless transfer outside the lock
4. Success: confirm the record with its receipt and refresh balances again
5. Failure: mark the record failed with the reason. Never retried here.
6. Local timeout: leave the record pending for reconciliation
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from liquidesk.errors import (
    ExecutorMisconfiguredError,
    InsufficientFundsError,
    NotFoundError,
    TransferFailedError,
    UpstreamUnavailableError,
    ValidationError,
)
from liquidesk.ledger.database import get_db
from liquidesk.ledger.models import Network, TransactionStatus, utcnow
from liquidesk.ledger.repository import LedgerRepository
from liquidesk.services.balance_ledger import BalanceLedger
from liquidesk.transfer.base import TransferExecutor, TransferReceipt, TransferTimeout
from liquidesk.utils.locks import PositionLock

logger = logging.getLogger(__name__)

MIN_DESTINATION_LENGTH = 20


@dataclass(frozen=True)
class WithdrawalCommand:
    """A validated request to withdraw USDC from a position."""

    user_id: str
    network: Network
    amount: Decimal
    destination_address: str


@dataclass
class WithdrawalResult:
    """Outcome of a withdrawal that did not raise."""

    transaction_id: int
    status: TransactionStatus
    network: Network
    amount: Decimal
    destination_address: str
    tx_hash: Optional[str] = None
    explorer_url: Optional[str] = None
    gas_fee_paid_by: Optional[str] = None
    completed_at: Optional[datetime] = None
    message: str = ""

    @property
    def success(self) -> bool:
        return self.status == TransactionStatus.CONFIRMED


class WithdrawalOrchestrator:
    """Validates, records, executes and reconciles withdrawals."""

    def __init__(
        self,
        ledger: BalanceLedger,
        executor: TransferExecutor,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        min_amount: Decimal = Decimal("0.5"),
        transfer_timeout: Optional[float] = 60.0,
        lock_timeout: Optional[float] = 30.0,
    ):
        self.ledger = ledger
        self.executor = executor
        self.session_factory = session_factory
        self.min_amount = min_amount
        self.transfer_timeout = transfer_timeout
        self.lock_timeout = lock_timeout

    def _validate(self, command: WithdrawalCommand) -> None:
        try:
            Network(command.network)
        except ValueError:
            raise ValidationError('Network must be either "base" or "solana"')

        if command.amount is None or command.amount < self.min_amount:
            raise ValidationError(f"Amount must be at least {self.min_amount} USDC")

        destination = (command.destination_address or "").strip()
        if not destination:
            raise ValidationError("Destination address is required")
        if len(destination) < MIN_DESTINATION_LENGTH:
            raise ValidationError("Invalid destination address format")

    async def withdraw(self, command: WithdrawalCommand) -> WithdrawalResult:
        """Execute a withdrawal.

        Raises:
            ValidationError: malformed command
            ExecutorMisconfiguredError: executor unusable, nothing recorded
            NotFoundError: no active position
            UpstreamUnavailableError: balances could not be confirmed
            InsufficientFundsError: amount exceeds available balance
            TransferFailedError: transfer failed, record marked failed
        """
        self._validate(command)
        network = Network(command.network)

        if not self.executor.is_configured():
            logger.error("Withdrawal refused: transfer executor is not configured")
            raise ExecutorMisconfiguredError(
                "Gasless service not properly configured. Please check environment variables."
            )

        logger.info(
            f"Initiating withdrawal for user {command.user_id}: "
            f"{command.amount} USDC on {network.value} to {command.destination_address}"
        )

        transaction_id = await self._record_pending(command, network)
        return await self._execute(command, network, transaction_id)

    async def _record_pending(self, command: WithdrawalCommand, network: Network) -> int:
        """Revalidate funds and commit the pending record under the user lock."""
        async with PositionLock(
            command.user_id, timeout=self.lock_timeout, operation="withdrawal"
        ):
            refresh = await self.ledger.refresh(command.user_id)

            async with get_db(self.session_factory) as session:
                repo = LedgerRepository(session)

                position = await repo.get_active_position(command.user_id)
                if position is None:
                    raise NotFoundError("No active liquidity position found")

                if not refresh.confirmed:
                    logger.warning(
                        f"Withdrawal refused for user {command.user_id}: "
                        f"balances not confirmed ({refresh.message or 'partial refresh'})"
                    )
                    raise UpstreamUnavailableError(
                        "Unable to confirm balance from chain, please try again"
                    )

                in_flight = await repo.get_pending_withdrawal_total(position.id, network)
                available = max(position.balance_for(network) - in_flight, Decimal("0"))

                logger.info(
                    f"Balances for user {command.user_id}: base={position.base_balance} "
                    f"solana={position.solana_balance} in_flight[{network.value}]={in_flight}"
                )

                if available < command.amount:
                    raise InsufficientFundsError(network.value, available, command.amount)

                transaction = await repo.create_transaction(
                    user_id=command.user_id,
                    position_id=position.id,
                    network=network,
                    amount=command.amount,
                    to_address=command.destination_address,
                )
                transaction_id = transaction.id

        logger.info(f"Transaction record created: {transaction_id} (pending)")
        return transaction_id

    async def _execute(
        self, command: WithdrawalCommand, network: Network, transaction_id: int
    ) -> WithdrawalResult:
        """Run the transfer once and move the record to its terminal state."""
        result = WithdrawalResult(
            transaction_id=transaction_id,
            status=TransactionStatus.PENDING,
            network=network,
            amount=command.amount,
            destination_address=command.destination_address,
        )

        try:
            receipt = await asyncio.wait_for(
                self.executor.execute(
                    command.user_id,
                    network.value,
                    command.destination_address,
                    command.amount,
                    str(transaction_id),
                ),
                timeout=self.transfer_timeout,
            )
        except (asyncio.TimeoutError, TransferTimeout):
            logger.warning(
                f"Transfer for transaction {transaction_id} timed out locally; left pending"
            )
            result.message = "Withdrawal submitted, awaiting confirmation"
            return result
        except Exception as e:
            reason = str(e) or "Transfer execution failed"
            logger.error(f"Gasless transfer failed for transaction {transaction_id}: {reason}")
            await self._mark_failed(transaction_id, reason)
            raise TransferFailedError(reason, transaction_id=transaction_id)

        await self._mark_confirmed(transaction_id, receipt)

        refresh = await self.ledger.refresh(command.user_id)
        if not refresh.success:
            logger.warning(
                f"Post-transfer refresh failed for user {command.user_id}: {refresh.message}"
            )

        result.status = TransactionStatus.CONFIRMED
        result.tx_hash = receipt.tx_hash
        result.explorer_url = receipt.explorer_url
        result.gas_fee_paid_by = receipt.gas_fee_paid_by
        result.completed_at = utcnow()
        result.message = "Withdrawal completed successfully"
        return result

    async def _mark_confirmed(self, transaction_id: int, receipt: TransferReceipt) -> None:
        async with get_db(self.session_factory) as session:
            applied = await LedgerRepository(session).confirm_transaction(
                transaction_id,
                tx_hash=receipt.tx_hash,
                explorer_url=receipt.explorer_url,
                gas_fee_paid_by=receipt.gas_fee_paid_by,
            )
        if applied:
            logger.info(f"Transaction {transaction_id} confirmed: {receipt.tx_hash}")
        else:
            logger.warning(f"Transaction {transaction_id} was already terminal, not confirmed")

    async def _mark_failed(self, transaction_id: int, reason: str) -> None:
        async with get_db(self.session_factory) as session:
            applied = await LedgerRepository(session).fail_transaction(transaction_id, reason)
        if applied:
            logger.info(f"Transaction {transaction_id} marked failed")
        else:
            logger.warning(f"Transaction {transaction_id} was already terminal, not failed")
