"""Business settlement orchestration.

A settlement pays a business customer's wallet for an order out of the
platform's liquidity wallet. The settlement row is committed before the
transfer runs; the transfer outcome and later webhook deliveries only ever
move its status forward.
"""

import asyncio
import logging
import secrets
import time
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from liquidesk.errors import (
    ExecutorMisconfiguredError,
    NotFoundError,
    TransferFailedError,
    ValidationError,
)
from liquidesk.ledger.database import get_db
from liquidesk.ledger.models import Network, Settlement, SettlementStatus, utcnow
from liquidesk.ledger.repository import LedgerRepository
from liquidesk.transfer.base import TransferExecutor, TransferTimeout

logger = logging.getLogger(__name__)

ESTIMATED_TIME = "2-5 minutes"
ESTIMATED_COMPLETION = timedelta(minutes=2)


def generate_settlement_id() -> str:
    """Create a settlement ID: SETTLE_<epoch millis>_<48 random bits, hex>."""
    return f"SETTLE_{int(time.time() * 1000)}_{secrets.token_hex(6).upper()}"


@dataclass
class SettlementReceipt:
    """Response to a settlement request."""

    settlement_id: str
    status: SettlementStatus
    transaction_hash: Optional[str]
    estimated_time: str = ESTIMATED_TIME
    message: str = "Settlement initiated successfully"


@dataclass
class SettlementUpdate:
    """A status notification for a settlement."""

    settlement_id: str
    status: str
    transaction_hash: Optional[str] = None
    confirmations: Optional[int] = None
    block_number: Optional[int] = None
    failure_reason: Optional[str] = None


@dataclass
class WebhookOutcome:
    """What a webhook delivery did to the stored settlement."""

    settlement_id: str
    status: SettlementStatus
    applied: bool


class SettlementOrchestrator:
    """Requests, tracks and updates business settlements."""

    def __init__(
        self,
        executor: TransferExecutor,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        source_user_id: str = "liquidity-provider",
        supported_tokens: Optional[set[str]] = None,
        transfer_timeout: Optional[float] = 60.0,
    ):
        self.executor = executor
        self.session_factory = session_factory
        self.source_user_id = source_user_id
        self.supported_tokens = supported_tokens or {"USDC"}
        self.transfer_timeout = transfer_timeout

    def _parse_request(
        self, order_id: Any, customer_wallet: Any, amount: Any, token: Any, network: Any
    ) -> tuple[Decimal, str, Network]:
        if not order_id or not customer_wallet or amount in (None, "") or not token or not network:
            raise ValidationError(
                "Missing required fields: order_id, customer_wallet, amount, token, network"
            )

        try:
            parsed_amount = Decimal(str(amount))
        except InvalidOperation:
            raise ValidationError(f"Invalid amount: {amount}")
        if not parsed_amount.is_finite() or parsed_amount <= 0:
            raise ValidationError("Amount must be positive")

        symbol = str(token).upper()
        if symbol not in self.supported_tokens:
            raise ValidationError(f"Unsupported token: {token}")

        try:
            parsed_network = Network(str(network).lower())
        except ValueError:
            raise ValidationError('Network must be either "base" or "solana"')

        return parsed_amount, symbol, parsed_network

    async def request_settlement(
        self,
        order_id: Optional[str],
        customer_wallet: Optional[str],
        amount: Any,
        token: Optional[str],
        network: Optional[str],
        business_id: Optional[str] = None,
        customer_email: Optional[str] = None,
    ) -> SettlementReceipt:
        """Record a settlement and submit its transfer.

        Raises:
            ValidationError: missing or malformed fields, nothing generated
            ExecutorMisconfiguredError: executor unusable, nothing recorded
            TransferFailedError: transfer failed, settlement marked failed
        """
        parsed_amount, symbol, parsed_network = self._parse_request(
            order_id, customer_wallet, amount, token, network
        )

        if not self.executor.is_configured():
            raise ExecutorMisconfiguredError("Settlement transfer service is not configured")

        settlement_id = generate_settlement_id()
        async with get_db(self.session_factory) as session:
            await LedgerRepository(session).create_settlement(
                settlement_id=settlement_id,
                order_id=str(order_id),
                customer_wallet=str(customer_wallet),
                amount=parsed_amount,
                token=symbol,
                network=parsed_network,
                business_id=business_id,
                customer_email=customer_email,
                estimated_completion=utcnow() + ESTIMATED_COMPLETION,
            )

        logger.info(
            f"Settlement {settlement_id} initiated for order {order_id}: "
            f"{parsed_amount} {symbol} on {parsed_network.value} to {customer_wallet}"
        )

        try:
            receipt = await asyncio.wait_for(
                self.executor.execute(
                    self.source_user_id,
                    parsed_network.value,
                    str(customer_wallet),
                    parsed_amount,
                    settlement_id,
                ),
                timeout=self.transfer_timeout,
            )
        except (asyncio.TimeoutError, TransferTimeout):
            logger.warning(f"Settlement {settlement_id} transfer timed out locally; left initiated")
            return SettlementReceipt(
                settlement_id=settlement_id,
                status=SettlementStatus.INITIATED,
                transaction_hash=None,
                message="Settlement initiated, awaiting transfer confirmation",
            )
        except Exception as e:
            reason = str(e) or "Transfer execution failed"
            logger.error(f"Settlement {settlement_id} transfer failed: {reason}")
            async with get_db(self.session_factory) as session:
                await LedgerRepository(session).advance_settlement(
                    settlement_id, SettlementStatus.FAILED, failure_reason=reason
                )
            raise TransferFailedError(reason, settlement_id=settlement_id)

        async with get_db(self.session_factory) as session:
            await LedgerRepository(session).attach_settlement_hash(settlement_id, receipt.tx_hash)

        logger.info(f"Settlement {settlement_id} transfer submitted: {receipt.tx_hash}")
        return SettlementReceipt(
            settlement_id=settlement_id,
            status=SettlementStatus.INITIATED,
            transaction_hash=receipt.tx_hash,
        )

    async def get_settlement_status(self, settlement_id: Optional[str]) -> Settlement:
        """Read a settlement. Never changes it."""
        if not settlement_id:
            raise ValidationError("Settlement ID is required")

        async with get_db(self.session_factory) as session:
            settlement = await LedgerRepository(session).get_settlement(settlement_id)

        if settlement is None:
            raise NotFoundError(f"Settlement {settlement_id} not found")
        return settlement

    async def handle_settlement_webhook(self, update: SettlementUpdate) -> WebhookOutcome:
        """Apply a status notification if it represents forward progress.

        Duplicate and out-of-order deliveries leave the status unchanged;
        a same-status delivery may still add confirmations or a block number.
        """
        if not update.settlement_id:
            raise ValidationError("Settlement ID is required")
        try:
            status = SettlementStatus(update.status)
        except ValueError:
            raise ValidationError(f"Unknown settlement status: {update.status}")

        async with get_db(self.session_factory) as session:
            repo = LedgerRepository(session)
            if await repo.get_settlement(update.settlement_id) is None:
                raise NotFoundError(f"Settlement {update.settlement_id} not found")

            applied = await repo.advance_settlement(
                update.settlement_id,
                status,
                transaction_hash=update.transaction_hash,
                confirmations=update.confirmations,
                block_number=update.block_number,
                failure_reason=update.failure_reason,
            )
            if not applied:
                await repo.enrich_settlement(
                    update.settlement_id,
                    status,
                    transaction_hash=update.transaction_hash,
                    confirmations=update.confirmations,
                    block_number=update.block_number,
                )

            current = await repo.get_settlement(update.settlement_id)

        if applied:
            logger.info(f"Settlement {update.settlement_id} advanced to {status.value}")
        else:
            logger.info(
                f"Settlement {update.settlement_id} webhook '{status.value}' ignored; "
                f"current status is {current.status}"
            )

        return WebhookOutcome(
            settlement_id=update.settlement_id,
            status=SettlementStatus(current.status),
            applied=applied,
        )
