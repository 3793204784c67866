"""Tests for withdrawal orchestration."""

import asyncio
from decimal import Decimal

import httpx
import pytest
from sqlalchemy import func, select

from liquidesk.errors import (
    ExecutorMisconfiguredError,
    InsufficientFundsError,
    NotFoundError,
    TransferFailedError,
    UpstreamUnavailableError,
    ValidationError,
)
from liquidesk.ledger.database import get_db
from liquidesk.ledger.models import Network, Transaction, TransactionStatus
from liquidesk.ledger.repository import LedgerRepository
from liquidesk.services.withdrawal import WithdrawalCommand, WithdrawalOrchestrator
from liquidesk.transfer.base import TransferError, TransferTimeout
from liquidesk.transfer.relay import GaslessRelayExecutor

from conftest import BASE_DESTINATION, mock_http


def command(amount, network=Network.BASE, user_id="user-1", destination=BASE_DESTINATION):
    return WithdrawalCommand(
        user_id=user_id,
        network=network,
        amount=Decimal(str(amount)),
        destination_address=destination,
    )


async def count_transactions(session_factory) -> int:
    async with get_db(session_factory) as session:
        result = await session.execute(select(func.count(Transaction.id)))
        return result.scalar_one()


async def load_transaction(session_factory, transaction_id):
    async with get_db(session_factory) as session:
        return await LedgerRepository(session).get_transaction_by_id(transaction_id)


async def load_position(session_factory, user_id="user-1"):
    async with get_db(session_factory) as session:
        return await LedgerRepository(session).get_active_position(user_id)


class TestWithdrawalValidation:
    """Malformed commands are rejected before anything is recorded."""

    async def test_amount_below_minimum(self, services, open_position, session_factory):
        await open_position(base=Decimal("100"))

        with pytest.raises(ValidationError):
            await services.withdrawals.withdraw(command("0.1"))

        assert await count_transactions(session_factory) == 0

    async def test_short_destination(self, services, open_position):
        await open_position(base=Decimal("100"))

        with pytest.raises(ValidationError, match="destination"):
            await services.withdrawals.withdraw(command("5", destination="0x123"))

    async def test_unknown_network(self, services, open_position):
        await open_position(base=Decimal("100"))

        with pytest.raises(ValidationError, match="Network"):
            await services.withdrawals.withdraw(command("5", network="ethereum"))

    async def test_no_active_position(self, services, session_factory):
        with pytest.raises(NotFoundError):
            await services.withdrawals.withdraw(command("5", user_id="nobody"))

        assert await count_transactions(session_factory) == 0


class TestWithdrawalFunds:
    """Sufficiency is checked against freshly refreshed balances."""

    async def test_insufficient_funds(self, services, open_position, executor, session_factory):
        """Base balance 10, request 15: refused with both figures, nothing recorded."""
        await open_position(base=Decimal("10"))

        with pytest.raises(InsufficientFundsError) as exc_info:
            await services.withdrawals.withdraw(command("15"))

        err = exc_info.value
        assert err.status_code == 400
        assert err.available == Decimal("10")
        assert err.requested == Decimal("15")
        assert "Available: 10 USDC" in err.message
        assert "Requested: 15 USDC" in err.message
        assert executor.calls == []
        assert await count_transactions(session_factory) == 0

    async def test_balance_checked_per_network(self, services, open_position):
        """Funds on Solana do not cover a Base withdrawal."""
        await open_position(base=Decimal("1"), solana=Decimal("50"))

        with pytest.raises(InsufficientFundsError) as exc_info:
            await services.withdrawals.withdraw(command("20", network=Network.BASE))

        assert exc_info.value.network == "base"

    async def test_deposit_seen_by_refresh(self, services, open_position):
        """The stored balance is stale until the refresh inside withdraw."""
        await open_position()
        services.wallet_service.credit("user-1", "base", Decimal("30"))

        result = await services.withdrawals.withdraw(command("25"))

        assert result.success

    async def test_partial_refresh_refuses(
        self, services, open_position, wallet_service, session_factory
    ):
        await open_position(base=Decimal("100"))
        wallet_service.failing = {"solana"}

        with pytest.raises(UpstreamUnavailableError):
            await services.withdrawals.withdraw(command("10"))

        assert await count_transactions(session_factory) == 0

    async def test_failed_refresh_refuses(
        self, services, open_position, wallet_service, session_factory
    ):
        await open_position(base=Decimal("100"))
        wallet_service.raise_on_read = True

        with pytest.raises(UpstreamUnavailableError):
            await services.withdrawals.withdraw(command("10"))

        assert await count_transactions(session_factory) == 0


class TestWithdrawalExecution:
    """Record-then-execute and terminal state transitions."""

    async def test_success(self, services, open_position, session_factory):
        await open_position(base=Decimal("100"))

        result = await services.withdrawals.withdraw(command("40"))

        assert result.status == TransactionStatus.CONFIRMED
        assert result.tx_hash == "0xabc"
        assert result.gas_fee_paid_by == "platform"
        assert result.explorer_url == "https://basescan.org/tx/0xabc"
        assert result.completed_at is not None

        tx = await load_transaction(session_factory, result.transaction_id)
        assert tx.status == TransactionStatus.CONFIRMED.value
        assert tx.tx_hash == "0xabc"
        assert tx.completed_at is not None

        position = await load_position(session_factory)
        assert position.base_balance == Decimal("60")

    async def test_record_exists_before_transfer(
        self, services, open_position, executor, session_factory
    ):
        await open_position(base=Decimal("100"))
        seen = {}

        async def inspect(transaction_id):
            tx = await load_transaction(session_factory, int(transaction_id))
            seen["status"] = tx.status if tx else None
            seen["amount"] = tx.amount if tx else None

        executor.before_execute = inspect

        await services.withdrawals.withdraw(command("5"))

        assert seen["status"] == TransactionStatus.PENDING.value
        assert seen["amount"] == Decimal("5")

    async def test_transfer_failure_marks_failed(
        self, services, open_position, executor, session_factory
    ):
        await open_position(base=Decimal("100"))
        executor.error = TransferError("relay rejected the transfer")

        with pytest.raises(TransferFailedError) as exc_info:
            await services.withdrawals.withdraw(command("40"))

        err = exc_info.value
        assert err.status_code == 500
        assert err.details["error"] == "relay rejected the transfer"
        assert err.details["data"]["status"] == "failed"

        tx = await load_transaction(session_factory, err.transaction_id)
        assert tx.status == TransactionStatus.FAILED.value
        assert tx.failure_reason == "relay rejected the transfer"
        assert tx.completed_at is not None

        position = await load_position(session_factory)
        assert position.base_balance == Decimal("100")

    async def test_failure_is_not_retried(self, services, open_position, executor):
        await open_position(base=Decimal("100"))
        executor.error = TransferError("boom")

        with pytest.raises(TransferFailedError):
            await services.withdrawals.withdraw(command("40"))

        assert len(executor.calls) == 1

    async def test_misconfigured_executor_records_nothing(
        self, services, open_position, executor, session_factory
    ):
        await open_position(base=Decimal("100"))
        executor.configured = False

        with pytest.raises(ExecutorMisconfiguredError):
            await services.withdrawals.withdraw(command("10"))

        assert executor.calls == []
        assert await count_transactions(session_factory) == 0

    async def test_local_timeout_leaves_pending(
        self, services, open_position, executor, session_factory
    ):
        await open_position(base=Decimal("100"))
        executor.delay = 1.0
        orchestrator = WithdrawalOrchestrator(
            ledger=services.ledger,
            executor=executor,
            session_factory=session_factory,
            transfer_timeout=0.05,
        )

        result = await orchestrator.withdraw(command("10"))

        assert result.status == TransactionStatus.PENDING
        assert result.tx_hash is None
        tx = await load_transaction(session_factory, result.transaction_id)
        assert tx.status == TransactionStatus.PENDING.value

    async def test_executor_timeout_leaves_pending(
        self, services, open_position, executor, session_factory
    ):
        await open_position(base=Decimal("100"))
        executor.error = TransferTimeout("relay did not answer")

        result = await services.withdrawals.withdraw(command("10"))

        assert result.status == TransactionStatus.PENDING
        tx = await load_transaction(session_factory, result.transaction_id)
        assert tx.status == TransactionStatus.PENDING.value

    async def test_relay_connection_lost_leaves_pending(
        self, services, open_position, session_factory, monkeypatch
    ):
        """A dropped connection after the POST is not proof the transfer failed."""
        await open_position(base=Decimal("100"))

        def handler(request):
            raise httpx.RemoteProtocolError("peer closed connection")

        mock_http(monkeypatch, handler)
        orchestrator = WithdrawalOrchestrator(
            ledger=services.ledger,
            executor=GaslessRelayExecutor("https://relay.test", "key"),
            session_factory=session_factory,
        )

        result = await orchestrator.withdraw(command("10"))

        assert result.status == TransactionStatus.PENDING
        tx = await load_transaction(session_factory, result.transaction_id)
        assert tx.status == TransactionStatus.PENDING.value
        assert tx.failure_reason is None

    async def test_relay_gateway_error_leaves_pending(
        self, services, open_position, session_factory, monkeypatch
    ):
        await open_position(base=Decimal("100"))
        mock_http(monkeypatch, lambda request: httpx.Response(502))
        orchestrator = WithdrawalOrchestrator(
            ledger=services.ledger,
            executor=GaslessRelayExecutor("https://relay.test", "key"),
            session_factory=session_factory,
        )

        result = await orchestrator.withdraw(command("10"))

        tx = await load_transaction(session_factory, result.transaction_id)
        assert tx.status == TransactionStatus.PENDING.value

    async def test_relay_rejection_marks_failed(
        self, services, open_position, session_factory, monkeypatch
    ):
        await open_position(base=Decimal("100"))
        mock_http(
            monkeypatch,
            lambda request: httpx.Response(422, json={"error": "destination blocked"}),
        )
        orchestrator = WithdrawalOrchestrator(
            ledger=services.ledger,
            executor=GaslessRelayExecutor("https://relay.test", "key"),
            session_factory=session_factory,
        )

        with pytest.raises(TransferFailedError) as exc_info:
            await orchestrator.withdraw(command("10"))

        tx = await load_transaction(session_factory, exc_info.value.transaction_id)
        assert tx.status == TransactionStatus.FAILED.value
        assert tx.failure_reason == "destination blocked"

    async def test_transaction_id_is_idempotency_key(self, services, open_position, executor):
        await open_position(base=Decimal("100"))

        result = await services.withdrawals.withdraw(command("10"))

        assert executor.calls[0]["transaction_id"] == str(result.transaction_id)


class TestWithdrawalConcurrency:
    """Two withdrawals for the same user cannot spend the same balance."""

    async def test_concurrent_withdrawals_do_not_overdraw(
        self, services, open_position, executor, session_factory
    ):
        await open_position(base=Decimal("100"))
        executor.delay = 0.1

        results = await asyncio.gather(
            services.withdrawals.withdraw(command("60")),
            services.withdrawals.withdraw(command("60")),
            return_exceptions=True,
        )

        confirmed = [r for r in results if not isinstance(r, Exception)]
        refused = [r for r in results if isinstance(r, InsufficientFundsError)]
        assert len(confirmed) == 1
        assert len(refused) == 1
        assert refused[0].available == Decimal("40")
        assert await count_transactions(session_factory) == 1

    async def test_pending_withdrawal_reserves_funds(
        self, services, open_position, executor, session_factory
    ):
        """A withdrawal left pending still counts against the balance."""
        await open_position(base=Decimal("100"))
        executor.error = TransferTimeout("slow relay")
        await services.withdrawals.withdraw(command("70"))

        executor.error = None
        with pytest.raises(InsufficientFundsError) as exc_info:
            await services.withdrawals.withdraw(command("50"))

        assert exc_info.value.available == Decimal("30")

    async def test_different_users_do_not_block(self, services, open_position, executor):
        await open_position("user-1", base=Decimal("50"))
        await open_position("user-2", base=Decimal("50"))
        executor.delay = 0.05

        first, second = await asyncio.gather(
            services.withdrawals.withdraw(command("20", user_id="user-1")),
            services.withdrawals.withdraw(command("20", user_id="user-2")),
        )

        assert first.success and second.success
