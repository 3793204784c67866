"""Pytest configuration and fixtures."""

import asyncio
import os
from decimal import Decimal
from typing import AsyncGenerator, Optional

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["DEBUG"] = "false"
os.environ["DRY_RUN"] = "true"
os.environ["SETTLEMENT_API_KEY"] = ""
os.environ["SETTLEMENT_WEBHOOK_SECRET"] = ""

from liquidesk.banking.dryrun import DryRunBankVerifier
from liquidesk.config import get_settings
from liquidesk.container import Services, build_services
from liquidesk.ledger.models import Base
from liquidesk.ledger.repository import LedgerRepository
from liquidesk.transfer.base import (
    TransferExecutor,
    TransferReceipt,
    TransferState,
    TransferStatus,
    explorer_url,
)
from liquidesk.utils.locks import clear_user_locks
from liquidesk.wallets.base import WalletBalances
from liquidesk.wallets.dryrun import DryRunWalletService

BANK_ACCOUNT = {
    "account_number": "0123456789",
    "bank_code": "000013",
    "bank_name": "Guaranty Trust Bank",
    "account_name": "Ada Obi",
}

BASE_DESTINATION = "0x1111111111111111111111111111111111111111"


def mock_http(monkeypatch, handler):
    """Route every httpx.AsyncClient through a mock transport."""
    real_client = httpx.AsyncClient

    def client_factory(*args, **kwargs):
        kwargs["transport"] = httpx.MockTransport(handler)
        return real_client(*args, **kwargs)

    monkeypatch.setattr(httpx, "AsyncClient", client_factory)


class FlakyWalletService(DryRunWalletService):
    """Dry-run wallets whose per-network reads can be made to fail."""

    def __init__(self):
        super().__init__()
        self.failing: set[str] = set()
        self.raise_on_read = False

    async def get_wallet_balances(self, user_id: str) -> WalletBalances:
        if self.raise_on_read:
            raise RuntimeError("RPC unreachable")
        balances = await super().get_wallet_balances(user_id)
        return WalletBalances(
            base=None if "base" in self.failing else balances.base,
            solana=None if "solana" in self.failing else balances.solana,
        )


class ScriptedExecutor(TransferExecutor):
    """Transfer executor whose outcome is set by the test.

    By default every transfer succeeds with hash 0xabc and moves the
    simulated wallet balance.
    """

    def __init__(self, wallet_service: Optional[DryRunWalletService] = None):
        self.wallet_service = wallet_service
        self.configured = True
        self.error: Optional[Exception] = None
        self.delay: float = 0
        self.tx_hash = "0xabc"
        self.calls: list[dict] = []
        self.before_execute = None
        self.statuses: dict[str, TransferStatus] = {}

    def is_configured(self) -> bool:
        return self.configured

    async def execute(self, user_id, network, destination, amount, transaction_id):
        self.calls.append(
            {
                "user_id": user_id,
                "network": network,
                "destination": destination,
                "amount": amount,
                "transaction_id": transaction_id,
            }
        )
        if self.before_execute is not None:
            await self.before_execute(transaction_id)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if self.wallet_service is not None:
            self.wallet_service.debit(user_id, network, Decimal(amount))
        return TransferReceipt(
            tx_hash=self.tx_hash,
            explorer_url=explorer_url(network, self.tx_hash),
            gas_fee_paid_by="platform",
        )

    async def get_status(self, transaction_id: str) -> TransferStatus:
        return self.statuses.get(transaction_id, TransferStatus(state=TransferState.UNKNOWN))


@pytest.fixture(autouse=True)
def reset_locks():
    """Each test starts with an empty lock registry."""
    clear_user_locks()
    yield
    clear_user_locks()


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """Create a file-backed database so concurrent sessions share data."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for testing."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def ledger_repo(db_session: AsyncSession) -> LedgerRepository:
    """Create ledger repository for testing."""
    return LedgerRepository(db_session)


@pytest.fixture
def wallet_service() -> FlakyWalletService:
    return FlakyWalletService()


@pytest.fixture
def executor(wallet_service) -> ScriptedExecutor:
    return ScriptedExecutor(wallet_service)


@pytest.fixture
def services(session_factory, wallet_service, executor) -> Services:
    return build_services(
        settings=get_settings(),
        session_factory=session_factory,
        wallet_service=wallet_service,
        bank_verifier=DryRunBankVerifier(),
        executor=executor,
    )


@pytest.fixture
def open_position(services, wallet_service):
    """Factory: create a position for a user and land deposits on chain."""

    async def _open(
        user_id: str = "user-1",
        base: Decimal = Decimal("0"),
        solana: Decimal = Decimal("0"),
    ):
        snapshot = await services.positions.create_position(user_id, dict(BANK_ACCOUNT))
        if base:
            wallet_service.credit(user_id, "base", Decimal(base))
        if solana:
            wallet_service.credit(user_id, "solana", Decimal(solana))
        return snapshot

    return _open


@pytest_asyncio.fixture
async def client(services) -> AsyncGenerator[AsyncClient, None]:
    """Async test client. Lifespan does not run, so services are attached here."""
    from liquidesk.api.app import create_app

    app = create_app()
    app.state.services = services

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
