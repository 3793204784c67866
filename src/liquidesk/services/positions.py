"""Liquidity position management: onboarding, reads, bank details, history."""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from liquidesk.banking.base import Bank, BankProviderError, BankVerifier, ResolvedAccount
from liquidesk.errors import (
    AlreadyExistsError,
    NotFoundError,
    UpstreamUnavailableError,
    ValidationError,
)
from liquidesk.ledger.database import get_db
from liquidesk.ledger.models import LiquidityPosition, LiquidityType, Transaction, utcnow
from liquidesk.ledger.repository import LedgerRepository
from liquidesk.services.balance_ledger import BalanceLedger
from liquidesk.wallets.base import UserWallets, WalletBalances, WalletService, WalletServiceError

logger = logging.getLogger(__name__)

NETWORK_INFO = {
    "base": {
        "network": "Base Mainnet",
        "instructions": "Send any amount of USDC on Base network to the address above.",
    },
    "solana": {
        "network": "Solana Mainnet",
        "instructions": "Send any amount of USDC on Solana network to the address above.",
    },
}


@dataclass
class PositionSnapshot:
    """A position as returned to its owner."""

    position: LiquidityPosition
    wallets: Optional[UserWallets]
    live_balances: Optional[WalletBalances] = None
    last_updated: datetime = field(default_factory=utcnow)


@dataclass
class TransactionPage:
    """One page of transaction history."""

    transactions: list[Transaction]
    current_page: int
    limit: int
    total_transactions: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_transactions / self.limit) if self.limit else 0

    @property
    def has_next_page(self) -> bool:
        return self.current_page < self.total_pages

    @property
    def has_prev_page(self) -> bool:
        return self.current_page > 1


class PositionService:
    """Everything a user does with their position except withdrawing."""

    def __init__(
        self,
        ledger: BalanceLedger,
        wallet_service: WalletService,
        bank_verifier: BankVerifier,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        base_usdc_contract: str = "",
        solana_usdc_mint: str = "",
        min_deposit_amount: Decimal = Decimal("0.01"),
    ):
        self.ledger = ledger
        self.wallet_service = wallet_service
        self.bank_verifier = bank_verifier
        self.session_factory = session_factory
        self.token_addresses = {"base": base_usdc_contract, "solana": solana_usdc_mint}
        self.min_deposit_amount = min_deposit_amount

    async def create_position(
        self,
        user_id: str,
        bank_account: dict[str, str],
        liquidity_type: LiquidityType = LiquidityType.ONRAMP,
    ) -> PositionSnapshot:
        """Onboard a user: provision wallets and open an active position."""
        logger.info(f"Creating liquidity position for user {user_id}")

        async with get_db(self.session_factory) as session:
            if await LedgerRepository(session).get_active_position(user_id) is not None:
                raise AlreadyExistsError("User already has an active liquidity position")

        try:
            wallets = await self.wallet_service.create_user_wallets(user_id)
        except WalletServiceError as e:
            logger.error(f"Wallet creation failed for user {user_id}: {e}")
            raise UpstreamUnavailableError(f"Failed to create wallets: {e}")

        try:
            async with get_db(self.session_factory) as session:
                repo = LedgerRepository(session)
                wallet = await repo.get_or_create_wallet(
                    user_id, wallets.base_address, wallets.solana_address
                )
                position = await repo.create_position(
                    user_id=user_id,
                    wallet_id=wallet.id,
                    bank_account=bank_account,
                    liquidity_type=liquidity_type,
                )
        except IntegrityError:
            # Lost a race with a concurrent create for the same user
            raise AlreadyExistsError("User already has an active liquidity position")

        logger.info(f"Liquidity position {position.id} created for user {user_id}")
        return PositionSnapshot(position=position, wallets=wallets)

    async def get_position(self, user_id: str) -> PositionSnapshot:
        """Refresh and return the active position.

        A failed refresh degrades to the cached balances.
        """
        async with get_db(self.session_factory) as session:
            if await LedgerRepository(session).get_active_position(user_id) is None:
                raise NotFoundError("No active liquidity position found")

        refresh = await self.ledger.refresh(user_id)

        async with get_db(self.session_factory) as session:
            position = await LedgerRepository(session).get_active_position(user_id)
        if position is None:
            raise NotFoundError("No active liquidity position found")

        wallets = None
        if position.wallet is not None:
            wallets = UserWallets(
                base_address=position.wallet.base_address,
                solana_address=position.wallet.solana_address,
            )

        return PositionSnapshot(
            position=position,
            wallets=wallets,
            live_balances=refresh.balances if refresh.success else None,
        )

    async def get_wallets(self, user_id: str) -> dict:
        """Funding addresses with live balances per network."""
        try:
            wallets = await self.wallet_service.get_user_wallets(user_id)
        except WalletServiceError as e:
            raise UpstreamUnavailableError(str(e))
        if wallets is None:
            raise NotFoundError("No wallets found for user")

        try:
            balances = await self.wallet_service.get_wallet_balances(user_id)
        except Exception as e:
            logger.warning(f"Live balance fetch failed for user {user_id}: {e}")
            balances = WalletBalances()

        addresses = {"base": wallets.base_address, "solana": wallets.solana_address}
        current = {"base": balances.base, "solana": balances.solana}

        networks = {}
        for name, info in NETWORK_INFO.items():
            networks[name] = {
                "address": addresses[name],
                "network": info["network"],
                "token": "USDC",
                "token_address": self.token_addresses[name],
                "current_balance": current[name] if current[name] is not None else Decimal("0"),
                "minimum_deposit": self.min_deposit_amount,
                "instructions": info["instructions"],
            }

        return {
            "networks": networks,
            "total_balance": balances.total,
            "last_updated": utcnow(),
        }

    async def update_bank_account(
        self, user_id: str, bank_account: dict[str, str]
    ) -> LiquidityPosition:
        """Replace the bank account on the active position."""
        async with get_db(self.session_factory) as session:
            repo = LedgerRepository(session)
            position = await repo.get_active_position(user_id)
            if position is None:
                raise NotFoundError("No active liquidity position found")
            await repo.update_bank_account(position, bank_account)

        logger.info(f"Bank account updated for user {user_id}")
        return position

    async def refresh_balances(self, user_id: str) -> WalletBalances:
        """Force a refresh; failure is an error on this path."""
        logger.info(f"Manually refreshing balances for user {user_id}")
        refresh = await self.ledger.refresh(user_id)
        if not refresh.success:
            raise UpstreamUnavailableError("Failed to refresh balances")
        return refresh.balances

    async def get_transactions(
        self,
        user_id: str,
        page: int = 1,
        limit: int = 20,
        tx_type: Optional[str] = None,
        network: Optional[str] = None,
        status: Optional[str] = None,
    ) -> TransactionPage:
        """Paginated transaction history, newest first."""
        page = max(page, 1)
        limit = max(limit, 1)
        async with get_db(self.session_factory) as session:
            repo = LedgerRepository(session)
            transactions = await repo.get_user_transactions(
                user_id,
                limit=limit,
                offset=(page - 1) * limit,
                tx_type=tx_type,
                network=network,
                status=status,
            )
            total = await repo.count_user_transactions(
                user_id, tx_type=tx_type, network=network, status=status
            )

        return TransactionPage(
            transactions=transactions,
            current_page=page,
            limit=limit,
            total_transactions=total,
        )

    async def list_banks(self) -> list[Bank]:
        try:
            return await self.bank_verifier.list_banks()
        except BankProviderError as e:
            raise UpstreamUnavailableError(str(e) or "Failed to fetch banks")

    async def verify_account(self, account_number: str, bank_code: str) -> ResolvedAccount:
        """Check format locally, then resolve the account with the provider."""
        if not self.bank_verifier.is_valid_account_number(account_number):
            raise ValidationError("Invalid account number format. Must be exactly 10 digits.")
        if not self.bank_verifier.is_valid_bank_code(bank_code):
            raise ValidationError("Invalid bank code format. Must be exactly 6 digits.")

        try:
            account = await self.bank_verifier.resolve_account(account_number, bank_code)
        except BankProviderError as e:
            raise UpstreamUnavailableError(str(e) or "Failed to verify account")

        if account is None:
            raise ValidationError(
                "Account verification failed. Please check account number and bank code."
            )
        return account
