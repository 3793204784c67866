"""Dry-run wallet service for development and testing (no real chain)."""

import hashlib
import logging
from decimal import Decimal
from typing import Optional

from liquidesk.wallets.base import UserWallets, WalletBalances, WalletService

logger = logging.getLogger(__name__)


class DryRunWalletService(WalletService):
    """Simulated custody with deterministic addresses and in-memory balances."""

    def __init__(self):
        self._wallets: dict[str, UserWallets] = {}
        self._balances: dict[str, dict[str, Decimal]] = {}

    @property
    def name(self) -> str:
        return "dryrun"

    async def create_user_wallets(self, user_id: str) -> UserWallets:
        """Generate deterministic fake addresses for a user."""
        if user_id not in self._wallets:
            digest = hashlib.sha256(f"liquidesk:{user_id}".encode()).hexdigest()
            self._wallets[user_id] = UserWallets(
                base_address=f"0x{digest[:40]}",
                solana_address=f"sim{digest[:41]}",
            )
            self._balances.setdefault(
                user_id, {"base": Decimal("0"), "solana": Decimal("0")}
            )
            logger.info(f"[SIMULATED] Wallets created for user {user_id}")
        return self._wallets[user_id]

    async def get_user_wallets(self, user_id: str) -> Optional[UserWallets]:
        return self._wallets.get(user_id)

    async def get_wallet_balances(self, user_id: str) -> WalletBalances:
        balances = self._balances.get(user_id)
        if balances is None:
            return WalletBalances(base=Decimal("0"), solana=Decimal("0"))
        return WalletBalances(base=balances["base"], solana=balances["solana"])

    def credit(self, user_id: str, network: str, amount: Decimal) -> None:
        """Simulate a deposit landing on chain."""
        balances = self._balances.setdefault(
            user_id, {"base": Decimal("0"), "solana": Decimal("0")}
        )
        balances[network] += amount

    def debit(self, user_id: str, network: str, amount: Decimal) -> None:
        """Simulate a transfer leaving the wallet."""
        balances = self._balances.setdefault(
            user_id, {"base": Decimal("0"), "solana": Decimal("0")}
        )
        if balances[network] < amount:
            raise ValueError(f"Insufficient simulated {network} balance")
        balances[network] -= amount
