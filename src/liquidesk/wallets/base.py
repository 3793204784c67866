"""Wallet service base interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional


@dataclass
class UserWallets:
    """Custodial funding addresses for a user."""

    base_address: str
    solana_address: str


@dataclass
class WalletBalances:
    """Live USDC balances. None means that network could not be read."""

    base: Optional[Decimal] = None
    solana: Optional[Decimal] = None

    @property
    def complete(self) -> bool:
        return self.base is not None and self.solana is not None

    @property
    def empty(self) -> bool:
        return self.base is None and self.solana is None

    @property
    def total(self) -> Decimal:
        return (self.base or Decimal("0")) + (self.solana or Decimal("0"))

    def as_dict(self) -> dict:
        return {
            "base_usdc": str(self.base) if self.base is not None else None,
            "solana_usdc": str(self.solana) if self.solana is not None else None,
            "total_usdc": str(self.total),
        }


class WalletServiceError(Exception):
    """Raised when the wallet service cannot provision or look up wallets."""

    pass


class WalletService(ABC):
    """Abstract base class for the custodial wallet service."""

    @abstractmethod
    async def create_user_wallets(self, user_id: str) -> UserWallets:
        """Provision (or return existing) Base and Solana wallets for a user.

        Raises:
            WalletServiceError: if provisioning failed
        """
        raise NotImplementedError()

    @abstractmethod
    async def get_user_wallets(self, user_id: str) -> Optional[UserWallets]:
        """Get a user's wallets, None if none were provisioned."""
        raise NotImplementedError()

    @abstractmethod
    async def get_wallet_balances(self, user_id: str) -> WalletBalances:
        """Get live USDC balances for a user's wallets.

        Never raises for chain errors; unreadable networks come back as None.
        """
        raise NotImplementedError()

    @property
    @abstractmethod
    def name(self) -> str:
        """Service name."""
        raise NotImplementedError()
