"""Custodial wallet provisioning and live balances."""

from liquidesk.wallets.base import (
    UserWallets,
    WalletBalances,
    WalletService,
    WalletServiceError,
)
from liquidesk.wallets.factory import create_wallet_service

__all__ = [
    "UserWallets",
    "WalletBalances",
    "WalletService",
    "WalletServiceError",
    "create_wallet_service",
]
