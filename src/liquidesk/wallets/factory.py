"""Factory for the configured wallet service."""

from typing import Optional

from liquidesk.config import Settings, get_settings
from liquidesk.wallets.base import WalletService
from liquidesk.wallets.custody import CustodyWalletService
from liquidesk.wallets.dryrun import DryRunWalletService


def create_wallet_service(settings: Optional[Settings] = None) -> WalletService:
    """Create the wallet service selected by settings.

    - dry_run, or no custody URL configured: simulated wallets
    - otherwise: custody API + on-chain balances
    """
    settings = settings or get_settings()

    if settings.dry_run or not settings.wallet_service_url:
        return DryRunWalletService()

    return CustodyWalletService(
        base_url=settings.wallet_service_url,
        api_key=settings.wallet_service_api_key,
        base_rpc_url=settings.base_rpc_url,
        solana_rpc_url=settings.solana_rpc_url,
        base_usdc_contract=settings.base_usdc_contract,
        solana_usdc_mint=settings.solana_usdc_mint,
    )
