"""Factory for the configured transfer executor."""

from typing import Optional

from liquidesk.config import Settings, get_settings
from liquidesk.transfer.base import TransferExecutor
from liquidesk.transfer.dryrun import SimulatedTransferExecutor
from liquidesk.transfer.relay import GaslessRelayExecutor
from liquidesk.wallets.base import WalletService
from liquidesk.wallets.dryrun import DryRunWalletService


def create_transfer_executor(
    settings: Optional[Settings] = None,
    wallet_service: Optional[WalletService] = None,
) -> TransferExecutor:
    """Create the transfer executor selected by settings.

    In dry-run mode the simulated executor moves balances on the simulated
    wallet service so post-transfer refreshes see the debit.
    """
    settings = settings or get_settings()

    if settings.dry_run:
        dryrun_wallets = (
            wallet_service if isinstance(wallet_service, DryRunWalletService) else None
        )
        return SimulatedTransferExecutor(wallet_service=dryrun_wallets)

    return GaslessRelayExecutor(
        base_url=settings.gasless_relay_url,
        api_key=settings.gasless_relay_api_key,
        timeout=settings.transfer_timeout_seconds,
    )
