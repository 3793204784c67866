"""Collaborator wiring.

Collaborators are resolved once at process startup and handed to the
orchestrators by reference.
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from liquidesk.banking import BankVerifier, create_bank_verifier
from liquidesk.config import Settings, get_settings
from liquidesk.services.balance_ledger import BalanceLedger
from liquidesk.services.positions import PositionService
from liquidesk.services.reconciler import PendingReconciler
from liquidesk.services.settlement import SettlementOrchestrator
from liquidesk.services.withdrawal import WithdrawalOrchestrator
from liquidesk.transfer import TransferExecutor, create_transfer_executor
from liquidesk.wallets import WalletService, create_wallet_service


@dataclass
class Services:
    """Everything the API needs, built once."""

    settings: Settings
    wallet_service: WalletService
    bank_verifier: BankVerifier
    executor: TransferExecutor
    ledger: BalanceLedger
    positions: PositionService
    withdrawals: WithdrawalOrchestrator
    settlements: SettlementOrchestrator
    reconciler: PendingReconciler


def build_services(
    settings: Optional[Settings] = None,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    wallet_service: Optional[WalletService] = None,
    bank_verifier: Optional[BankVerifier] = None,
    executor: Optional[TransferExecutor] = None,
) -> Services:
    """Build the service graph. Any collaborator can be substituted."""
    settings = settings or get_settings()
    wallet_service = wallet_service or create_wallet_service(settings)
    bank_verifier = bank_verifier or create_bank_verifier(settings)
    executor = executor or create_transfer_executor(settings, wallet_service)

    ledger = BalanceLedger(wallet_service, session_factory=session_factory)

    return Services(
        settings=settings,
        wallet_service=wallet_service,
        bank_verifier=bank_verifier,
        executor=executor,
        ledger=ledger,
        positions=PositionService(
            ledger=ledger,
            wallet_service=wallet_service,
            bank_verifier=bank_verifier,
            session_factory=session_factory,
            base_usdc_contract=settings.base_usdc_contract,
            solana_usdc_mint=settings.solana_usdc_mint,
            min_deposit_amount=settings.min_deposit_amount,
        ),
        withdrawals=WithdrawalOrchestrator(
            ledger=ledger,
            executor=executor,
            session_factory=session_factory,
            min_amount=settings.min_withdrawal_amount,
            transfer_timeout=settings.transfer_timeout_seconds,
            lock_timeout=settings.withdrawal_lock_timeout_seconds,
        ),
        settlements=SettlementOrchestrator(
            executor=executor,
            session_factory=session_factory,
            source_user_id=settings.settlement_source_user_id,
            supported_tokens=settings.settlement_tokens,
            transfer_timeout=settings.transfer_timeout_seconds,
        ),
        reconciler=PendingReconciler(
            executor=executor,
            ledger=ledger,
            session_factory=session_factory,
        ),
    )
