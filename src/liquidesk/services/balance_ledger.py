"""Balance ledger adapter.

Pulls authoritative USDC balances from the wallet service and writes them
onto the user's active liquidity position.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from liquidesk.ledger.database import get_db
from liquidesk.ledger.repository import LedgerRepository
from liquidesk.wallets.base import WalletBalances, WalletService

logger = logging.getLogger(__name__)


@dataclass
class RefreshResult:
    """Outcome of a balance refresh."""

    success: bool
    partial: bool = False
    balances: Optional[WalletBalances] = None
    message: str = ""

    @property
    def confirmed(self) -> bool:
        """True only when every network was read and stored."""
        return self.success and not self.partial


class BalanceLedger:
    """Reconciles cached position balances with on-chain state."""

    def __init__(
        self,
        wallet_service: WalletService,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    ):
        self.wallet_service = wallet_service
        self.session_factory = session_factory

    async def refresh(self, user_id: str) -> RefreshResult:
        """Refresh a user's position from the chain.

        A network that could not be read keeps its stored balance and the
        result is flagged partial. If nothing could be read the position is
        left untouched.
        """
        try:
            balances = await self.wallet_service.get_wallet_balances(user_id)
        except Exception as e:
            logger.error(f"Balance fetch failed for user {user_id}: {e}")
            return RefreshResult(success=False, message=f"Balance fetch failed: {e}")

        if balances.empty:
            logger.warning(f"No network balance could be read for user {user_id}")
            return RefreshResult(success=False, message="No network balance could be read")

        async with get_db(self.session_factory) as session:
            repo = LedgerRepository(session)
            position = await repo.get_active_position(user_id)
            if position is None:
                return RefreshResult(
                    success=False,
                    balances=balances,
                    message="No active liquidity position found",
                )

            await repo.set_position_balances(
                position.id,
                base_balance=balances.base,
                solana_balance=balances.solana,
            )

        partial = not balances.complete
        if partial:
            logger.warning(
                f"Partial balance refresh for user {user_id}: "
                f"base={balances.base} solana={balances.solana}"
            )
        else:
            logger.debug(
                f"Balances refreshed for user {user_id}: "
                f"base={balances.base} solana={balances.solana}"
            )

        return RefreshResult(success=True, partial=partial, balances=balances)
