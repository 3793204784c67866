"""Repository for ledger operations."""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from liquidesk.ledger.models import (
    LiquidityPosition,
    LiquidityType,
    Network,
    Settlement,
    SettlementStatus,
    Transaction,
    TransactionStatus,
    TransactionType,
    Wallet,
    utcnow,
)


class LedgerRepository:
    """Repository for all ledger-related database operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # Wallet operations
    async def get_wallet(self, user_id: str) -> Optional[Wallet]:
        """Get the wallet record for a user."""
        stmt = select(Wallet).where(Wallet.user_id == user_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_or_create_wallet(
        self, user_id: str, base_address: str, solana_address: str
    ) -> Wallet:
        """Get existing wallet or record newly provisioned addresses."""
        wallet = await self.get_wallet(user_id)
        if wallet is None:
            wallet = Wallet(
                user_id=user_id,
                base_address=base_address,
                solana_address=solana_address,
            )
            self.session.add(wallet)
            await self.session.flush()
        return wallet

    # Position operations
    async def get_active_position(self, user_id: str) -> Optional[LiquidityPosition]:
        """Get the user's active liquidity position, freshly loaded."""
        stmt = (
            select(LiquidityPosition)
            .where(LiquidityPosition.user_id == user_id, LiquidityPosition.is_active.is_(True))
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create_position(
        self,
        user_id: str,
        wallet_id: int,
        bank_account: dict[str, str],
        liquidity_type: LiquidityType = LiquidityType.ONRAMP,
    ) -> LiquidityPosition:
        """Create an active position with zero balances."""
        position = LiquidityPosition(
            user_id=user_id,
            wallet_id=wallet_id,
            liquidity_type=liquidity_type,
            base_balance=Decimal("0"),
            solana_balance=Decimal("0"),
            account_number=bank_account["account_number"],
            bank_code=bank_account["bank_code"],
            bank_name=bank_account["bank_name"],
            account_name=bank_account["account_name"],
            is_active=True,
            is_verified=False,
        )
        self.session.add(position)
        await self.session.flush()
        return position

    async def set_position_balances(
        self,
        position_id: int,
        base_balance: Optional[Decimal] = None,
        solana_balance: Optional[Decimal] = None,
    ) -> None:
        """Overwrite per-network balances. A None value keeps the stored one."""
        values: dict[str, Any] = {"balances_refreshed_at": utcnow()}
        if base_balance is not None:
            values["base_balance"] = base_balance
        if solana_balance is not None:
            values["solana_balance"] = solana_balance

        stmt = (
            update(LiquidityPosition)
            .where(LiquidityPosition.id == position_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)

    async def update_bank_account(
        self, position: LiquidityPosition, bank_account: dict[str, str]
    ) -> LiquidityPosition:
        """Replace the bank account snapshot on a position."""
        position.account_number = bank_account["account_number"]
        position.bank_code = bank_account["bank_code"]
        position.bank_name = bank_account["bank_name"]
        position.account_name = bank_account["account_name"]
        await self.session.flush()
        return position

    # Transaction operations
    async def create_transaction(
        self,
        user_id: str,
        position_id: int,
        network: Network,
        amount: Decimal,
        to_address: str,
        tx_type: TransactionType = TransactionType.WITHDRAWAL,
    ) -> Transaction:
        """Create a pending transaction record."""
        transaction = Transaction(
            user_id=user_id,
            position_id=position_id,
            type=tx_type,
            network=network,
            amount=amount,
            to_address=to_address,
            status=TransactionStatus.PENDING,
        )
        self.session.add(transaction)
        await self.session.flush()
        return transaction

    async def get_transaction_by_id(self, transaction_id: int) -> Optional[Transaction]:
        """Get transaction by ID."""
        stmt = (
            select(Transaction)
            .where(Transaction.id == transaction_id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def confirm_transaction(
        self,
        transaction_id: int,
        tx_hash: str,
        explorer_url: Optional[str] = None,
        gas_fee_paid_by: Optional[str] = None,
    ) -> bool:
        """Move a pending transaction to confirmed.

        Returns False when the record was no longer pending.
        """
        stmt = (
            update(Transaction)
            .where(
                Transaction.id == transaction_id,
                Transaction.status == TransactionStatus.PENDING.value,
            )
            .values(
                status=TransactionStatus.CONFIRMED.value,
                tx_hash=tx_hash,
                explorer_url=explorer_url,
                gas_fee_paid_by=gas_fee_paid_by,
                completed_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def fail_transaction(self, transaction_id: int, failure_reason: str) -> bool:
        """Move a pending transaction to failed with a reason.

        Returns False when the record was no longer pending.
        """
        stmt = (
            update(Transaction)
            .where(
                Transaction.id == transaction_id,
                Transaction.status == TransactionStatus.PENDING.value,
            )
            .values(
                status=TransactionStatus.FAILED.value,
                failure_reason=failure_reason or "Transfer execution failed",
                completed_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def get_pending_withdrawal_total(self, position_id: int, network: Network) -> Decimal:
        """Sum of withdrawals still in flight for a position on a network."""
        stmt = select(func.coalesce(func.sum(Transaction.amount), 0)).where(
            Transaction.position_id == position_id,
            Transaction.network == Network(network).value,
            Transaction.type == TransactionType.WITHDRAWAL.value,
            Transaction.status == TransactionStatus.PENDING.value,
        )
        result = await self.session.execute(stmt)
        return Decimal(str(result.scalar_one()))

    def _transaction_filters(
        self,
        user_id: str,
        tx_type: Optional[str] = None,
        network: Optional[str] = None,
        status: Optional[str] = None,
    ) -> list:
        filters = [Transaction.user_id == user_id]
        if tx_type:
            filters.append(Transaction.type == tx_type)
        if network:
            filters.append(Transaction.network == network)
        if status:
            filters.append(Transaction.status == status)
        return filters

    async def get_user_transactions(
        self,
        user_id: str,
        limit: int = 20,
        offset: int = 0,
        tx_type: Optional[str] = None,
        network: Optional[str] = None,
        status: Optional[str] = None,
    ) -> list[Transaction]:
        """Get a user's transactions, newest first."""
        stmt = (
            select(Transaction)
            .where(*self._transaction_filters(user_id, tx_type, network, status))
            .order_by(Transaction.created_at.desc(), Transaction.id.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def count_user_transactions(
        self,
        user_id: str,
        tx_type: Optional[str] = None,
        network: Optional[str] = None,
        status: Optional[str] = None,
    ) -> int:
        """Count a user's transactions matching the filters."""
        stmt = select(func.count(Transaction.id)).where(
            *self._transaction_filters(user_id, tx_type, network, status)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one()

    async def get_stale_pending_withdrawals(self, created_before: datetime) -> list[Transaction]:
        """Get pending withdrawals created before a cutoff."""
        stmt = (
            select(Transaction)
            .where(
                Transaction.type == TransactionType.WITHDRAWAL.value,
                Transaction.status == TransactionStatus.PENDING.value,
                Transaction.created_at < created_before,
            )
            .order_by(Transaction.created_at)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_stale_unsubmitted_settlements(self, created_before: datetime) -> list[Settlement]:
        """Get initiated settlements with no transfer hash, created before a cutoff."""
        stmt = (
            select(Settlement)
            .where(
                Settlement.status == SettlementStatus.INITIATED.value,
                Settlement.transaction_hash.is_(None),
                Settlement.created_at < created_before,
            )
            .order_by(Settlement.created_at)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    # Settlement operations
    async def create_settlement(
        self,
        settlement_id: str,
        order_id: str,
        customer_wallet: str,
        amount: Decimal,
        token: str,
        network: Network,
        business_id: Optional[str] = None,
        customer_email: Optional[str] = None,
        estimated_completion: Optional[datetime] = None,
    ) -> Settlement:
        """Record a new settlement in initiated state."""
        settlement = Settlement(
            settlement_id=settlement_id,
            order_id=order_id,
            customer_wallet=customer_wallet,
            amount=amount,
            token=token,
            network=network,
            business_id=business_id,
            customer_email=customer_email,
            status=SettlementStatus.INITIATED,
            estimated_completion=estimated_completion,
        )
        self.session.add(settlement)
        await self.session.flush()
        return settlement

    async def get_settlement(self, settlement_id: str) -> Optional[Settlement]:
        """Get settlement by its public settlement ID."""
        stmt = (
            select(Settlement)
            .where(Settlement.settlement_id == settlement_id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def attach_settlement_hash(self, settlement_id: str, transaction_hash: str) -> bool:
        """Store the transfer hash on a settlement that has none yet."""
        stmt = (
            update(Settlement)
            .where(
                Settlement.settlement_id == settlement_id,
                Settlement.transaction_hash.is_(None),
            )
            .values(transaction_hash=transaction_hash)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def advance_settlement(
        self,
        settlement_id: str,
        status: SettlementStatus,
        transaction_hash: Optional[str] = None,
        confirmations: Optional[int] = None,
        block_number: Optional[int] = None,
        failure_reason: Optional[str] = None,
    ) -> bool:
        """Apply a forward status transition.

        The update only matches rows whose current status ranks strictly
        lower than the new one, so stale or duplicate deliveries are no-ops.
        """
        status = SettlementStatus(status)
        predecessors = [s.value for s in SettlementStatus if s.rank < status.rank]
        if not predecessors:
            return False

        values: dict[str, Any] = {"status": status.value}
        if transaction_hash:
            values["transaction_hash"] = transaction_hash
        if confirmations is not None:
            values["confirmations"] = confirmations
        if block_number is not None:
            values["block_number"] = block_number
        if failure_reason:
            values["failure_reason"] = failure_reason
        if status in (SettlementStatus.COMPLETED, SettlementStatus.FAILED):
            values["completed_at"] = utcnow()

        stmt = (
            update(Settlement)
            .where(
                Settlement.settlement_id == settlement_id,
                Settlement.status.in_(predecessors),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def enrich_settlement(
        self,
        settlement_id: str,
        status: SettlementStatus,
        transaction_hash: Optional[str] = None,
        confirmations: Optional[int] = None,
        block_number: Optional[int] = None,
    ) -> bool:
        """Update enrichment fields without touching status.

        Confirmations only ever grow; hash and block number are filled
        when still empty.
        """
        settlement = await self.get_settlement(settlement_id)
        if settlement is None or settlement.status != SettlementStatus(status):
            return False

        changed = False
        if confirmations is not None and confirmations > (settlement.confirmations or 0):
            settlement.confirmations = confirmations
            changed = True
        if block_number is not None and settlement.block_number is None:
            settlement.block_number = block_number
            changed = True
        if transaction_hash and not settlement.transaction_hash:
            settlement.transaction_hash = transaction_hash
            changed = True

        if changed:
            await self.session.flush()
        return changed
