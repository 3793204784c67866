"""SQLAlchemy models for the ledger."""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class Network(str, Enum):
    """Settlement networks holding USDC."""

    BASE = "base"
    SOLANA = "solana"


class LiquidityType(str, Enum):
    """Direction of liquidity a position provides."""

    ONRAMP = "onramp"
    OFFRAMP = "offramp"


class TransactionType(str, Enum):
    """Kind of value movement."""

    WITHDRAWAL = "withdrawal"
    DEPOSIT = "deposit"


class TransactionStatus(str, Enum):
    """Status of a transaction record.

    Only pending -> confirmed and pending -> failed are ever applied.
    """

    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class SettlementStatus(str, Enum):
    """Status of a business settlement."""

    INITIATED = "initiated"      # Recorded, transfer submitted
    PROCESSING = "processing"    # Relay reported the transfer in flight
    COMPLETED = "completed"      # Confirmed on chain
    FAILED = "failed"            # Terminal failure

    @property
    def rank(self) -> int:
        """Progress rank; a transition is applied only when the rank grows."""
        return {
            SettlementStatus.INITIATED: 0,
            SettlementStatus.PROCESSING: 1,
            SettlementStatus.COMPLETED: 2,
            SettlementStatus.FAILED: 2,
        }[self]


class Wallet(Base):
    """Custodial wallet addresses provisioned for a user."""

    __tablename__ = "wallets"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    base_address: Mapped[str] = mapped_column(String(255), nullable=False)
    solana_address: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    positions: Mapped[list["LiquidityPosition"]] = relationship(back_populates="wallet")


class LiquidityPosition(Base):
    """A user's custodial USDC balance across Base and Solana.

    At most one active position per user, enforced by a partial unique index.
    """

    __tablename__ = "liquidity_positions"
    __table_args__ = (
        Index(
            "uq_liquidity_positions_active_user",
            "user_id",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    wallet_id: Mapped[int] = mapped_column(ForeignKey("wallets.id"), nullable=False)
    liquidity_type: Mapped[LiquidityType] = mapped_column(
        String(20), default=LiquidityType.ONRAMP, nullable=False
    )

    base_balance: Mapped[Decimal] = mapped_column(Numeric(36, 18), default=Decimal("0"))
    solana_balance: Mapped[Decimal] = mapped_column(Numeric(36, 18), default=Decimal("0"))
    balances_refreshed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Bank account snapshot
    account_number: Mapped[str] = mapped_column(String(20), nullable=False)
    bank_code: Mapped[str] = mapped_column(String(20), nullable=False)
    bank_name: Mapped[str] = mapped_column(String(100), nullable=False)
    account_name: Mapped[str] = mapped_column(String(100), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    # Relationships
    wallet: Mapped["Wallet"] = relationship(back_populates="positions", lazy="selectin")

    @property
    def total_balance(self) -> Decimal:
        """Sum of the per-network balances at last refresh."""
        return (self.base_balance or Decimal("0")) + (self.solana_balance or Decimal("0"))

    def balance_for(self, network: str) -> Decimal:
        """Get the stored balance for a network."""
        if Network(network) == Network.BASE:
            return self.base_balance or Decimal("0")
        return self.solana_balance or Decimal("0")

    @property
    def bank_account(self) -> dict:
        return {
            "account_number": self.account_number,
            "bank_code": self.bank_code,
            "bank_name": self.bank_name,
            "account_name": self.account_name,
        }


class Transaction(Base):
    """Record of an attempted value movement. Never deleted."""

    __tablename__ = "transactions"
    __table_args__ = (
        Index("ix_transactions_user_created", "user_id", "created_at"),
        Index("ix_transactions_position_status", "position_id", "status"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    position_id: Mapped[int] = mapped_column(ForeignKey("liquidity_positions.id"), nullable=False)
    type: Mapped[TransactionType] = mapped_column(String(20), nullable=False)
    network: Mapped[Network] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(36, 18), nullable=False)
    to_address: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[TransactionStatus] = mapped_column(
        String(20), default=TransactionStatus.PENDING, nullable=False
    )
    failure_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Transfer receipt
    tx_hash: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    explorer_url: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    gas_fee_paid_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    confirmations: Mapped[int] = mapped_column(default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class Settlement(Base):
    """Business-initiated payout to a customer wallet for an order."""

    __tablename__ = "settlements"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    settlement_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    order_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    customer_wallet: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(36, 18), nullable=False)
    token: Mapped[str] = mapped_column(String(20), nullable=False)
    network: Mapped[Network] = mapped_column(String(20), nullable=False)
    business_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    customer_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    status: Mapped[SettlementStatus] = mapped_column(
        String(20), default=SettlementStatus.INITIATED, nullable=False
    )
    transaction_hash: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    confirmations: Mapped[int] = mapped_column(default=0)
    block_number: Mapped[Optional[int]] = mapped_column(nullable=True)
    failure_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    estimated_completion: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
