"""Request and response contracts for the liquidity API.

Amounts are Decimals and serialize as strings.
"""

from datetime import datetime
from decimal import Decimal
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

from liquidesk.config import get_settings
from liquidesk.ledger.models import LiquidityType, Network
from liquidesk.services.withdrawal import WithdrawalCommand

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Success envelope."""

    success: bool = True
    message: str = ""
    data: T


# Requests


class BankAccountPayload(BaseModel):
    """Bank account the user is paid out to."""

    account_number: str = Field(..., description="10-digit account number")
    bank_code: str = Field(..., description="6-digit bank code")
    bank_name: str = Field(..., description="Bank display name")
    account_name: str = Field(..., description="Account holder name")

    @field_validator("account_number")
    @classmethod
    def check_account_number(cls, v: str) -> str:
        v = v.strip()
        if len(v) != 10 or not v.isdigit():
            raise ValueError("Account number must be exactly 10 digits")
        return v

    @field_validator("bank_code")
    @classmethod
    def check_bank_code(cls, v: str) -> str:
        v = v.strip()
        if len(v) != 6 or not v.isdigit():
            raise ValueError("Bank code must be exactly 6 digits")
        return v

    @field_validator("bank_name", "account_name")
    @classmethod
    def check_name(cls, v: str) -> str:
        v = v.strip()
        if not 2 <= len(v) <= 50:
            raise ValueError("Must be between 2 and 50 characters")
        return v


class CreatePositionRequest(BaseModel):
    liquidity_type: LiquidityType = Field(LiquidityType.ONRAMP)
    bank_account: BankAccountPayload


class UpdateBankAccountRequest(BaseModel):
    bank_account: BankAccountPayload


class WithdrawRequest(BaseModel):
    """Withdraw USDC from the position to an external address."""

    network: Network = Field(..., description="base or solana")
    amount: Decimal = Field(..., gt=0, description="USDC amount")
    destination_address: str = Field(..., description="Recipient address")

    @field_validator("amount")
    @classmethod
    def check_minimum(cls, v: Decimal) -> Decimal:
        minimum = get_settings().min_withdrawal_amount
        if v < minimum:
            raise ValueError(f"Amount must be at least {minimum} USDC")
        return v

    @field_validator("destination_address")
    @classmethod
    def check_destination(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 20:
            raise ValueError("Invalid destination address format")
        return v

    def to_command(self, user_id: str) -> WithdrawalCommand:
        return WithdrawalCommand(
            user_id=user_id,
            network=self.network,
            amount=self.amount,
            destination_address=self.destination_address,
        )


class VerifyAccountRequest(BaseModel):
    account_number: str = ""
    bank_code: str = ""


class SettlementRequestBody(BaseModel):
    """Settlement request from a business integration.

    Fields are optional here so that missing ones are reported together.
    """

    order_id: Optional[str] = None
    customer_wallet: Optional[str] = None
    amount: Optional[Decimal] = None
    token: Optional[str] = None
    network: Optional[str] = None
    business_id: Optional[str] = None
    customer_email: Optional[str] = None


class SettlementWebhookBody(BaseModel):
    """Status notification from the transfer pipeline."""

    settlement_id: Optional[str] = None
    status: Optional[str] = None
    transaction_hash: Optional[str] = None
    confirmations: Optional[int] = Field(None, ge=0)
    block_number: Optional[int] = Field(None, ge=0)
    failure_reason: Optional[str] = None


# Responses


class BankAccountView(BaseModel):
    account_number: str
    bank_code: str
    bank_name: str
    account_name: str


class WalletAddresses(BaseModel):
    base_address: str
    solana_address: str


class LiveBalances(BaseModel):
    base_usdc: Optional[Decimal] = None
    solana_usdc: Optional[Decimal] = None
    total_usdc: Decimal = Decimal("0")


class PositionView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    liquidity_type: str
    base_balance: Decimal
    solana_balance: Decimal
    total_balance: Decimal
    is_verified: bool
    balances_refreshed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @field_validator("liquidity_type", mode="before")
    @classmethod
    def plain_value(cls, v):
        return getattr(v, "value", v)


class CreatedPositionData(BaseModel):
    liquidity_position: PositionView
    wallets: WalletAddresses
    bank_account: BankAccountView


class PositionData(BaseModel):
    liquidity_position: PositionView
    wallets: Optional[WalletAddresses] = None
    bank_account: BankAccountView
    live_balances: Optional[LiveBalances] = None
    last_updated: datetime


class NetworkFunding(BaseModel):
    address: str
    network: str
    token: str
    token_address: str
    current_balance: Decimal
    minimum_deposit: Decimal
    instructions: str


class WalletsData(BaseModel):
    networks: dict[str, NetworkFunding]
    total_balance: Decimal
    last_updated: datetime


class BankAccountData(BaseModel):
    bank_account: BankAccountView


class WithdrawalData(BaseModel):
    transaction_id: int
    status: str
    network: str
    amount: Decimal
    destination_address: str
    tx_hash: Optional[str] = None
    explorer_url: Optional[str] = None
    gas_fee_paid_by: Optional[str] = None
    completed_at: Optional[datetime] = None


class TransactionView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    type: str
    network: str
    amount: Decimal
    to_address: str
    status: str
    failure_reason: Optional[str] = None
    tx_hash: Optional[str] = None
    explorer_url: Optional[str] = None
    gas_fee_paid_by: Optional[str] = None
    confirmations: int = 0
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @field_validator("type", "network", "status", mode="before")
    @classmethod
    def plain_value(cls, v):
        return getattr(v, "value", v)


class Pagination(BaseModel):
    current_page: int
    total_pages: int
    total_transactions: int
    has_next_page: bool
    has_prev_page: bool


class TransactionsData(BaseModel):
    transactions: list[TransactionView]
    pagination: Pagination


class RefreshData(BaseModel):
    balances: LiveBalances
    last_updated: datetime


class BankView(BaseModel):
    code: str
    name: str


class ServiceStatusData(BaseModel):
    """Transfer executor readiness."""

    executor: str
    configured: bool
    dry_run: bool
    networks: list[str]
    gas_fee_paid_by: str = "platform"


class BanksData(BaseModel):
    banks: list[BankView]
    total: int


class VerifiedAccountData(BaseModel):
    account_number: str
    account_name: str
    bank_code: str
    bank_name: str
    is_valid: bool = True


class SettlementResponse(BaseModel):
    success: bool = True
    settlement_id: str
    status: str
    transaction_hash: Optional[str] = None
    estimated_time: str
    message: str


class SettlementStatusResponse(BaseModel):
    success: bool = True
    settlement_id: str
    order_id: str
    status: str
    amount: Decimal
    token: str
    network: str
    transaction_hash: Optional[str] = None
    confirmations: int = 0
    block_number: Optional[int] = None
    failure_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    estimated_completion: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class SettlementWebhookResponse(BaseModel):
    success: bool = True
    message: str
    settlement_id: str
    status: str
    applied: bool
