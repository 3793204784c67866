"""Liquidity desk endpoints.

User routes identify the caller by the X-User-Id header. Settlement routes
are called by business integrations and the transfer pipeline.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status

from liquidesk.api.contracts import (
    ApiResponse,
    BankAccountData,
    BankAccountView,
    BanksData,
    BankView,
    CreatedPositionData,
    CreatePositionRequest,
    LiveBalances,
    Pagination,
    PositionData,
    PositionView,
    RefreshData,
    ServiceStatusData,
    SettlementRequestBody,
    SettlementResponse,
    SettlementStatusResponse,
    SettlementWebhookBody,
    SettlementWebhookResponse,
    TransactionsData,
    TransactionView,
    UpdateBankAccountRequest,
    VerifiedAccountData,
    VerifyAccountRequest,
    WalletAddresses,
    WalletsData,
    WithdrawalData,
    WithdrawRequest,
)
from liquidesk.api.deps import (
    get_services,
    require_settlement_api_key,
    require_user,
    require_webhook_signature,
)
from liquidesk.container import Services
from liquidesk.ledger.models import Network, SettlementStatus, TransactionStatus, utcnow
from liquidesk.services.settlement import SettlementUpdate
from liquidesk.wallets.base import WalletBalances

logger = logging.getLogger(__name__)

router = APIRouter()


def _live_balances(balances: WalletBalances) -> LiveBalances:
    return LiveBalances(
        base_usdc=balances.base,
        solana_usdc=balances.solana,
        total_usdc=balances.total,
    )


@router.post(
    "/create",
    response_model=ApiResponse[CreatedPositionData],
    status_code=status.HTTP_201_CREATED,
)
async def create_position(
    body: CreatePositionRequest,
    user_id: str = Depends(require_user),
    services: Services = Depends(get_services),
):
    """Provision wallets and open the user's liquidity position."""
    snapshot = await services.positions.create_position(
        user_id,
        bank_account=body.bank_account.model_dump(),
        liquidity_type=body.liquidity_type,
    )
    return ApiResponse(
        message="Liquidity position created successfully",
        data=CreatedPositionData(
            liquidity_position=PositionView.model_validate(snapshot.position),
            wallets=WalletAddresses(
                base_address=snapshot.wallets.base_address,
                solana_address=snapshot.wallets.solana_address,
            ),
            bank_account=BankAccountView(**snapshot.position.bank_account),
        ),
    )


@router.get("/position", response_model=ApiResponse[PositionData])
async def get_position(
    user_id: str = Depends(require_user),
    services: Services = Depends(get_services),
):
    """Active position with balances refreshed from chain."""
    snapshot = await services.positions.get_position(user_id)

    wallets = None
    if snapshot.wallets is not None:
        wallets = WalletAddresses(
            base_address=snapshot.wallets.base_address,
            solana_address=snapshot.wallets.solana_address,
        )

    return ApiResponse(
        message="Liquidity position retrieved",
        data=PositionData(
            liquidity_position=PositionView.model_validate(snapshot.position),
            wallets=wallets,
            bank_account=BankAccountView(**snapshot.position.bank_account),
            live_balances=(
                _live_balances(snapshot.live_balances)
                if snapshot.live_balances is not None
                else None
            ),
            last_updated=snapshot.last_updated,
        ),
    )


@router.get("/wallets", response_model=ApiResponse[WalletsData])
async def get_wallets(
    user_id: str = Depends(require_user),
    services: Services = Depends(get_services),
):
    """Funding addresses and current balance per network."""
    data = await services.positions.get_wallets(user_id)
    return ApiResponse(message="Wallet addresses retrieved", data=WalletsData(**data))


@router.put("/bank-account", response_model=ApiResponse[BankAccountData])
async def update_bank_account(
    body: UpdateBankAccountRequest,
    user_id: str = Depends(require_user),
    services: Services = Depends(get_services),
):
    position = await services.positions.update_bank_account(
        user_id, body.bank_account.model_dump()
    )
    return ApiResponse(
        message="Bank account updated successfully",
        data=BankAccountData(bank_account=BankAccountView(**position.bank_account)),
    )


@router.post("/withdraw", response_model=ApiResponse[WithdrawalData])
async def withdraw(
    body: WithdrawRequest,
    response: Response,
    user_id: str = Depends(require_user),
    services: Services = Depends(get_services),
):
    """Withdraw USDC via the gasless relay.

    Returns 202 when the transfer outcome is not yet known.
    """
    result = await services.withdrawals.withdraw(body.to_command(user_id))

    if result.status == TransactionStatus.PENDING:
        response.status_code = status.HTTP_202_ACCEPTED

    return ApiResponse(
        message=result.message,
        data=WithdrawalData(
            transaction_id=result.transaction_id,
            status=result.status.value,
            network=result.network.value,
            amount=result.amount,
            destination_address=result.destination_address,
            tx_hash=result.tx_hash,
            explorer_url=result.explorer_url,
            gas_fee_paid_by=result.gas_fee_paid_by,
            completed_at=result.completed_at,
        ),
    )


@router.get("/transactions", response_model=ApiResponse[TransactionsData])
async def get_transactions(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    tx_type: Optional[str] = Query(None, alias="type"),
    network: Optional[str] = Query(None),
    tx_status: Optional[str] = Query(None, alias="status"),
    user_id: str = Depends(require_user),
    services: Services = Depends(get_services),
):
    """Transaction history, newest first."""
    result = await services.positions.get_transactions(
        user_id, page=page, limit=limit, tx_type=tx_type, network=network, status=tx_status
    )
    return ApiResponse(
        message="Transactions retrieved",
        data=TransactionsData(
            transactions=[TransactionView.model_validate(t) for t in result.transactions],
            pagination=Pagination(
                current_page=result.current_page,
                total_pages=result.total_pages,
                total_transactions=result.total_transactions,
                has_next_page=result.has_next_page,
                has_prev_page=result.has_prev_page,
            ),
        ),
    )


@router.post("/refresh-balances", response_model=ApiResponse[RefreshData])
async def refresh_balances(
    user_id: str = Depends(require_user),
    services: Services = Depends(get_services),
):
    balances = await services.positions.refresh_balances(user_id)
    return ApiResponse(
        message="Balances refreshed successfully",
        data=RefreshData(balances=_live_balances(balances), last_updated=utcnow()),
    )


@router.get("/service-status", response_model=ApiResponse[ServiceStatusData])
async def service_status(
    user_id: str = Depends(require_user),
    services: Services = Depends(get_services),
):
    """Whether the gasless transfer service can accept withdrawals."""
    return ApiResponse(
        message="Service status retrieved",
        data=ServiceStatusData(
            executor=type(services.executor).__name__,
            configured=services.executor.is_configured(),
            dry_run=services.settings.dry_run,
            networks=[n.value for n in Network],
        ),
    )


@router.get("/banks", response_model=ApiResponse[BanksData])
async def list_banks(
    user_id: str = Depends(require_user),
    services: Services = Depends(get_services),
):
    banks = await services.positions.list_banks()
    return ApiResponse(
        message="Banks retrieved successfully",
        data=BanksData(
            banks=[BankView(code=b.code, name=b.name) for b in banks],
            total=len(banks),
        ),
    )


@router.post("/verify-account", response_model=ApiResponse[VerifiedAccountData])
async def verify_account(
    body: VerifyAccountRequest,
    user_id: str = Depends(require_user),
    services: Services = Depends(get_services),
):
    account = await services.positions.verify_account(body.account_number, body.bank_code)
    return ApiResponse(
        message="Account verified successfully",
        data=VerifiedAccountData(
            account_number=account.account_number,
            account_name=account.account_name,
            bank_code=account.bank.code,
            bank_name=account.bank.name,
        ),
    )


@router.post(
    "/request-settlement",
    response_model=SettlementResponse,
    dependencies=[Depends(require_settlement_api_key)],
)
async def request_settlement(
    body: SettlementRequestBody,
    services: Services = Depends(get_services),
):
    """Pay a business customer's wallet for an order."""
    receipt = await services.settlements.request_settlement(
        order_id=body.order_id,
        customer_wallet=body.customer_wallet,
        amount=body.amount,
        token=body.token,
        network=body.network,
        business_id=body.business_id,
        customer_email=body.customer_email,
    )
    return SettlementResponse(
        settlement_id=receipt.settlement_id,
        status=receipt.status.value,
        transaction_hash=receipt.transaction_hash,
        estimated_time=receipt.estimated_time,
        message=receipt.message,
    )


@router.get(
    "/settlement-status/{settlement_id}",
    response_model=SettlementStatusResponse,
    dependencies=[Depends(require_settlement_api_key)],
)
async def settlement_status(
    settlement_id: str,
    services: Services = Depends(get_services),
):
    settlement = await services.settlements.get_settlement_status(settlement_id.strip())
    return SettlementStatusResponse(
        settlement_id=settlement.settlement_id,
        order_id=settlement.order_id,
        status=SettlementStatus(settlement.status).value,
        amount=settlement.amount,
        token=settlement.token,
        network=Network(settlement.network).value,
        transaction_hash=settlement.transaction_hash,
        confirmations=settlement.confirmations or 0,
        block_number=settlement.block_number,
        failure_reason=settlement.failure_reason,
        created_at=settlement.created_at,
        estimated_completion=settlement.estimated_completion,
        completed_at=settlement.completed_at,
    )


@router.post(
    "/settlement-webhook",
    response_model=SettlementWebhookResponse,
    dependencies=[Depends(require_webhook_signature)],
)
async def settlement_webhook(
    body: SettlementWebhookBody,
    services: Services = Depends(get_services),
):
    """Apply a settlement status notification.

    Duplicates and out-of-order deliveries are acknowledged without changing
    the stored status.
    """
    outcome = await services.settlements.handle_settlement_webhook(
        SettlementUpdate(
            settlement_id=body.settlement_id,
            status=body.status,
            transaction_hash=body.transaction_hash,
            confirmations=body.confirmations,
            block_number=body.block_number,
            failure_reason=body.failure_reason,
        )
    )
    return SettlementWebhookResponse(
        message="Webhook processed" if outcome.applied else "Webhook acknowledged, no change",
        settlement_id=outcome.settlement_id,
        status=outcome.status.value,
        applied=outcome.applied,
    )
