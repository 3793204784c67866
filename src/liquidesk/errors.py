"""Error taxonomy for the liquidity desk.

Every error carries the HTTP status it maps to and a dict of details that
the API layer merges into the JSON error envelope.
"""

from decimal import Decimal
from typing import Any, Optional


def format_amount(amount: Decimal) -> str:
    """Render an amount without trailing zeros (10.500000 -> 10.5)."""
    return format(Decimal(amount).normalize(), "f")


class LiquidityError(Exception):
    """Base class for all orchestration errors."""

    status_code: int = 500

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ValidationError(LiquidityError):
    """Malformed or missing input."""

    status_code = 400


class NotFoundError(LiquidityError):
    """No active position, wallet or settlement for the given identity."""

    status_code = 404


class AlreadyExistsError(LiquidityError):
    """The user already has an active liquidity position."""

    status_code = 400


class InsufficientFundsError(LiquidityError):
    """Requested amount exceeds the available balance on a network."""

    status_code = 400

    def __init__(self, network: str, available: Decimal, requested: Decimal):
        self.network = network
        self.available = available
        self.requested = requested
        label = "Base" if network == "base" else "Solana"
        super().__init__(
            f"Insufficient {label} USDC balance. "
            f"Available: {format_amount(available)} USDC, "
            f"Requested: {format_amount(requested)} USDC",
            details={
                "network": network,
                "available": format_amount(available),
                "requested": format_amount(requested),
            },
        )


class ExecutorMisconfiguredError(LiquidityError):
    """The transfer executor cannot run. Raised before any side effect."""

    status_code = 500


class TransferFailedError(LiquidityError):
    """The executor reported a failure after the record was created."""

    status_code = 500

    def __init__(
        self,
        reason: str,
        transaction_id: Optional[int] = None,
        settlement_id: Optional[str] = None,
    ):
        self.reason = reason
        self.transaction_id = transaction_id
        self.settlement_id = settlement_id
        data: dict[str, Any] = {"status": "failed"}
        if transaction_id is not None:
            data["transaction_id"] = transaction_id
        if settlement_id is not None:
            data["settlement_id"] = settlement_id
        super().__init__(
            "Withdrawal failed during execution"
            if settlement_id is None
            else "Settlement failed during execution",
            details={"error": reason, "data": data},
        )


class UpstreamUnavailableError(LiquidityError):
    """A bank, ledger or wallet provider failed; its message is passed through."""

    status_code = 500
