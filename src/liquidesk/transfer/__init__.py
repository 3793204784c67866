"""Gasless transfer execution."""

from liquidesk.transfer.base import (
    TransferError,
    TransferExecutor,
    TransferReceipt,
    TransferState,
    TransferStatus,
    TransferTimeout,
)
from liquidesk.transfer.factory import create_transfer_executor

__all__ = [
    "TransferError",
    "TransferExecutor",
    "TransferReceipt",
    "TransferState",
    "TransferStatus",
    "TransferTimeout",
    "create_transfer_executor",
]
