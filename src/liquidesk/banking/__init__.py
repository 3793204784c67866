"""Bank list and account verification."""

from liquidesk.banking.base import Bank, BankProviderError, BankVerifier, ResolvedAccount
from liquidesk.banking.factory import create_bank_verifier

__all__ = [
    "Bank",
    "BankProviderError",
    "BankVerifier",
    "ResolvedAccount",
    "create_bank_verifier",
]
