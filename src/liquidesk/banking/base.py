"""Bank verification provider interface."""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

ACCOUNT_NUMBER_RE = re.compile(r"^\d{10}$")
BANK_CODE_RE = re.compile(r"^\d{6}$")


@dataclass
class Bank:
    """A bank that payouts can be sent to."""

    code: str
    name: str


@dataclass
class ResolvedAccount:
    """Bank account details confirmed by the provider."""

    account_number: str
    account_name: str
    bank: Bank


class BankProviderError(Exception):
    """The bank provider could not be reached or returned an error."""

    pass


class BankVerifier(ABC):
    """Abstract base class for bank verification providers."""

    def is_valid_account_number(self, account_number: Optional[str]) -> bool:
        """Account numbers are exactly 10 digits."""
        return bool(account_number and ACCOUNT_NUMBER_RE.match(account_number))

    def is_valid_bank_code(self, bank_code: Optional[str]) -> bool:
        """Bank codes are exactly 6 digits."""
        return bool(bank_code and BANK_CODE_RE.match(bank_code))

    @abstractmethod
    async def list_banks(self) -> list[Bank]:
        """List supported banks.

        Raises:
            BankProviderError: if the provider is unavailable
        """
        raise NotImplementedError()

    @abstractmethod
    async def resolve_account(
        self, account_number: str, bank_code: str
    ) -> Optional[ResolvedAccount]:
        """Resolve an account, None when the provider does not recognise it.

        Raises:
            BankProviderError: if the provider is unavailable
        """
        raise NotImplementedError()
