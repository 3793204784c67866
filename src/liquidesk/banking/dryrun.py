"""Dry-run bank verifier with a fixed bank list."""

from typing import Optional

from liquidesk.banking.base import Bank, BankVerifier, ResolvedAccount

SIMULATED_BANKS = [
    Bank(code="000013", name="Guaranty Trust Bank"),
    Bank(code="000014", name="Access Bank"),
    Bank(code="000015", name="Zenith Bank"),
    Bank(code="000016", name="First Bank of Nigeria"),
    Bank(code="000004", name="United Bank for Africa"),
]


class DryRunBankVerifier(BankVerifier):
    """Resolves any well-formed account at a known bank."""

    async def list_banks(self) -> list[Bank]:
        return list(SIMULATED_BANKS)

    async def resolve_account(
        self, account_number: str, bank_code: str
    ) -> Optional[ResolvedAccount]:
        bank = next((b for b in SIMULATED_BANKS if b.code == bank_code), None)
        if bank is None:
            return None
        return ResolvedAccount(
            account_number=account_number,
            account_name=f"Simulated Account {account_number[-4:]}",
            bank=bank,
        )
