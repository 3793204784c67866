"""Factory for the configured bank verifier."""

from typing import Optional

from liquidesk.banking.base import BankVerifier
from liquidesk.banking.dryrun import DryRunBankVerifier
from liquidesk.banking.lenco import LencoBankVerifier
from liquidesk.config import Settings, get_settings


def create_bank_verifier(settings: Optional[Settings] = None) -> BankVerifier:
    """Create the bank verifier selected by settings."""
    settings = settings or get_settings()

    if settings.dry_run and not settings.lenco_api_key:
        return DryRunBankVerifier()

    return LencoBankVerifier(api_key=settings.lenco_api_key, base_url=settings.lenco_api_url)
