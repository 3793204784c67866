"""Lenco bank API client."""

import logging
from typing import Optional

import httpx

from liquidesk.banking.base import Bank, BankProviderError, BankVerifier, ResolvedAccount

logger = logging.getLogger(__name__)


class LencoBankVerifier(BankVerifier):
    """Bank list and account resolution via Lenco."""

    def __init__(self, api_key: str, base_url: str = "https://api.lenco.co/access/v1"):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")

    async def _get(self, path: str, params: Optional[dict] = None) -> httpx.Response:
        if not self.api_key:
            raise BankProviderError("Lenco API key is not configured")
        try:
            async with httpx.AsyncClient(timeout=15.0) as client:
                return await client.get(
                    f"{self.base_url}{path}",
                    params=params,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                )
        except httpx.HTTPError as e:
            logger.error(f"Lenco request to {path} failed: {e}")
            raise BankProviderError(f"Failed to reach Lenco API: {e}") from e

    @staticmethod
    def _provider_message(response: httpx.Response) -> str:
        try:
            return response.json().get("message") or f"Lenco returned HTTP {response.status_code}"
        except ValueError:
            return f"Lenco returned HTTP {response.status_code}"

    async def list_banks(self) -> list[Bank]:
        response = await self._get("/banks")
        if response.status_code != 200:
            raise BankProviderError(self._provider_message(response))

        data = response.json()
        if not data.get("status"):
            raise BankProviderError(data.get("message") or "Failed to fetch banks from Lenco API")

        return [Bank(code=item["code"], name=item["name"]) for item in data.get("data", [])]

    async def resolve_account(
        self, account_number: str, bank_code: str
    ) -> Optional[ResolvedAccount]:
        response = await self._get(
            "/resolve",
            params={"accountNumber": account_number, "bankCode": bank_code},
        )

        # Lenco answers 400/404 for accounts it cannot resolve
        if response.status_code in (400, 404):
            logger.info(f"Lenco could not resolve account at bank {bank_code}")
            return None
        if response.status_code != 200:
            raise BankProviderError(self._provider_message(response))

        data = response.json()
        if not data.get("status") or not data.get("data"):
            return None

        account = data["data"]
        bank = account.get("bank", {})
        return ResolvedAccount(
            account_number=account.get("accountNumber", account_number),
            account_name=account.get("accountName", ""),
            bank=Bank(code=bank.get("code", bank_code), name=bank.get("name", "")),
        )
