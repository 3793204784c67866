"""Custody-API wallet service with on-chain balance reads.

Wallet provisioning and key management live in an external custody service;
balances are read straight from Base and Solana RPC.
"""

import asyncio
import logging
from typing import Optional

import httpx

from liquidesk.services.balance_sync import get_spl_token_balance, get_token_balance
from liquidesk.wallets.base import (
    UserWallets,
    WalletBalances,
    WalletService,
    WalletServiceError,
)

logger = logging.getLogger(__name__)


class CustodyWalletService(WalletService):
    """Wallet service backed by the custody HTTP API."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        base_rpc_url: str,
        solana_rpc_url: str,
        base_usdc_contract: str,
        solana_usdc_mint: str,
        timeout: float = 15.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.base_rpc_url = base_rpc_url
        self.solana_rpc_url = solana_rpc_url
        self.base_usdc_contract = base_usdc_contract
        self.solana_usdc_mint = solana_usdc_mint
        self.timeout = timeout

    @property
    def name(self) -> str:
        return "custody"

    def _headers(self) -> dict[str, str]:
        return {"x-api-key": self.api_key, "Content-Type": "application/json"}

    @staticmethod
    def _parse_wallets(data: dict) -> UserWallets:
        wallets = data.get("wallets", data)
        return UserWallets(
            base_address=wallets["base_address"],
            solana_address=wallets["solana_address"],
        )

    async def create_user_wallets(self, user_id: str) -> UserWallets:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    f"{self.base_url}/wallets",
                    headers=self._headers(),
                    json={"user_id": user_id},
                )
        except httpx.HTTPError as e:
            logger.error(f"Custody service unreachable creating wallets for {user_id}: {e}")
            raise WalletServiceError(f"Wallet service unreachable: {e}") from e

        if response.status_code not in (200, 201):
            logger.error(
                f"Custody service returned {response.status_code} creating wallets for {user_id}"
            )
            raise WalletServiceError(f"Failed to create wallets (HTTP {response.status_code})")

        try:
            return self._parse_wallets(response.json())
        except (KeyError, ValueError) as e:
            raise WalletServiceError(f"Malformed wallet service response: {e}") from e

    async def get_user_wallets(self, user_id: str) -> Optional[UserWallets]:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(
                    f"{self.base_url}/wallets/{user_id}",
                    headers=self._headers(),
                )
        except httpx.HTTPError as e:
            logger.error(f"Custody service unreachable fetching wallets for {user_id}: {e}")
            raise WalletServiceError(f"Wallet service unreachable: {e}") from e

        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise WalletServiceError(f"Failed to fetch wallets (HTTP {response.status_code})")

        try:
            return self._parse_wallets(response.json())
        except (KeyError, ValueError) as e:
            raise WalletServiceError(f"Malformed wallet service response: {e}") from e

    async def get_wallet_balances(self, user_id: str) -> WalletBalances:
        try:
            wallets = await self.get_user_wallets(user_id)
        except WalletServiceError as e:
            logger.warning(f"Cannot read balances for {user_id}: {e}")
            return WalletBalances()

        if wallets is None:
            return WalletBalances()

        base, solana = await asyncio.gather(
            get_token_balance(
                wallets.base_address,
                self.base_usdc_contract,
                self.base_rpc_url,
                timeout=self.timeout,
            ),
            get_spl_token_balance(
                wallets.solana_address,
                self.solana_usdc_mint,
                self.solana_rpc_url,
                timeout=self.timeout,
            ),
        )
        return WalletBalances(base=base, solana=solana)
