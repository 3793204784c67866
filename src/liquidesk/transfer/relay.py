"""Gasless relay transfer executor."""

import logging
from decimal import Decimal
from typing import Optional

import httpx

from liquidesk.transfer.base import (
    TransferError,
    TransferExecutor,
    TransferReceipt,
    TransferState,
    TransferStatus,
    TransferTimeout,
    explorer_url,
)

logger = logging.getLogger(__name__)


class GaslessRelayExecutor(TransferExecutor):
    """Executes USDC transfers through the gasless relay API.

    The relay signs with the user's custodial key and pays the network fee.
    The transaction id is sent as the idempotency key, so a retried request
    never produces a second transfer.
    """

    def __init__(self, base_url: str, api_key: str, timeout: float = 60.0):
        self.base_url = base_url.rstrip("/") if base_url else ""
        self.api_key = api_key
        self.timeout = timeout

    def is_configured(self) -> bool:
        return bool(self.base_url and self.api_key)

    def _headers(self, idempotency_key: str = "") -> dict[str, str]:
        headers = {"x-api-key": self.api_key, "Content-Type": "application/json"}
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key
        return headers

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return f"Relay returned HTTP {response.status_code}"
        return data.get("error") or data.get("message") or f"Relay returned HTTP {response.status_code}"

    def _receipt(self, network: str, data: dict) -> Optional[TransferReceipt]:
        tx_hash = data.get("tx_hash") or data.get("txHash")
        if not tx_hash:
            return None
        return TransferReceipt(
            tx_hash=tx_hash,
            explorer_url=data.get("explorer_url") or explorer_url(network, tx_hash),
            gas_fee_paid_by=data.get("gas_fee_paid_by") or "platform",
        )

    async def execute(
        self,
        user_id: str,
        network: str,
        destination: str,
        amount: Decimal,
        transaction_id: str,
    ) -> TransferReceipt:
        """Submit a transfer to the relay.

        Only a refused connection, a 4xx reply or an explicit failed status
        count as failures. Any other transport error, a 5xx reply or an
        unreadable success body leave the outcome unknown and raise
        TransferTimeout, so the record waits for reconciliation.
        """
        logger.info(
            f"Relaying {amount} USDC on {network} to {destination} (tx {transaction_id})"
        )

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    f"{self.base_url}/transfers",
                    headers=self._headers(transaction_id),
                    json={
                        "user_id": user_id,
                        "network": network,
                        "token": "USDC",
                        "to": destination,
                        "amount": str(amount),
                        "reference": transaction_id,
                    },
                )
        except (httpx.ConnectError, httpx.ConnectTimeout) as e:
            # Request never reached the relay
            raise TransferError(f"Relay unreachable: {e}") from e
        except httpx.TimeoutException as e:
            raise TransferTimeout(f"Relay did not answer for {transaction_id}") from e
        except httpx.HTTPError as e:
            raise TransferTimeout(f"Relay connection lost for {transaction_id}: {e}") from e

        if response.status_code >= 500:
            raise TransferTimeout(
                f"Relay returned HTTP {response.status_code} for {transaction_id}"
            )
        if response.status_code not in (200, 201):
            raise TransferError(self._error_message(response))

        try:
            data = response.json()
        except ValueError as e:
            raise TransferTimeout(f"Relay returned an unreadable body for {transaction_id}") from e

        if data.get("status") == "failed":
            raise TransferError(data.get("error") or "Relay reported failure")

        receipt = self._receipt(network, data)
        if receipt is None:
            raise TransferTimeout(f"Relay accepted {transaction_id} without a transaction hash")
        return receipt

    async def get_status(self, transaction_id: str) -> TransferStatus:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(
                    f"{self.base_url}/transfers/{transaction_id}",
                    headers=self._headers(),
                )
        except httpx.HTTPError as e:
            logger.warning(f"Relay status lookup failed for {transaction_id}: {e}")
            return TransferStatus(state=TransferState.UNKNOWN)

        if response.status_code != 200:
            return TransferStatus(state=TransferState.UNKNOWN)

        try:
            data = response.json()
        except ValueError:
            logger.warning(f"Relay status for {transaction_id} was not JSON")
            return TransferStatus(state=TransferState.UNKNOWN)

        state = data.get("status")
        if state == "confirmed":
            receipt = self._receipt(data.get("network", ""), data)
            if receipt is None:
                logger.warning(f"Relay reports {transaction_id} confirmed without a hash")
                return TransferStatus(state=TransferState.UNKNOWN)
            return TransferStatus(state=TransferState.CONFIRMED, receipt=receipt)
        if state == "failed":
            return TransferStatus(
                state=TransferState.FAILED,
                reason=data.get("error") or "Relay reported failure",
            )
        return TransferStatus(state=TransferState.UNKNOWN)
