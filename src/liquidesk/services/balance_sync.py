"""Real-time USDC balance lookups on Base and Solana.

Each lookup returns None when the chain could not be read, so callers can
tell "zero balance" apart from "unknown balance".
"""

import logging
from decimal import Decimal
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

# ERC20 balanceOf(address) method signature
BALANCE_OF_SIGNATURE = "0x70a08231"

USDC_DECIMALS = 6


async def get_token_balance(
    address: str,
    token_contract: str,
    rpc_url: str,
    decimals: int = USDC_DECIMALS,
    timeout: float = 15.0,
) -> Optional[Decimal]:
    """Get an ERC20 token balance from an EVM chain (Base)."""
    address_padded = address.lower().replace("0x", "").zfill(64)
    data = f"{BALANCE_OF_SIGNATURE}{address_padded}"

    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            response = await client.post(
                rpc_url,
                json={
                    "jsonrpc": "2.0",
                    "method": "eth_call",
                    "params": [{"to": token_contract, "data": data}, "latest"],
                    "id": 1,
                },
            )

            if response.status_code == 200:
                result = response.json()
                if "error" in result:
                    logger.error(f"eth_call error for {address}: {result['error']}")
                    return None
                raw = result.get("result")
                if raw in (None, "0x"):
                    return Decimal("0")
                return Decimal(int(raw, 16)) / Decimal(10**decimals)

            logger.error(f"Base RPC returned HTTP {response.status_code} for {address}")

    except Exception as e:
        logger.error(f"Failed to get token balance for {address}: {e}")

    return None


async def get_spl_token_balance(
    owner: str,
    mint: str,
    rpc_url: str,
    timeout: float = 15.0,
) -> Optional[Decimal]:
    """Get an SPL token balance (Solana USDC) summed over the owner's accounts."""
    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            response = await client.post(
                rpc_url,
                json={
                    "jsonrpc": "2.0",
                    "id": 1,
                    "method": "getTokenAccountsByOwner",
                    "params": [owner, {"mint": mint}, {"encoding": "jsonParsed"}],
                },
            )

            if response.status_code == 200:
                data = response.json()
                if "error" in data:
                    logger.error(f"Solana RPC error for {owner}: {data['error']}")
                    return None

                total = Decimal("0")
                for account in data.get("result", {}).get("value", []):
                    token_amount = (
                        account.get("account", {})
                        .get("data", {})
                        .get("parsed", {})
                        .get("info", {})
                        .get("tokenAmount", {})
                    )
                    amount = token_amount.get("amount")
                    decimals = token_amount.get("decimals", USDC_DECIMALS)
                    if amount is not None:
                        total += Decimal(int(amount)) / Decimal(10**decimals)
                return total

            logger.error(f"Solana RPC returned HTTP {response.status_code} for {owner}")

    except Exception as e:
        logger.error(f"Failed to get SPL balance for {owner}: {e}")

    return None
