"""Request dependencies: service lookup and caller identity."""

import hashlib
import hmac
import logging
from typing import Optional

from fastapi import Header, HTTPException, Request

from liquidesk.config import get_settings
from liquidesk.container import Services

logger = logging.getLogger(__name__)


def get_services(request: Request) -> Services:
    """Service graph attached to the app at startup."""
    return request.app.state.services


async def require_user(x_user_id: Optional[str] = Header(None)) -> str:
    """Authenticated caller identity, set by the upstream gateway."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Authentication required")
    return x_user_id.strip()


async def require_settlement_api_key(x_api_key: Optional[str] = Header(None)) -> None:
    """Verify the business API key if one is configured."""
    expected = get_settings().settlement_api_key
    if not expected:
        return
    if not x_api_key or not hmac.compare_digest(x_api_key, expected):
        raise HTTPException(status_code=401, detail="Invalid API key")


def verify_webhook_signature(payload: bytes, signature: str, secret: str) -> bool:
    """Verify an HMAC-SHA256 webhook signature.

    Args:
        payload: Raw request body
        signature: Hex signature from header, optionally prefixed "sha256="
        secret: Webhook secret key

    Returns:
        True if signature is valid
    """
    if "=" in signature:
        signature = signature.split("=", 1)[1]

    expected = hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature.lower())


async def require_webhook_signature(
    request: Request,
    x_webhook_signature: Optional[str] = Header(None),
) -> None:
    """Reject webhook deliveries whose signature does not match the body."""
    secret = get_settings().settlement_webhook_secret
    if not secret:
        return

    body = await request.body()
    if not x_webhook_signature or not verify_webhook_signature(
        body, x_webhook_signature, secret
    ):
        logger.warning("Rejected settlement webhook with invalid signature")
        raise HTTPException(status_code=401, detail="Invalid signature")
