"""Concurrency control for withdrawals.

Provides per-user locking so two withdrawals for the same position cannot both
pass the sufficiency check against the same balance snapshot.
"""

import asyncio
import logging
from typing import Optional

from liquidesk.errors import LiquidityError

logger = logging.getLogger(__name__)

# Global lock registry: user_id -> asyncio.Lock
_user_locks: dict[str, asyncio.Lock] = {}


class LockTimeoutError(LiquidityError):
    """Raised when a lock cannot be acquired within the timeout period."""

    status_code = 409


def get_user_lock(user_id: str) -> asyncio.Lock:
    """Get or create the lock for a user.

    The registry is only touched from the event loop thread and the lookup
    never awaits, so no registry lock is needed.
    """
    lock = _user_locks.get(user_id)
    if lock is None:
        lock = _user_locks[user_id] = asyncio.Lock()
    return lock


class PositionLock:
    """Exclusive access to a user's liquidity position.

    Wrap the read-check-record sequence of a withdrawal:

        async with PositionLock(user_id, operation="withdraw"):
            await ledger.refresh(user_id)
            ...
            await repo.create_transaction(...)
    """

    def __init__(
        self,
        user_id: str,
        timeout: Optional[float] = 30.0,
        operation: str = "position_operation",
    ):
        """Initialize the lock.

        Args:
            user_id: Owning user of the position
            timeout: Maximum time to wait for lock (None = wait forever)
            operation: Description of the operation for logging
        """
        self.user_id = user_id
        self.timeout = timeout
        self.operation = operation
        self._lock: Optional[asyncio.Lock] = None
        self._acquired = False

    async def __aenter__(self) -> "PositionLock":
        """Acquire the lock."""
        self._lock = get_user_lock(self.user_id)

        try:
            if self.timeout:
                await asyncio.wait_for(self._lock.acquire(), timeout=self.timeout)
            else:
                await self._lock.acquire()
        except asyncio.TimeoutError:
            logger.warning(
                f"Lock timeout for user {self.user_id} after {self.timeout}s: {self.operation}"
            )
            raise LockTimeoutError(
                f"Another {self.operation} is in progress for this position, try again"
            )

        self._acquired = True
        logger.debug(f"Lock acquired for user {self.user_id}: {self.operation}")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Release the lock."""
        if self._acquired and self._lock:
            self._lock.release()
            self._acquired = False
            logger.debug(f"Lock released for user {self.user_id}: {self.operation}")
        return False


def clear_user_locks() -> None:
    """Clear all user locks (useful for testing)."""
    _user_locks.clear()
