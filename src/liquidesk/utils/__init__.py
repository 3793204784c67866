"""Utility modules for Liquidesk."""

from liquidesk.utils.locks import LockTimeoutError, PositionLock, get_user_lock

__all__ = ["LockTimeoutError", "PositionLock", "get_user_lock"]
