"""Durable key-value store interface."""
from abc import ABC, abstractmethod
from typing import Any, Optional

from syncqueue.logging_conf import logger


class DurableStore(ABC):
    """Async key-value persistence that survives restarts.

    Implementations never raise on a missing key or on the backend being
    unavailable: reads return ``None`` and writes become no-ops, after a single
    warning per store instance.
    """

    def __init__(self):
        self._unavailable_logged = False

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Return the value stored under ``key`` or ``None``."""

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        """Store a JSON-compatible ``value`` under ``key``."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove ``key``; missing keys are ignored."""

    async def close(self) -> None:
        pass

    def _degrade(self, operation: str, key: str, error: Exception) -> None:
        """Log storage unavailability once, then stay quiet."""
        if self._unavailable_logged:
            logger.debug(f"{type(self).__name__} {operation} {key} skipped: {error}")
            return
        self._unavailable_logged = True
        logger.warning(
            f"{type(self).__name__} unavailable during {operation} {key}; "
            f"continuing without durable storage: {error}"
        )
