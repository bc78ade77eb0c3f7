"""
Cache store interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional


class BaseCacheStore(ABC):
    """
    String key/value store with per-entry TTL.

    Callers treat every method as fallible: a raised error means
    "carry on uncached".
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Get a value, or None when absent or expired."""
        ...

    @abstractmethod
    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> bool:
        """Store a value; returns True on success."""
        ...

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete a key."""
        ...

    @abstractmethod
    async def clear(self) -> int:
        """Remove every entry this store owns; returns how many."""
        ...

    @abstractmethod
    async def get_stats(self) -> dict[str, Any]:
        """Backend statistics."""
        ...

    async def exists(self, key: str) -> bool:
        """Check if a key holds a live value."""
        return await self.get(key) is not None

    async def close(self) -> None:
        return None
