"""
In-process cache for loaded documents and compiled prompts.
"""

from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")


class LocalCache(Generic[T]):
    """
    Process-lifetime key/value cache with hit/miss counters.

    Construct one per cached concern and hand it to the component that
    needs it; tests get a fresh one each time.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._entries: dict[str, T] = {}
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Optional[T]:
        if key in self._entries:
            self.hits += 1
            return self._entries[key]
        self.misses += 1
        return None

    def put(self, key: str, value: T) -> T:
        self._entries[key] = value
        return value

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def keys(self) -> list[str]:
        return list(self._entries)

    def clear(self) -> int:
        """Drop every entry; returns how many were removed."""
        count = len(self._entries)
        self._entries.clear()
        self.hits = 0
        self.misses = 0
        return count

    def stats(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "size": len(self._entries),
            "hits": self.hits,
            "misses": self.misses,
        }
