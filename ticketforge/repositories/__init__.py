"""
Cache store implementations.
"""

from ticketforge.repositories.base import BaseCacheStore
from ticketforge.repositories.cache_repo import InMemoryCacheRepository, RedisCacheRepository

__all__ = [
    "BaseCacheStore",
    "InMemoryCacheRepository",
    "RedisCacheRepository",
]
