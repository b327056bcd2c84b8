"""Shared key-value store and response cache."""

from .client import AsyncRedisClient, KeyValueStore
from .keys import CacheKeys
from .response import ABSENT, CacheLookup, ResponseCache

__all__ = [
    "ABSENT",
    "AsyncRedisClient",
    "CacheKeys",
    "CacheLookup",
    "KeyValueStore",
    "ResponseCache",
]
