"""Repository abstractions for database interactions."""

from .price_cache_repository import (
    CACHE_KEY_PREFIX,
    InMemoryPriceCache,
    PriceCache,
    PriceCacheRepository,
    cache_key,
)

__all__ = [
    "CACHE_KEY_PREFIX",
    "InMemoryPriceCache",
    "PriceCache",
    "PriceCacheRepository",
    "cache_key",
]
