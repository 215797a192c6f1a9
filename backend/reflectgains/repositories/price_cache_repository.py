"""Durable and in-memory stores for resolved transaction prices."""

from __future__ import annotations

from typing import Protocol

from sqlalchemy.orm import Session

from reflectgains.models import PriceCacheEntry, utcnow

CACHE_KEY_PREFIX = "txn-"


def cache_key(tx_hash: str) -> str:
    return f"{CACHE_KEY_PREFIX}{tx_hash}"


class PriceCache(Protocol):
    """Key-value store consulted by the price resolver."""

    def get(self, key: str) -> str | None:
        ...

    def set(self, key: str, value: str) -> None:
        ...


class InMemoryPriceCache:
    """Process-local cache used for dry runs and tests."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._entries: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._entries.get(key)

    def set(self, key: str, value: str) -> None:
        self._entries[key] = value

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class PriceCacheRepository:
    """Persist resolved prices in the ``price_cache`` table."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, key: str) -> str | None:
        entry = self._session.get(PriceCacheEntry, key)
        return entry.value if entry is not None else None

    def set(self, key: str, value: str) -> None:
        entry = self._session.get(PriceCacheEntry, key)
        if entry is None:
            entry = PriceCacheEntry(key=key, value=value)
            self._session.add(entry)
        else:
            entry.value = value
            entry.updated_at = utcnow()
        self._session.flush()


__all__ = [
    "CACHE_KEY_PREFIX",
    "InMemoryPriceCache",
    "PriceCache",
    "PriceCacheRepository",
    "cache_key",
]
