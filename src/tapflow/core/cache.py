# Copyright (c) 2025, HaiyangLi <quantocean.li at gmail dot com>
# SPDX-License-Identifier: Apache-2.0

"""Bounded TTL caches for async tap results."""

from __future__ import annotations

import time
from collections import OrderedDict
from collections.abc import Callable, Hashable
from typing import Any, Generic, Protocol, TypeVar, runtime_checkable

import msgspec

from .options import DEFAULT_CACHE_CAPACITY

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class CacheEntry(msgspec.Struct, Generic[V], frozen=True):
    """Cached value with the time it was stored (seconds) and its TTL (ms)."""

    value: V
    inserted_at: float
    ttl_ms: int = 0

    @property
    def expires_at(self) -> float | None:
        """Expiry time in clock seconds, or None when the entry never expires."""
        if self.ttl_ms <= 0:
            return None
        return self.inserted_at + self.ttl_ms / 1000

    def expired(self, now: float) -> bool:
        expires_at = self.expires_at
        return expires_at is not None and now > expires_at


@runtime_checkable
class AsyncCache(Protocol[K, V]):
    """Cache contract consumed by async taps.

    Implementations may share entries across processes; the tap only needs
    these four operations.
    """

    def get(self, key: K) -> CacheEntry[V] | None:
        """Return the live entry for ``key`` or None if missing/expired."""
        ...

    def set(self, key: K, value: V, ttl_ms: int) -> None:
        """Insert or refresh ``key``; ``ttl_ms == 0`` means no expiry."""
        ...

    def delete(self, key: K) -> None:
        ...

    def __len__(self) -> int:
        ...


class LruTtlCache(Generic[K, V]):
    """In-memory LRU cache with per-entry TTL.

    Reads refresh recency but never extend the TTL. When the entry count
    exceeds ``max_entries`` the least recently used entries are evicted.
    """

    def __init__(
        self,
        max_entries: int = DEFAULT_CACHE_CAPACITY,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_entries = max(1, max_entries)
        self._clock = clock
        self._entries: OrderedDict[K, CacheEntry[V]] = OrderedDict()

    def get(self, key: K) -> CacheEntry[V] | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expired(self._clock()):
            del self._entries[key]
            return None
        self._entries.move_to_end(key)
        return entry

    def set(self, key: K, value: V, ttl_ms: int) -> None:
        self._entries.pop(key, None)
        self._entries[key] = CacheEntry(value=value, inserted_at=self._clock(), ttl_ms=ttl_ms)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def delete(self, key: K) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: Any) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        return len(self._entries)
