"""Candidate pool cache owned by one service instance.

Caches the Rating Store's candidate snapshots per ``(scope, collection)``
for a short TTL so bursts of matchup requests do not each query the store.
Expired entries are kept around (up to ``max_pools``) as a stale fallback
for when the store is unreachable.
"""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass

from taste_machine.rating.config import PoolCacheConfig


@dataclass(frozen=True)
class CandidateView:
    """Read-only snapshot of the rating fields the selector needs."""

    nft_id: str
    collection: str
    elo_mean: float
    elo_sigma: float
    total_head_to_head_votes: int
    slider_count: int
    slider_mean: float
    aesthetic_score: float | None
    aesthetic_confidence: float | None

    @classmethod
    def from_row(cls, row) -> CandidateView:
        return cls(
            nft_id=row.nft_id,
            collection=row.collection,
            elo_mean=row.elo_mean,
            elo_sigma=row.elo_sigma,
            total_head_to_head_votes=row.total_head_to_head_votes,
            slider_count=row.slider_count,
            slider_mean=row.slider_mean,
            aesthetic_score=row.aesthetic_score,
            aesthetic_confidence=row.aesthetic_confidence,
        )


PoolKey = tuple[str, str | None]


class CandidatePoolCache:
    def __init__(
        self,
        config: PoolCacheConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or PoolCacheConfig()
        self._clock = clock
        self._pools: OrderedDict[PoolKey, tuple[float, tuple[CandidateView, ...]]] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: PoolKey) -> tuple[CandidateView, ...] | None:
        """Return a fresh pool for ``key``, or ``None`` if missing or expired."""
        with self._lock:
            entry = self._pools.get(key)
            if entry is None:
                return None
            stored_at, pool = entry
            if self._clock() - stored_at >= self.config.ttl_seconds:
                return None
            self._pools.move_to_end(key)
            return pool

    def get_stale(self, key: PoolKey) -> tuple[CandidateView, ...] | None:
        """Return the last pool stored for ``key`` regardless of age."""
        with self._lock:
            entry = self._pools.get(key)
            return entry[1] if entry is not None else None

    def put(self, key: PoolKey, pool: tuple[CandidateView, ...]) -> None:
        with self._lock:
            self._pools[key] = (self._clock(), pool)
            self._pools.move_to_end(key)
            while len(self._pools) > self.config.max_pools:
                self._pools.popitem(last=False)

    def find(self, nft_id: str) -> CandidateView | None:
        """Look ``nft_id`` up in any cached pool (freshest first)."""
        with self._lock:
            for _, pool in reversed(self._pools.values()):
                for view in pool:
                    if view.nft_id == nft_id:
                        return view
        return None

    def invalidate(self, collection: str | None = None) -> int:
        """Drop pools for ``collection`` (every pool when ``None``)."""
        with self._lock:
            if collection is None:
                count = len(self._pools)
                self._pools.clear()
                return count
            doomed = [k for k in self._pools if k[1] == collection or k[1] is None]
            for key in doomed:
                del self._pools[key]
            return len(doomed)

    def clear(self) -> int:
        return self.invalidate(None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._pools)
