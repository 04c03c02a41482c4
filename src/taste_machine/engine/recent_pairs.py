"""Recent-Pair Tracker: time-windowed duplicate suppression for matchups.

Keys are order-independent: a pair is stored as its sorted id tuple and a
slider draw as a one-element tuple.  Every selection request reads and
writes the tracker, so all access goes through one lock; ``try_reserve``
makes the check-and-record step atomic so two concurrent requests cannot
both win the same pair.
"""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass

import structlog

from taste_machine.rating.config import RecentPairsConfig

logger = structlog.get_logger()

PairKey = tuple[str, ...]


def pair_key(*nft_ids: str) -> PairKey:
    """Order-independent key for a pair, or a single-NFT key for slider draws."""
    if len(nft_ids) not in (1, 2):
        raise ValueError("a recent-pair key covers one or two NFTs")
    return tuple(sorted(nft_ids))


@dataclass(frozen=True)
class TrackerStats:
    tracked: int
    active: int
    evicted: int
    cooldown_seconds: float
    max_entries: int


class RecentPairTracker:
    """Maps pair keys to the time they were last shown.

    Entries older than ``cooldown_seconds`` count as not recent even while
    still stored.  Keys are kept in the order they were last shown, so with a
    non-decreasing clock the expired entries always form the front of the
    map.  When more than ``max_entries`` keys are tracked, eviction pops from
    the front: expired entries go first, then the least recently shown.
    """

    def __init__(
        self,
        config: RecentPairsConfig | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config or RecentPairsConfig()
        self._clock = clock
        self._entries: OrderedDict[PairKey, float] = OrderedDict()
        self._lock = threading.Lock()
        self._evicted = 0

    def _is_active(self, shown_at: float, now: float) -> bool:
        return now - shown_at < self.config.cooldown_seconds

    def _record(self, key: PairKey, now: float) -> None:
        # Most recently shown keys live at the end.
        self._entries[key] = now
        self._entries.move_to_end(key)
        self._evict()

    def _evict(self) -> None:
        overflow = len(self._entries) - self.config.max_entries
        while overflow > 0:
            self._entries.popitem(last=False)
            self._evicted += 1
            overflow -= 1

    def was_shown_recently(self, key: PairKey, now: float | None = None) -> bool:
        now = self._clock() if now is None else now
        with self._lock:
            shown_at = self._entries.get(key)
            return shown_at is not None and self._is_active(shown_at, now)

    def record_shown(self, key: PairKey, now: float | None = None) -> None:
        now = self._clock() if now is None else now
        with self._lock:
            self._record(key, now)

    def try_reserve(self, key: PairKey, now: float | None = None) -> bool:
        """Record ``key`` as shown unless it is still in cooldown.

        Returns ``True`` if this call reserved the key.
        """
        now = self._clock() if now is None else now
        with self._lock:
            shown_at = self._entries.get(key)
            if shown_at is not None and self._is_active(shown_at, now):
                return False
            self._record(key, now)
            return True

    def prune(self, now: float | None = None) -> int:
        """Drop expired entries.  Returns the number removed."""
        now = self._clock() if now is None else now
        with self._lock:
            removed = 0
            while self._entries:
                shown_at = next(iter(self._entries.values()))
                if self._is_active(shown_at, now):
                    break
                self._entries.popitem(last=False)
                removed += 1
        return removed

    def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        logger.info("recent_pairs_cleared", count=count)
        return count

    def stats(self, now: float | None = None) -> TrackerStats:
        now = self._clock() if now is None else now
        with self._lock:
            active = sum(1 for t in self._entries.values() if self._is_active(t, now))
            return TrackerStats(
                tracked=len(self._entries),
                active=active,
                evicted=self._evicted,
                cooldown_seconds=self.config.cooldown_seconds,
                max_entries=self.config.max_entries,
            )

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
