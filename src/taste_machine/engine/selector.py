"""Matchup Selector: picks the next pair (or single NFT) to show a user.

Candidates come from a cached snapshot of the Rating Store and are scored
by the exploration/exploitation objective in ``engine.scoring``.  The
first NFT is a weighted random pick; its partner is a weighted pick from
candidates within a proximity band of the first NFT's Elo, widened until
someone qualifies.  Pairs still in cooldown are skipped; when every
attempt is exhausted (or the deadline passes) the cooldown is relaxed for
this one call instead of failing the request.
"""

from __future__ import annotations

import enum
import random
import time
from collections import Counter
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

import structlog

from taste_machine.engine.pool_cache import CandidatePoolCache, CandidateView, PoolKey
from taste_machine.engine.recent_pairs import RecentPairTracker, pair_key
from taste_machine.engine.scoring import score_pool
from taste_machine.errors import DuplicateSuppressed, TransientStoreError
from taste_machine.rating.config import RatingConfig
from taste_machine.store.ratings import CandidateFilter, RatingStore, per_collection_limit

logger = structlog.get_logger()


class SelectionType(str, enum.Enum):
    SAME_COLLECTION = "same_collection"
    CROSS_COLLECTION = "cross_collection"
    SLIDER = "slider"


@dataclass(frozen=True)
class MatchupRequest:
    type: SelectionType
    exclude_ids: frozenset[str] = field(default_factory=frozenset)
    collection_hint: str | None = None


@dataclass(frozen=True)
class Selection:
    """A matchup ready to show.

    Attributes:
        type: Requested selection type.
        nft_ids: One id (slider) or two ids (pairs).
        collections: Collection of each returned NFT, in the same order.
        relaxed: ``True`` if the cooldown was ignored to produce it.
        attempts: Selection attempts used.
    """

    type: SelectionType
    nft_ids: tuple[str, ...]
    collections: tuple[str, ...]
    relaxed: bool = False
    attempts: int = 1


@dataclass(frozen=True)
class PoolExhausted:
    """Not enough distinct candidates for the request.  Not an error."""

    type: SelectionType
    reason: str


SelectionResult = Selection | PoolExhausted


class MatchupSelector:
    """Read-only consumer of the Rating Store plus the Recent-Pair Tracker."""

    def __init__(
        self,
        store: RatingStore,
        tracker: RecentPairTracker,
        cache: CandidatePoolCache,
        config: RatingConfig | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self.tracker = tracker
        self.cache = cache
        self.config = config or RatingConfig()
        self.rng = rng or random.Random()
        self._clock = clock

    # ------------------------------------------------------------------
    # Pool loading
    # ------------------------------------------------------------------

    def _pool_key(self, request: MatchupRequest) -> PoolKey:
        if request.type is not SelectionType.CROSS_COLLECTION and request.collection_hint:
            return ("collection", request.collection_hint)
        return ("all", None)

    async def _fetch(self, key: PoolKey, exclude: frozenset[str] = frozenset()) -> tuple[CandidateView, ...]:
        flt = CandidateFilter(collection=key[1], exclude_ids=exclude, limit=self.config.selector.pool_size)
        if key[1] is None:
            rows = await self.store.get_candidates_per_collection(flt)
        else:
            rows = await self.store.get_candidates(flt)
        return tuple(CandidateView.from_row(row) for row in rows)

    def _truncated(self, key: PoolKey, pool: Sequence[CandidateView]) -> bool:
        """Whether the store may hold matches that did not fit in ``pool``."""
        size = self.config.selector.pool_size
        if key[1] is not None:
            return len(pool) >= size
        counts = Counter(c.collection for c in pool)
        per = per_collection_limit(size, len(counts))
        return any(n >= per for n in counts.values())

    async def _load_pool(self, request: MatchupRequest) -> tuple[CandidateView, ...] | PoolExhausted:
        key = self._pool_key(request)
        pool = self.cache.get(key)
        if pool is None:
            try:
                pool = await self._fetch(key)
            except TransientStoreError as exc:
                pool = self.cache.get_stale(key)
                if pool is None:
                    logger.warning("candidate_pool_unavailable", scope=key[0], collection=key[1], error=str(exc))
                    return PoolExhausted(request.type, "store_unavailable")
                logger.warning("candidate_pool_degraded", scope=key[0], collection=key[1], size=len(pool))
            else:
                self.cache.put(key, pool)
        if not request.exclude_ids:
            return pool
        kept = tuple(c for c in pool if c.nft_id not in request.exclude_ids)
        if len(kept) == len(pool) or not self._truncated(key, pool):
            return kept
        # The shared pool is capped, so excluded ids may have crowded out
        # valid candidates.  Query again without them; the result is
        # specific to this request and is not cached.
        try:
            return await self._fetch(key, frozenset(request.exclude_ids))
        except TransientStoreError as exc:
            logger.warning(
                "candidate_pool_degraded", scope=key[0], collection=key[1], size=len(kept), error=str(exc)
            )
            return kept

    # ------------------------------------------------------------------
    # Picking
    # ------------------------------------------------------------------

    def _weighted_pick(self, candidates: Sequence[CandidateView], scores: dict[str, float]) -> CandidateView:
        weights = [scores[c.nft_id] for c in candidates]
        return self.rng.choices(candidates, weights=weights, k=1)[0]

    def _partners(
        self,
        first: CandidateView,
        pool: Sequence[CandidateView],
        kind: SelectionType,
    ) -> list[CandidateView]:
        if kind is SelectionType.CROSS_COLLECTION:
            return [c for c in pool if c.collection != first.collection]
        return [c for c in pool if c.collection == first.collection and c.nft_id != first.nft_id]

    def _pick_in_band(
        self,
        first: CandidateView,
        partners: Sequence[CandidateView],
        scores: dict[str, float],
    ) -> CandidateView:
        """Weighted pick among partners closest in Elo, widening the band as needed."""
        cfg = self.config.selector
        band = cfg.proximity_band
        while True:
            in_band = [p for p in partners if abs(p.elo_mean - first.elo_mean) <= band]
            if in_band or band >= cfg.max_band:
                break
            band = cfg.max_band if cfg.band_growth <= 1 else min(band * cfg.band_growth, cfg.max_band)
        return self._weighted_pick(in_band or list(partners), scores)

    def _first_candidates(
        self, pool: Sequence[CandidateView], kind: SelectionType
    ) -> list[CandidateView] | str:
        """NFTs that can start a pair of ``kind``, or the reason none can."""
        if len(pool) < 2:
            return "not_enough_candidates"
        counts = Counter(c.collection for c in pool)
        if kind is SelectionType.CROSS_COLLECTION:
            if len(counts) < 2:
                return "single_collection"
            return list(pool)
        eligible = [c for c in pool if counts[c.collection] >= 2]
        if not eligible:
            return "no_collection_with_two_nfts"
        return eligible

    def _fresh_pair(
        self,
        pool: Sequence[CandidateView],
        firsts: Sequence[CandidateView],
        kind: SelectionType,
        scores: dict[str, float],
    ) -> tuple[CandidateView, CandidateView, int]:
        """Find and reserve a pair outside the cooldown window.

        Raises ``DuplicateSuppressed`` once attempts or time run out.
        """
        cfg = self.config.selector
        deadline = self._clock() + cfg.deadline_seconds
        rejected: set[str] = set()
        attempts = 0
        while attempts < cfg.max_attempts and self._clock() < deadline:
            remaining = [c for c in firsts if c.nft_id not in rejected]
            if not remaining:
                break
            attempts += 1
            first = self._weighted_pick(remaining, scores)
            fresh = [
                p
                for p in self._partners(first, pool, kind)
                if not self.tracker.was_shown_recently(pair_key(first.nft_id, p.nft_id))
            ]
            if not fresh:
                rejected.add(first.nft_id)
                continue
            second = self._pick_in_band(first, fresh, scores)
            # Another request may have taken the pair since the check above.
            if self.tracker.try_reserve(pair_key(first.nft_id, second.nft_id)):
                return first, second, attempts
        raise DuplicateSuppressed(attempts)

    def _select_pair(self, request: MatchupRequest, pool: Sequence[CandidateView]) -> SelectionResult:
        firsts = self._first_candidates(pool, request.type)
        if isinstance(firsts, str):
            return PoolExhausted(request.type, firsts)

        scores = score_pool(pool, self.config.selector, self.config.elo)
        relaxed = False
        try:
            first, second, attempts = self._fresh_pair(pool, firsts, request.type, scores)
        except DuplicateSuppressed as exc:
            relaxed = True
            attempts = exc.attempts
            first = self._weighted_pick(firsts, scores)
            second = self._pick_in_band(first, self._partners(first, pool, request.type), scores)
            self.tracker.record_shown(pair_key(first.nft_id, second.nft_id))
            logger.warning(
                "matchup_fallback_relaxed",
                type=request.type.value,
                attempts=attempts,
                pool_size=len(pool),
            )

        if request.type is SelectionType.CROSS_COLLECTION and first.collection == second.collection:
            raise AssertionError("cross-collection matchup drew one collection twice")

        return Selection(
            type=request.type,
            nft_ids=(first.nft_id, second.nft_id),
            collections=(first.collection, second.collection),
            relaxed=relaxed,
            attempts=attempts,
        )

    def _select_single(self, request: MatchupRequest, pool: Sequence[CandidateView]) -> SelectionResult:
        if not pool:
            return PoolExhausted(request.type, "not_enough_candidates")

        cfg = self.config.selector
        scores = score_pool(pool, cfg, self.config.elo, for_slider=True)
        deadline = self._clock() + cfg.deadline_seconds
        remaining = list(pool)
        attempts = 0
        while remaining and attempts < cfg.max_attempts and self._clock() < deadline:
            attempts += 1
            pick = self._weighted_pick(remaining, scores)
            if self.tracker.try_reserve(pair_key(pick.nft_id)):
                return Selection(request.type, (pick.nft_id,), (pick.collection,), attempts=attempts)
            remaining.remove(pick)

        pick = self._weighted_pick(pool, scores)
        self.tracker.record_shown(pair_key(pick.nft_id))
        logger.warning("matchup_fallback_relaxed", type=request.type.value, attempts=attempts, pool_size=len(pool))
        return Selection(request.type, (pick.nft_id,), (pick.collection,), relaxed=True, attempts=attempts)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def select(self, request: MatchupRequest) -> SelectionResult:
        """Return a ``Selection`` or, if the pool is too small, ``PoolExhausted``."""
        pool = await self._load_pool(request)
        if isinstance(pool, PoolExhausted):
            return pool

        if request.type is SelectionType.SLIDER:
            result = self._select_single(request, pool)
        else:
            result = self._select_pair(request, pool)

        if isinstance(result, PoolExhausted):
            logger.info("matchup_pool_exhausted", type=request.type.value, reason=result.reason, pool_size=len(pool))
        else:
            logger.debug(
                "matchup_selected",
                type=request.type.value,
                nft_ids=list(result.nft_ids),
                relaxed=result.relaxed,
                attempts=result.attempts,
            )
        return result
