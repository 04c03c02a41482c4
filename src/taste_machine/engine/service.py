"""Service container wiring the rating engine components together.

One ``TasteMachine`` per process (or per test).  It owns the in-memory
state -- recent pairs, candidate pool cache, per-NFT locks -- so nothing
lives in module-level globals.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from datetime import datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from taste_machine.engine.ingestion import IngestionGateway
from taste_machine.engine.pool_cache import CandidatePoolCache
from taste_machine.engine.recent_pairs import RecentPairTracker
from taste_machine.engine.recompute import RecomputeEngine
from taste_machine.engine.selector import MatchupRequest, MatchupSelector, SelectionResult
from taste_machine.errors import TransientStoreError
from taste_machine.models.nft_rating import NftRating
from taste_machine.rating.aesthetic import elo_component
from taste_machine.rating.config import RatingConfig
from taste_machine.store.dirty import DirtySet
from taste_machine.store.events import EventLog
from taste_machine.store.locks import KeyedLock
from taste_machine.store.ratings import RatingStore
from taste_machine.store.retry import RetryPolicy

logger = structlog.get_logger()


@dataclass(frozen=True)
class ScoreView:
    """Aesthetic score as served to clients.

    ``score``/``confidence``/``last_scored_at`` are ``None`` until the
    recompute engine first publishes; ``elo_estimate`` is always present
    as the fallback.  ``degraded`` is set when the store was unreachable
    and the answer came from cached candidate data.
    """

    nft_id: str
    score: float | None
    confidence: float | None
    last_scored_at: datetime | None
    elo_estimate: float
    degraded: bool = False


class TasteMachine:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        config: RatingConfig | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.config = config or RatingConfig()
        self.session_factory = session_factory
        retry = RetryPolicy(self.config.retry)
        locks = KeyedLock()

        self.ratings = RatingStore(session_factory, self.config, retry, locks)
        self.events = EventLog(session_factory, retry)
        self.dirty = DirtySet(session_factory, retry)
        self.tracker = RecentPairTracker(self.config.recent_pairs)
        self.pool_cache = CandidatePoolCache(self.config.pool_cache)
        self.selector = MatchupSelector(self.ratings, self.tracker, self.pool_cache, self.config, rng=rng)
        self.gateway = IngestionGateway(session_factory, self.tracker, self.config, retry, locks)
        self.recompute = RecomputeEngine(session_factory, self.dirty, self.config, retry, locks)

    async def register_nft(
        self,
        nft_id: str,
        collection: str,
        name: str | None = None,
        image_url: str | None = None,
    ) -> NftRating:
        row = await self.ratings.register(nft_id, collection, name, image_url)
        # New NFTs must be visible to the selector right away (cold start).
        self.pool_cache.invalidate(row.collection)
        logger.info("nft_registered", nft_id=nft_id, collection=row.collection)
        return row

    async def select_matchup(self, request: MatchupRequest) -> SelectionResult:
        return await self.selector.select(request)

    async def get_aesthetic_score(self, nft_id: str) -> ScoreView | None:
        """Published score for ``nft_id``, or ``None`` if the NFT is unknown.

        If the store stays unreachable, answers from the candidate pool
        cache with ``degraded=True``; with nothing cached the
        ``TransientStoreError`` propagates.
        """
        aes = self.config.aesthetic
        try:
            row = await self.ratings.get(nft_id)
        except TransientStoreError:
            view = self.pool_cache.find(nft_id)
            if view is None:
                raise
            logger.warning("aesthetic_score_degraded", nft_id=nft_id)
            return ScoreView(
                nft_id=nft_id,
                score=view.aesthetic_score,
                confidence=view.aesthetic_confidence,
                last_scored_at=None,
                elo_estimate=elo_component(view.elo_mean, aes),
                degraded=True,
            )
        if row is None:
            return None
        return ScoreView(
            nft_id=nft_id,
            score=row.aesthetic_score,
            confidence=row.aesthetic_confidence,
            last_scored_at=row.last_scored_at,
            elo_estimate=elo_component(row.elo_mean, aes),
        )

    def clear_recent_pairs(self) -> dict[str, int]:
        """Forget every recently shown pair and drop cached candidate pools."""
        pairs = self.tracker.clear()
        pools = self.pool_cache.clear()
        return {"pairs_cleared": pairs, "pools_cleared": pools}
