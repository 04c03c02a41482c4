"""Rating Store: durable per-NFT rating state.

Public methods are self-contained units of work (one session, one
transaction) wrapped in the shared retry policy.  The module-level
``*_in_session`` helpers run inside a caller's transaction so the
Ingestion Gateway and Recompute Engine can combine a rating mutation with
an event append or a marker release atomically.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field, replace

import sqlalchemy as sa
import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from taste_machine.errors import NftNotFound
from taste_machine.models.nft_rating import NftRating
from taste_machine.rating.aesthetic import AestheticScore
from taste_machine.rating.config import RatingConfig
from taste_machine.rating.elo import clamp_mean
from taste_machine.rating.stats import RunningStats
from taste_machine.store.dialect import upsert_for
from taste_machine.store.locks import KeyedLock
from taste_machine.store.retry import RetryPolicy
from taste_machine.timeutil import utcnow

logger = structlog.get_logger()


@dataclass(frozen=True)
class CandidateFilter:
    """Candidate pool query.

    Attributes:
        collection: Restrict to one collection (``None`` = all).
        min_votes: Inclusive lower bound on head-to-head votes.
        max_votes: Inclusive upper bound on head-to-head votes.
        exclude_ids: NFT ids to leave out.
        limit: Maximum pool size.
    """

    collection: str | None = None
    min_votes: int | None = None
    max_votes: int | None = None
    exclude_ids: frozenset[str] = field(default_factory=frozenset)
    limit: int = 200


# ---------------------------------------------------------------------------
# In-session helpers
# ---------------------------------------------------------------------------


async def load_for_update(session: AsyncSession, nft_ids: Iterable[str]) -> dict[str, NftRating]:
    """Load rating rows for mutation, raising ``NftNotFound`` for any missing id."""
    ids = sorted(set(nft_ids))
    result = await session.execute(
        sa.select(NftRating)
        .where(NftRating.nft_id.in_(ids))
        .order_by(NftRating.nft_id)
        .with_for_update()
    )
    rows = {row.nft_id: row for row in result.scalars().all()}
    for nft_id in ids:
        if nft_id not in rows:
            raise NftNotFound(nft_id)
    return rows


def per_collection_limit(limit: int, collections: int) -> int:
    """Rows each collection contributes to a cross-collection pool of ``limit``."""
    return max(2, limit // max(collections, 1))


def _candidate_query(flt: CandidateFilter) -> sa.Select:
    stmt = sa.select(NftRating)
    if flt.collection is not None:
        stmt = stmt.where(NftRating.collection == flt.collection)
    if flt.min_votes is not None:
        stmt = stmt.where(NftRating.total_head_to_head_votes >= flt.min_votes)
    if flt.max_votes is not None:
        stmt = stmt.where(NftRating.total_head_to_head_votes <= flt.max_votes)
    if flt.exclude_ids:
        stmt = stmt.where(NftRating.nft_id.not_in(sorted(flt.exclude_ids)))
    return stmt


async def candidate_rows(session: AsyncSession, flt: CandidateFilter) -> list[NftRating]:
    """Least-voted half of the pool plus a random sample of the remaining matches."""
    cold_limit = max(1, flt.limit // 2)
    cold_result = await session.execute(
        _candidate_query(flt)
        .order_by(NftRating.total_head_to_head_votes.asc(), NftRating.nft_id)
        .limit(cold_limit)
    )
    pool = list(cold_result.scalars().all())
    remaining = flt.limit - len(pool)
    if remaining > 0 and len(pool) == cold_limit:
        taken = [row.nft_id for row in pool]
        rest = await session.execute(
            _candidate_query(flt)
            .where(NftRating.nft_id.not_in(taken))
            .order_by(sa.func.random())
            .limit(remaining)
        )
        pool.extend(rest.scalars().all())
    return pool


def slider_stats(row: NftRating) -> RunningStats:
    return RunningStats(
        count=row.slider_count,
        mean=row.slider_mean,
        m2=row.slider_variance_accumulator,
    )


def apply_slider_in_session(row: NftRating, raw_score: float) -> RunningStats:
    """Fold one slider sample into ``row`` with Welford's update."""
    stats = slider_stats(row).push(raw_score)
    row.slider_count = stats.count
    row.slider_mean = stats.mean
    row.slider_variance_accumulator = stats.m2
    row.updated_at = utcnow()
    return stats


def publish_in_session(row: NftRating, result: AestheticScore) -> None:
    row.aesthetic_score = result.score
    row.aesthetic_confidence = result.confidence
    row.aesthetic_elo_component = result.elo_component
    row.aesthetic_slider_component = result.slider_component
    row.last_scored_at = utcnow()


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class RatingStore:
    """Reads and atomic per-record writes of ``nft_ratings``."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        config: RatingConfig | None = None,
        retry: RetryPolicy | None = None,
        locks: KeyedLock | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.config = config or RatingConfig()
        self.retry = retry or RetryPolicy(self.config.retry)
        self.locks = locks or KeyedLock()

    # -- catalog ----------------------------------------------------------

    async def register(
        self,
        nft_id: str,
        collection: str,
        name: str | None = None,
        image_url: str | None = None,
    ) -> NftRating:
        """Create the rating row for a catalog NFT, or refresh its display data.

        Rating state and ``collection`` of an existing row are left
        untouched.
        """
        elo = self.config.elo

        async def _op() -> NftRating:
            async with self.session_factory() as session, session.begin():
                stmt = upsert_for(session, NftRating.__table__).values(
                    nft_id=nft_id,
                    collection=collection,
                    name=name,
                    image_url=image_url,
                    elo_mean=elo.default_mean,
                    elo_sigma=elo.default_sigma,
                    total_head_to_head_votes=0,
                    wins=0,
                    losses=0,
                    slider_mean=self.config.slider.default_mean,
                    slider_variance_accumulator=0.0,
                    slider_count=0,
                    fire_count=0,
                    updated_at=utcnow(),
                )
                stmt = stmt.on_conflict_do_update(
                    index_elements=[NftRating.nft_id],
                    set_={
                        "name": sa.func.coalesce(stmt.excluded.name, NftRating.name),
                        "image_url": sa.func.coalesce(stmt.excluded.image_url, NftRating.image_url),
                    },
                )
                await session.execute(stmt)
                row = await session.get(NftRating, nft_id, populate_existing=True)
                if row.collection != collection:
                    logger.warning(
                        "nft_collection_mismatch",
                        nft_id=nft_id,
                        stored=row.collection,
                        requested=collection,
                    )
                return row

        return await self.retry.run(_op, "register_nft")

    # -- reads ------------------------------------------------------------

    async def get(self, nft_id: str) -> NftRating | None:
        """Return the rating record, or ``None`` if the NFT is unknown."""

        async def _op() -> NftRating | None:
            async with self.session_factory() as session:
                return await session.get(NftRating, nft_id)

        return await self.retry.run(_op, "get_rating")

    async def get_many(self, nft_ids: Iterable[str]) -> dict[str, NftRating]:
        ids = sorted(set(nft_ids))
        if not ids:
            return {}

        async def _op() -> dict[str, NftRating]:
            async with self.session_factory() as session:
                result = await session.execute(sa.select(NftRating).where(NftRating.nft_id.in_(ids)))
                return {row.nft_id: row for row in result.scalars().all()}

        return await self.retry.run(_op, "get_ratings")

    async def get_candidates(self, flt: CandidateFilter) -> list[NftRating]:
        """Return up to ``flt.limit`` candidates matching the filter.

        Half of the pool is the least-voted NFTs (so cold-start items are
        always present even in a large catalog); the rest is a random
        sample of the remaining matches.
        """

        async def _op() -> list[NftRating]:
            async with self.session_factory() as session:
                return await candidate_rows(session, flt)

        return await self.retry.run(_op, "get_candidates")

    async def get_candidates_per_collection(self, flt: CandidateFilter) -> list[NftRating]:
        """Candidate pool across all collections, sampled per collection.

        Each collection contributes up to ``per_collection_limit(flt.limit, n)``
        rows, so one large collection of cold NFTs cannot crowd the others
        out of the pool.  ``flt.collection`` is ignored.
        """

        async def _op() -> list[NftRating]:
            async with self.session_factory() as session:
                result = await session.execute(
                    sa.select(NftRating.collection).distinct().order_by(NftRating.collection)
                )
                names = list(result.scalars().all())
                per = per_collection_limit(flt.limit, len(names))
                pool: list[NftRating] = []
                for name in names:
                    pool.extend(await candidate_rows(session, replace(flt, collection=name, limit=per)))
                return pool

        return await self.retry.run(_op, "get_candidates_per_collection")

    async def collections(self) -> list[str]:
        async def _op() -> list[str]:
            async with self.session_factory() as session:
                result = await session.execute(
                    sa.select(NftRating.collection).distinct().order_by(NftRating.collection)
                )
                return list(result.scalars().all())

        return await self.retry.run(_op, "list_collections")

    async def leaderboard(self, collection: str | None = None, limit: int = 50) -> list[NftRating]:
        """NFTs by published aesthetic score, Elo-derived estimate for unscored ones."""
        aes = self.config.aesthetic
        raw = (NftRating.elo_mean - aes.elo_band_low) / (aes.elo_band_high - aes.elo_band_low) * 100.0
        # Same 0..100 clamp as the reported elo component, so ties order by id.
        estimate = sa.case((raw > 100.0, 100.0), (raw < 0.0, 0.0), else_=raw)
        ranking = sa.func.coalesce(NftRating.aesthetic_score, estimate)

        async def _op() -> list[NftRating]:
            async with self.session_factory() as session:
                stmt = sa.select(NftRating)
                if collection is not None:
                    stmt = stmt.where(NftRating.collection == collection)
                stmt = stmt.order_by(ranking.desc(), NftRating.nft_id).limit(limit)
                result = await session.execute(stmt)
                return list(result.scalars().all())

        return await self.retry.run(_op, "leaderboard")

    # -- atomic writes ----------------------------------------------------

    async def apply_elo_update(self, nft_id: str, delta: float) -> NftRating:
        """Add ``delta`` to the NFT's Elo mean, clamped to the configured bounds."""

        async def _op() -> NftRating:
            async with self.session_factory() as session, session.begin():
                row = (await load_for_update(session, [nft_id]))[nft_id]
                row.elo_mean = clamp_mean(row.elo_mean + delta, self.config.elo)
                row.updated_at = utcnow()
                return row

        async with self.locks.hold(nft_id):
            return await self.retry.run(_op, "apply_elo_update")

    async def apply_slider_sample(self, nft_id: str, raw_score: float) -> NftRating:
        async def _op() -> NftRating:
            async with self.session_factory() as session, session.begin():
                row = (await load_for_update(session, [nft_id]))[nft_id]
                apply_slider_in_session(row, raw_score)
                return row

        async with self.locks.hold(nft_id):
            return await self.retry.run(_op, "apply_slider_sample")

    async def publish_aesthetic_score(self, nft_id: str, score: float, confidence: float) -> None:
        """Publish a score computed elsewhere (components are cleared)."""

        async def _op() -> None:
            async with self.session_factory() as session, session.begin():
                row = (await load_for_update(session, [nft_id]))[nft_id]
                row.aesthetic_score = min(100.0, max(0.0, score))
                row.aesthetic_confidence = min(1.0, max(0.0, confidence))
                row.aesthetic_elo_component = None
                row.aesthetic_slider_component = None
                row.last_scored_at = utcnow()

        async with self.locks.hold(nft_id):
            await self.retry.run(_op, "publish_aesthetic_score")
