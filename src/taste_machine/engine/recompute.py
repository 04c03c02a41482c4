"""Recompute Engine: drains the dirty set and publishes aesthetic scores.

For each claimed marker the score is recomputed from the incrementally
maintained rating state (``mode=incremental``) or from a full replay of
the NFT's events (``mode=replay``).  Publishing and releasing the marker
happen in the same transaction; if anything fails the marker stays and the
NFT is retried on the next drain.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from taste_machine.errors import NftNotFound, RecomputeError
from taste_machine.models.nft_rating import NftRating
from taste_machine.rating.aesthetic import AestheticScore, compute_aesthetic
from taste_machine.rating.config import RatingConfig
from taste_machine.rating.replay import ReplayState, replay_nft
from taste_machine.store.dirty import ClaimedMarker, DirtySet, release_in_session
from taste_machine.store.events import fire_count_in_session, sliders_for_in_session, votes_for_in_session
from taste_machine.store.locks import KeyedLock
from taste_machine.store.ratings import publish_in_session
from taste_machine.store.retry import RetryPolicy
from taste_machine.timeutil import utcnow

logger = structlog.get_logger()

# Published values closer than this are treated as unchanged.
_EPSILON = 1e-9


@dataclass
class RecomputeStats:
    """Summary of one drain."""

    claimed: int = 0
    processed: int = 0
    published: int = 0
    errors: int = 0


@dataclass(frozen=True)
class ReplayReport:
    nft_id: str
    state: ReplayState
    elo_drift: float
    slider_drift: float
    counts_match: bool
    written: bool


def score_row(row: NftRating, config: RatingConfig) -> AestheticScore:
    return compute_aesthetic(
        elo_mean=row.elo_mean,
        votes=row.total_head_to_head_votes,
        slider_mean=row.slider_mean,
        slider_count=row.slider_count,
        fire_count=row.fire_count,
        config=config.aesthetic,
    )


def _unchanged(row: NftRating, result: AestheticScore) -> bool:
    if row.aesthetic_score is None or row.aesthetic_confidence is None:
        return False
    return (
        abs(row.aesthetic_score - result.score) < _EPSILON
        and abs(row.aesthetic_confidence - result.confidence) < _EPSILON
    )


class RecomputeEngine:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        dirty: DirtySet,
        config: RatingConfig | None = None,
        retry: RetryPolicy | None = None,
        locks: KeyedLock | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.dirty = dirty
        self.config = config or RatingConfig()
        self.retry = retry or RetryPolicy(self.config.retry)
        self.locks = locks or KeyedLock()
        self._drain_lock = asyncio.Lock()

    async def _replay_in_session(self, session: AsyncSession, row: NftRating) -> ReplayReport:
        votes = await votes_for_in_session(session, row.nft_id)
        sliders = await sliders_for_in_session(session, row.nft_id)
        fires = await fire_count_in_session(session, row.nft_id)
        state = replay_nft(
            row.nft_id,
            votes,
            sliders,
            fire_count=fires,
            elo_config=self.config.elo,
            slider_config=self.config.slider,
        )
        return ReplayReport(
            nft_id=row.nft_id,
            state=state,
            elo_drift=state.elo_mean - row.elo_mean,
            slider_drift=state.slider.mean - row.slider_mean,
            counts_match=(
                state.wins == row.wins
                and state.losses == row.losses
                and state.slider.count == row.slider_count
                and state.fire_count == row.fire_count
            ),
            written=False,
        )

    @staticmethod
    def _write_state(row: NftRating, state: ReplayState) -> None:
        row.elo_mean = state.elo_mean
        row.elo_sigma = state.elo_sigma
        row.wins = state.wins
        row.losses = state.losses
        row.total_head_to_head_votes = state.total_head_to_head_votes
        row.slider_count = state.slider.count
        row.slider_mean = state.slider.mean
        row.slider_variance_accumulator = state.slider.m2
        row.fire_count = state.fire_count
        row.updated_at = utcnow()

    async def _recompute_one(self, marker: ClaimedMarker) -> bool:
        """Recompute, publish and release one NFT.  Returns ``True`` if a new score was written."""
        replay = self.config.recompute.mode == "replay"

        async def _op() -> bool:
            async with self.session_factory() as session, session.begin():
                row = await session.get(NftRating, marker.nft_id, with_for_update=True)
                if row is None:
                    raise RecomputeError(marker.nft_id, "no rating record")
                if replay:
                    report = await self._replay_in_session(session, row)
                    if abs(report.elo_drift) > 1e-6 or not report.counts_match:
                        logger.warning(
                            "replay_drift",
                            nft_id=row.nft_id,
                            elo_drift=round(report.elo_drift, 6),
                            slider_drift=round(report.slider_drift, 6),
                            counts_match=report.counts_match,
                        )
                    self._write_state(row, report.state)

                result = score_row(row, self.config)
                changed = not _unchanged(row, result)
                if changed:
                    publish_in_session(row, result)
                if not await release_in_session(session, marker):
                    logger.debug("dirty_marker_bumped", nft_id=marker.nft_id)
                return changed

        async with self.locks.hold(marker.nft_id):
            return await self.retry.run(_op, "recompute_nft")

    async def drain(self, max_items: int | None = None) -> RecomputeStats:
        """Process one batch of dirty NFTs.

        Concurrent calls are serialized so two drains never claim the same
        markers.  Per-NFT failures are counted and logged; they never abort
        the batch.
        """
        limit = max_items if max_items is not None else self.config.recompute.batch_size
        stats = RecomputeStats()
        if limit <= 0:
            return stats

        async with self._drain_lock:
            markers = await self.dirty.claim(limit)
            stats.claimed = len(markers)
            if not markers:
                return stats

            sem = asyncio.Semaphore(max(1, self.config.recompute.max_concurrency))

            async def _bounded(marker: ClaimedMarker) -> bool:
                async with sem:
                    return await self._recompute_one(marker)

            results = await asyncio.gather(*(_bounded(m) for m in markers), return_exceptions=True)

        for marker, result in zip(markers, results):
            if isinstance(result, BaseException):
                stats.errors += 1
                logger.warning(
                    "recompute_failed",
                    nft_id=marker.nft_id,
                    error=str(result),
                    error_type=type(result).__name__,
                )
                continue
            stats.processed += 1
            if result:
                stats.published += 1

        logger.info(
            "recompute_batch_complete",
            claimed=stats.claimed,
            processed=stats.processed,
            published=stats.published,
            errors=stats.errors,
        )
        return stats

    async def replay(self, nft_id: str, write: bool = False) -> ReplayReport:
        """Rebuild ``nft_id``'s state from its events and report the drift.

        With ``write=True`` the replayed state replaces the stored one and
        the NFT is rescored.
        """

        async def _op() -> ReplayReport:
            async with self.session_factory() as session, session.begin():
                row = await session.get(NftRating, nft_id, with_for_update=True)
                if row is None:
                    raise NftNotFound(nft_id)
                report = await self._replay_in_session(session, row)
                if write:
                    self._write_state(row, report.state)
                    publish_in_session(row, score_row(row, self.config))
                    report = replace(report, written=True)
                return report

        async with self.locks.hold(nft_id):
            report = await self.retry.run(_op, "replay_nft")
        logger.info(
            "nft_replayed",
            nft_id=nft_id,
            elo_drift=round(report.elo_drift, 6),
            counts_match=report.counts_match,
            written=report.written,
        )
        return report
