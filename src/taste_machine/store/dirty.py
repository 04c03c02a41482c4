"""Dirty-Set Tracker: NFTs awaiting aesthetic score recomputation.

At most one marker exists per NFT.  Marking is an ``INSERT ... ON CONFLICT
DO UPDATE`` so concurrent marks for the same NFT collapse instead of
racing.  Draining is claim-then-release: a claimed marker is only deleted
if ``last_event_at`` has not moved since the claim.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

import sqlalchemy as sa
import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from taste_machine.models.dirty_marker import DirtyMarker
from taste_machine.store.dialect import upsert_for
from taste_machine.store.retry import RetryPolicy
from taste_machine.timeutil import utcnow

logger = structlog.get_logger()

HIGH_PRIORITY = 10

REASONS = ("new_vote", "new_slider", "new_fire", "manual", "migration")


@dataclass(frozen=True)
class ClaimedMarker:
    nft_id: str
    priority: int
    reason: str
    enqueued_at: datetime
    last_event_at: datetime


@dataclass(frozen=True)
class DirtyStatus:
    dirty_count: int
    high_priority_count: int
    oldest_age_seconds: float | None


async def mark_in_session(
    session: AsyncSession,
    nft_ids: Iterable[str],
    reason: str,
    priority: int = 0,
) -> None:
    """Insert or bump markers for ``nft_ids`` inside the caller's transaction.

    An existing marker keeps its ``enqueued_at``, takes the higher of the
    two priorities (and that mark's reason) and gets a fresh
    ``last_event_at``.
    """
    if reason not in REASONS:
        raise ValueError(f"unknown dirty reason {reason!r}")
    ids = sorted(set(nft_ids))
    if not ids:
        return
    now = utcnow()
    stmt = upsert_for(session, DirtyMarker.__table__).values(
        [
            {
                "nft_id": nft_id,
                "priority": priority,
                "reason": reason,
                "enqueued_at": now,
                "last_event_at": now,
            }
            for nft_id in ids
        ]
    )
    raises = stmt.excluded.priority > DirtyMarker.priority
    stmt = stmt.on_conflict_do_update(
        index_elements=[DirtyMarker.nft_id],
        set_={
            "priority": sa.case((raises, stmt.excluded.priority), else_=DirtyMarker.priority),
            "reason": sa.case((raises, stmt.excluded.reason), else_=DirtyMarker.reason),
            "last_event_at": stmt.excluded.last_event_at,
        },
    )
    await session.execute(stmt)


async def release_in_session(session: AsyncSession, marker: ClaimedMarker) -> bool:
    """Delete ``marker`` unless it was re-marked after being claimed.

    Returns ``True`` if the marker was removed.
    """
    result = await session.execute(
        sa.delete(DirtyMarker).where(
            DirtyMarker.nft_id == marker.nft_id,
            DirtyMarker.last_event_at == marker.last_event_at,
        )
    )
    return result.rowcount > 0


class DirtySet:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        retry: RetryPolicy | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.retry = retry or RetryPolicy()

    async def mark(self, nft_ids: Iterable[str], reason: str, priority: int = 0) -> None:
        ids = list(nft_ids)

        async def _op() -> None:
            async with self.session_factory() as session, session.begin():
                await mark_in_session(session, ids, reason, priority)

        await self.retry.run(_op, "mark_dirty")
        logger.info("nfts_marked_dirty", count=len(set(ids)), reason=reason, priority=priority)

    async def claim(self, limit: int) -> list[ClaimedMarker]:
        """Return up to ``limit`` markers, highest priority first, FIFO within a priority.

        Claiming does not remove anything; see ``release_in_session``.
        """

        async def _op() -> list[ClaimedMarker]:
            async with self.session_factory() as session:
                result = await session.execute(
                    sa.select(DirtyMarker)
                    .order_by(
                        DirtyMarker.priority.desc(),
                        DirtyMarker.enqueued_at.asc(),
                        DirtyMarker.nft_id,
                    )
                    .limit(limit)
                )
                return [
                    ClaimedMarker(
                        nft_id=m.nft_id,
                        priority=m.priority,
                        reason=m.reason,
                        enqueued_at=m.enqueued_at,
                        last_event_at=m.last_event_at,
                    )
                    for m in result.scalars().all()
                ]

        return await self.retry.run(_op, "claim_dirty")

    async def get(self, nft_id: str) -> DirtyMarker | None:
        async def _op() -> DirtyMarker | None:
            async with self.session_factory() as session:
                return await session.get(DirtyMarker, nft_id)

        return await self.retry.run(_op, "get_dirty")

    async def status(self) -> DirtyStatus:
        async def _op() -> DirtyStatus:
            async with self.session_factory() as session:
                row = (
                    await session.execute(
                        sa.select(
                            sa.func.count(),
                            sa.func.count().filter(DirtyMarker.priority >= HIGH_PRIORITY),
                            sa.func.min(DirtyMarker.enqueued_at),
                        ).select_from(DirtyMarker)
                    )
                ).one()
            total, high, oldest = row
            age = (utcnow() - oldest).total_seconds() if oldest is not None else None
            return DirtyStatus(dirty_count=total, high_priority_count=high, oldest_age_seconds=age)

        return await self.retry.run(_op, "dirty_status")
