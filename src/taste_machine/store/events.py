"""Event Log: append-only vote, slider and fire records.

Events are keyed by a client-supplied (or generated) ``event_id``; the
primary key is what makes resubmission of the same action a no-op.
"""

from __future__ import annotations

import uuid

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from taste_machine.models.fire_event import FireEvent
from taste_machine.models.slider_event import SliderEvent
from taste_machine.models.vote_event import VoteEvent
from taste_machine.store.retry import RetryPolicy


def new_event_id() -> str:
    return uuid.uuid4().hex


async def find_event(session: AsyncSession, model: type, event_id: str):
    """Return the event of type ``model`` with ``event_id``, or ``None``."""
    return await session.get(model, event_id)


class EventLog:
    """History reads over the event tables."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        retry: RetryPolicy | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.retry = retry or RetryPolicy()

    async def get_vote(self, event_id: str) -> VoteEvent | None:
        async def _op() -> VoteEvent | None:
            async with self.session_factory() as session:
                return await find_event(session, VoteEvent, event_id)

        return await self.retry.run(_op, "get_vote")

    async def votes_for(self, nft_id: str) -> list[VoteEvent]:
        """Every vote involving ``nft_id``, in replay order."""

        async def _op() -> list[VoteEvent]:
            async with self.session_factory() as session:
                return await votes_for_in_session(session, nft_id)

        return await self.retry.run(_op, "votes_for")

    async def sliders_for(self, nft_id: str) -> list[SliderEvent]:
        async def _op() -> list[SliderEvent]:
            async with self.session_factory() as session:
                return await sliders_for_in_session(session, nft_id)

        return await self.retry.run(_op, "sliders_for")

    async def fire_count(self, nft_id: str) -> int:
        async def _op() -> int:
            async with self.session_factory() as session:
                return await fire_count_in_session(session, nft_id)

        return await self.retry.run(_op, "fire_count")


async def votes_for_in_session(session: AsyncSession, nft_id: str) -> list[VoteEvent]:
    result = await session.execute(
        sa.select(VoteEvent)
        .where(sa.or_(VoteEvent.nft_a_id == nft_id, VoteEvent.nft_b_id == nft_id))
        .order_by(VoteEvent.created_at, VoteEvent.event_id)
    )
    return list(result.scalars().all())


async def sliders_for_in_session(session: AsyncSession, nft_id: str) -> list[SliderEvent]:
    result = await session.execute(
        sa.select(SliderEvent)
        .where(SliderEvent.nft_id == nft_id)
        .order_by(SliderEvent.created_at, SliderEvent.event_id)
    )
    return list(result.scalars().all())


async def fire_count_in_session(session: AsyncSession, nft_id: str) -> int:
    result = await session.execute(
        sa.select(sa.func.count()).select_from(FireEvent).where(FireEvent.nft_id == nft_id)
    )
    return result.scalar_one()
