"""Ingestion Gateway: the single write path for votes, sliders and fires.

Each action is validated up front, then applied in one transaction that
appends the event, mutates the affected rating rows and marks them dirty.
The transaction runs under the per-NFT locks so concurrent actions on the
same NFT are serialized.  Resubmitting an ``event_id`` returns the
original receipt without touching any state.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from taste_machine.engine.recent_pairs import RecentPairTracker, pair_key
from taste_machine.errors import InvalidSlider, InvalidVote, ValidationFailed
from taste_machine.models.fire_event import FireEvent
from taste_machine.models.slider_event import SliderEvent
from taste_machine.models.vote_event import VoteEvent
from taste_machine.rating.config import RatingConfig
from taste_machine.rating.elo import VoteWeight, elo_update, shrink_sigma
from taste_machine.store.dirty import mark_in_session
from taste_machine.store.events import find_event, new_event_id
from taste_machine.store.locks import KeyedLock
from taste_machine.store.ratings import apply_slider_in_session, load_for_update
from taste_machine.store.retry import RetryPolicy
from taste_machine.timeutil import utcnow

logger = structlog.get_logger()

MAX_EVENT_ID_LENGTH = 64


@dataclass(frozen=True)
class VoteReceipt:
    event_id: str
    elo_delta_a: float
    elo_delta_b: float
    duplicate: bool = False


@dataclass(frozen=True)
class EventReceipt:
    event_id: str
    duplicate: bool = False


def _check_common(error: type[ValidationFailed], voter_id: str, event_id: str | None) -> None:
    if not voter_id or not voter_id.strip():
        raise error("missing_voter", "voter_id is required")
    if event_id is not None and not 0 < len(event_id) <= MAX_EVENT_ID_LENGTH:
        raise error("invalid_event_id", f"event_id must be 1-{MAX_EVENT_ID_LENGTH} characters")


def validate_vote(
    voter_id: str,
    nft_a_id: str,
    nft_b_id: str,
    winner_id: str,
    vote_weight: str,
    event_id: str | None = None,
) -> VoteWeight:
    """Reject malformed votes.  Returns the parsed weight."""
    _check_common(InvalidVote, voter_id, event_id)
    if nft_a_id == nft_b_id:
        raise InvalidVote("self_matchup", "an NFT cannot be matched against itself")
    if winner_id not in (nft_a_id, nft_b_id):
        raise InvalidVote("winner_not_in_pair", "winner must be one of the two NFTs")
    try:
        return VoteWeight(vote_weight)
    except ValueError:
        raise InvalidVote("invalid_vote_weight", f"unknown vote weight {vote_weight!r}") from None


class IngestionGateway:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        tracker: RecentPairTracker,
        config: RatingConfig | None = None,
        retry: RetryPolicy | None = None,
        locks: KeyedLock | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.tracker = tracker
        self.config = config or RatingConfig()
        self.retry = retry or RetryPolicy(self.config.retry)
        self.locks = locks or KeyedLock()

    async def _lookup_duplicate(self, model: type, event_id: str):
        async def _op():
            async with self.session_factory() as session:
                return await find_event(session, model, event_id)

        return await self.retry.run(_op, "lookup_event")

    # ------------------------------------------------------------------
    # Votes
    # ------------------------------------------------------------------

    async def record_vote(
        self,
        voter_id: str,
        nft_a_id: str,
        nft_b_id: str,
        winner_id: str,
        vote_weight: str = "normal",
        event_id: str | None = None,
    ) -> VoteReceipt:
        """Record one head-to-head vote and apply its Elo update.

        Raises:
            InvalidVote: Malformed input; nothing is recorded.
            NftNotFound: Either NFT is not registered.
            TransientStoreError: The store stayed unreachable; resubmit
                with the same ``event_id``.
        """
        weight = validate_vote(voter_id, nft_a_id, nft_b_id, winner_id, vote_weight, event_id)
        event_id = event_id or new_event_id()
        elo_cfg = self.config.elo
        priorities = self.config.recompute.priorities
        priority = priorities.super_vote if weight is VoteWeight.SUPER else priorities.vote

        async def _op() -> VoteReceipt:
            async with self.session_factory() as session, session.begin():
                existing = await find_event(session, VoteEvent, event_id)
                if existing is not None:
                    return self._vote_duplicate(existing, nft_a_id, nft_b_id)

                rows = await load_for_update(session, [nft_a_id, nft_b_id])
                row_a, row_b = rows[nft_a_id], rows[nft_b_id]
                outcome = elo_update(row_a.elo_mean, row_b.elo_mean, winner_id == nft_a_id, weight, elo_cfg)
                now = utcnow()

                session.add(
                    VoteEvent(
                        event_id=event_id,
                        voter_id=voter_id,
                        nft_a_id=nft_a_id,
                        nft_b_id=nft_b_id,
                        winner_id=winner_id,
                        vote_weight=weight.value,
                        elo_pre_a=row_a.elo_mean,
                        elo_pre_b=row_b.elo_mean,
                        elo_delta_a=outcome.delta_a,
                        elo_delta_b=outcome.delta_b,
                        created_at=now,
                    )
                )
                for row, new_mean in ((row_a, outcome.mean_a), (row_b, outcome.mean_b)):
                    row.elo_mean = new_mean
                    row.elo_sigma = shrink_sigma(row.elo_sigma, elo_cfg)
                    row.total_head_to_head_votes += 1
                    if row.nft_id == winner_id:
                        row.wins += 1
                    else:
                        row.losses += 1
                    row.updated_at = now

                await mark_in_session(session, [nft_a_id, nft_b_id], "new_vote", priority)
                return VoteReceipt(event_id, outcome.delta_a, outcome.delta_b)

        try:
            async with self.locks.hold(nft_a_id, nft_b_id):
                receipt = await self.retry.run(_op, "record_vote")
        except IntegrityError:
            # A concurrent submission with the same event_id committed first.
            existing = await self._lookup_duplicate(VoteEvent, event_id)
            if existing is None:
                raise
            receipt = self._vote_duplicate(existing, nft_a_id, nft_b_id)

        if receipt.duplicate:
            return receipt

        self.tracker.record_shown(pair_key(nft_a_id, nft_b_id))
        logger.info(
            "vote_recorded",
            event_id=event_id,
            nft_a_id=nft_a_id,
            nft_b_id=nft_b_id,
            winner_id=winner_id,
            weight=weight.value,
            elo_delta_a=round(receipt.elo_delta_a, 3),
        )
        return receipt

    def _vote_duplicate(self, existing: VoteEvent, nft_a_id: str, nft_b_id: str) -> VoteReceipt:
        if {existing.nft_a_id, existing.nft_b_id} != {nft_a_id, nft_b_id}:
            logger.warning(
                "event_id_reused",
                event_id=existing.event_id,
                stored_pair=[existing.nft_a_id, existing.nft_b_id],
                submitted_pair=[nft_a_id, nft_b_id],
            )
        logger.info("event_duplicate_ignored", kind="vote", event_id=existing.event_id)
        return VoteReceipt(existing.event_id, existing.elo_delta_a, existing.elo_delta_b, duplicate=True)

    # ------------------------------------------------------------------
    # Sliders
    # ------------------------------------------------------------------

    async def record_slider(
        self,
        voter_id: str,
        nft_id: str,
        raw_score: float,
        event_id: str | None = None,
    ) -> EventReceipt:
        """Record one slider rating and fold it into the running statistics."""
        cfg = self.config.slider
        _check_common(InvalidSlider, voter_id, event_id)
        if not math.isfinite(raw_score) or not cfg.min_score <= raw_score <= cfg.max_score:
            raise InvalidSlider(
                "score_out_of_range",
                f"raw_score must be between {cfg.min_score:g} and {cfg.max_score:g}",
            )
        event_id = event_id or new_event_id()
        priority = self.config.recompute.priorities.slider

        async def _op() -> EventReceipt:
            async with self.session_factory() as session, session.begin():
                if await find_event(session, SliderEvent, event_id) is not None:
                    return EventReceipt(event_id, duplicate=True)
                row = (await load_for_update(session, [nft_id]))[nft_id]
                session.add(
                    SliderEvent(
                        event_id=event_id,
                        voter_id=voter_id,
                        nft_id=nft_id,
                        raw_score=raw_score,
                        created_at=utcnow(),
                    )
                )
                apply_slider_in_session(row, raw_score)
                await mark_in_session(session, [nft_id], "new_slider", priority)
                return EventReceipt(event_id)

        receipt = await self._run_single(nft_id, SliderEvent, event_id, _op, "record_slider")
        if not receipt.duplicate:
            self.tracker.record_shown(pair_key(nft_id))
            logger.info("slider_recorded", event_id=event_id, nft_id=nft_id, raw_score=raw_score)
        return receipt

    # ------------------------------------------------------------------
    # Fires
    # ------------------------------------------------------------------

    async def record_fire(
        self,
        voter_id: str,
        nft_id: str,
        event_id: str | None = None,
    ) -> EventReceipt:
        """Record a favorite.  Only feeds the ranking boost at recompute time."""
        _check_common(ValidationFailed, voter_id, event_id)
        event_id = event_id or new_event_id()
        priority = self.config.recompute.priorities.fire

        async def _op() -> EventReceipt:
            async with self.session_factory() as session, session.begin():
                if await find_event(session, FireEvent, event_id) is not None:
                    return EventReceipt(event_id, duplicate=True)
                row = (await load_for_update(session, [nft_id]))[nft_id]
                session.add(FireEvent(event_id=event_id, voter_id=voter_id, nft_id=nft_id, created_at=utcnow()))
                row.fire_count += 1
                row.updated_at = utcnow()
                await mark_in_session(session, [nft_id], "new_fire", priority)
                return EventReceipt(event_id)

        receipt = await self._run_single(nft_id, FireEvent, event_id, _op, "record_fire")
        if not receipt.duplicate:
            logger.info("fire_recorded", event_id=event_id, nft_id=nft_id)
        return receipt

    async def _run_single(self, nft_id, model, event_id, operation, name) -> EventReceipt:
        try:
            async with self.locks.hold(nft_id):
                receipt = await self.retry.run(operation, name)
        except IntegrityError:
            if await self._lookup_duplicate(model, event_id) is None:
                raise
            receipt = EventReceipt(event_id, duplicate=True)
        if receipt.duplicate:
            logger.info("event_duplicate_ignored", kind=model.__tablename__, event_id=event_id)
        return receipt
