"""Exploration/exploitation objective for matchup candidates.

Each term is normalized to roughly ``[0, 1]`` so the configured weights
are comparable:

- uncertainty: ``sigma / default_sigma``, favoring NFTs we know least about
- proximity: closeness of the Elo mean to the pool median, favoring
  informative, competitive matchups
- vote_count: cold-start boost, 1.0 at zero votes and decaying with the
  vote count; also rewards NFTs below the pool's average vote count so
  popular items cannot starve the rest
- diversity: bonus for collections that make up a small share of the pool
"""

from __future__ import annotations

import statistics
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass

from taste_machine.engine.pool_cache import CandidateView
from taste_machine.rating.config import EloConfig, SelectorConfig

PROXIMITY_SCALE = 400.0


@dataclass(frozen=True)
class PoolContext:
    """Pool-wide statistics shared by every candidate's score."""

    median_elo: float
    mean_votes: float
    collection_share: dict[str, float]

    @classmethod
    def from_pool(cls, pool: Sequence[CandidateView]) -> PoolContext:
        if not pool:
            return cls(median_elo=0.0, mean_votes=0.0, collection_share={})
        counts = Counter(c.collection for c in pool)
        return cls(
            median_elo=statistics.median(c.elo_mean for c in pool),
            mean_votes=sum(c.total_head_to_head_votes for c in pool) / len(pool),
            collection_share={k: v / len(pool) for k, v in counts.items()},
        )


def uncertainty_term(candidate: CandidateView, elo: EloConfig) -> float:
    return min(1.0, max(0.0, candidate.elo_sigma / elo.default_sigma))


def proximity_term(candidate: CandidateView, ctx: PoolContext) -> float:
    return max(0.0, 1.0 - abs(candidate.elo_mean - ctx.median_elo) / PROXIMITY_SCALE)


def vote_count_term(candidate: CandidateView, ctx: PoolContext, cfg: SelectorConfig) -> float:
    votes = candidate.total_head_to_head_votes
    cold = 1.0 / (1.0 + votes / max(cfg.cold_start_votes, 1))
    if ctx.mean_votes > 0:
        deficit = max(0.0, (ctx.mean_votes - votes) / ctx.mean_votes)
    else:
        deficit = 0.0
    return max(cold, deficit)


def diversity_term(candidate: CandidateView, ctx: PoolContext) -> float:
    return 1.0 - ctx.collection_share.get(candidate.collection, 0.0)


def slider_need_term(candidate: CandidateView, cfg: SelectorConfig) -> float:
    target = max(cfg.slider_target_count, 1)
    return 1.0 - min(candidate.slider_count, target) / target


def objective(
    candidate: CandidateView,
    ctx: PoolContext,
    cfg: SelectorConfig,
    elo: EloConfig,
) -> float:
    """Weighted objective for one candidate, floored at ``min_weight``.

    The floor keeps every candidate selectable, so the weighted pick
    never degenerates into a pure argmax.
    """
    w = cfg.weights
    value = (
        w.uncertainty * uncertainty_term(candidate, elo)
        + w.proximity * proximity_term(candidate, ctx)
        + w.vote_count * vote_count_term(candidate, ctx, cfg)
        + w.diversity * diversity_term(candidate, ctx)
    )
    return max(cfg.min_weight, value)


def slider_objective(
    candidate: CandidateView,
    ctx: PoolContext,
    cfg: SelectorConfig,
    elo: EloConfig,
) -> float:
    """Objective for single-NFT slider draws: prefers few slider ratings."""
    return objective(candidate, ctx, cfg, elo) + slider_need_term(candidate, cfg)


def score_pool(
    pool: Sequence[CandidateView],
    cfg: SelectorConfig,
    elo: EloConfig,
    for_slider: bool = False,
) -> dict[str, float]:
    ctx = PoolContext.from_pool(pool)
    fn = slider_objective if for_slider else objective
    return {c.nft_id: fn(c, ctx, cfg, elo) for c in pool}
