"""Elo-style mean/uncertainty updates for head-to-head votes.

All functions are pure.  The mean update is the standard logistic
expected-score formula scaled by a K-factor; uncertainty shrinks
geometrically toward a floor with every vote and never grows.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

from taste_machine.rating.config import EloConfig


class VoteWeight(str, enum.Enum):
    """Categorical vote weight.  ``super`` votes move ratings twice as far."""

    NORMAL = "normal"
    SUPER = "super"

    @property
    def multiplier(self) -> int:
        return 2 if self is VoteWeight.SUPER else 1


@dataclass(frozen=True)
class EloOutcome:
    """Result of one two-player update.

    Attributes:
        mean_a: New mean for contestant A (clamped).
        mean_b: New mean for contestant B (clamped).
        delta_a: Applied change to A's mean.
        delta_b: Applied change to B's mean.
        expected_a: Pre-vote probability that A wins.
        k: K-factor used.
    """

    mean_a: float
    mean_b: float
    delta_a: float
    delta_b: float
    expected_a: float
    k: float


def expected_score(rating: float, opponent: float) -> float:
    """Probability that ``rating`` beats ``opponent`` under the logistic model."""
    return 1.0 / (1.0 + 10.0 ** ((opponent - rating) / 400.0))


def k_factor(weight: VoteWeight, config: EloConfig | None = None) -> float:
    cfg = config or EloConfig()
    return cfg.super_k if weight is VoteWeight.SUPER else cfg.base_k


def clamp_mean(mean: float, config: EloConfig | None = None) -> float:
    cfg = config or EloConfig()
    return min(cfg.mean_max, max(cfg.mean_min, mean))


def shrink_sigma(sigma: float, config: EloConfig | None = None) -> float:
    """Narrow uncertainty after one more vote.

    Shrinks geometrically toward ``sigma_floor``.  A sigma already below
    the floor is left alone rather than pushed back up.
    """
    cfg = config or EloConfig()
    shrunk = max(cfg.sigma_floor, sigma * cfg.sigma_shrink)
    new_sigma = min(sigma, shrunk)
    return min(cfg.sigma_max, max(cfg.sigma_min, new_sigma))


def elo_update(
    mean_a: float,
    mean_b: float,
    a_won: bool,
    weight: VoteWeight = VoteWeight.NORMAL,
    config: EloConfig | None = None,
) -> EloOutcome:
    """Apply one vote between A and B.

    The unclamped update is zero-sum: A's gain equals B's loss.  Clamping
    to ``[mean_min, mean_max]`` can break that only at the bounds.
    """
    cfg = config or EloConfig()
    k = k_factor(weight, cfg)
    expected_a = expected_score(mean_a, mean_b)
    raw_delta = k * ((1.0 if a_won else 0.0) - expected_a)

    new_a = clamp_mean(mean_a + raw_delta, cfg)
    new_b = clamp_mean(mean_b - raw_delta, cfg)

    return EloOutcome(
        mean_a=new_a,
        mean_b=new_b,
        delta_a=new_a - mean_a,
        delta_b=new_b - mean_b,
        expected_a=expected_a,
        k=k,
    )


def elo_step(
    own_mean: float,
    opponent_mean: float,
    won: bool,
    weight: VoteWeight = VoteWeight.NORMAL,
    config: EloConfig | None = None,
) -> float:
    """Return ``own_mean`` after one vote against a fixed opponent snapshot.

    Used when replaying a single NFT's history from stored ``elo_pre_*``
    snapshots.
    """
    return elo_update(own_mean, opponent_mean, won, weight, config).mean_a
