"""Composite aesthetic score (POA) and its confidence.

Blends an Elo-derived component and a slider-derived component, both on a
0-100 scale, weighted by how much evidence each side has.  Favorites
("fires") add a small capped boost on top.  All functions are PURE.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from taste_machine.rating.config import AestheticConfig


@dataclass(frozen=True)
class AestheticScore:
    """Published score with its inputs.

    Attributes:
        score: Composite 0-100 score.
        confidence: 0-1, increasing with evidence, capped until the
            minimum evidence thresholds are met.
        elo_component: Elo mean rescaled to 0-100.
        slider_component: Slider mean, or the neutral default.
        fire_component: 0-100 log-scaled favorite count.
        elo_weight: Share of the blend given to ``elo_component``.
    """

    score: float
    confidence: float
    elo_component: float
    slider_component: float
    fire_component: float
    elo_weight: float


def elo_component(elo_mean: float, config: AestheticConfig | None = None) -> float:
    """Map the Elo band ``[elo_band_low, elo_band_high]`` onto ``[0, 100]``."""
    cfg = config or AestheticConfig()
    span = cfg.elo_band_high - cfg.elo_band_low
    value = (elo_mean - cfg.elo_band_low) / span * 100.0
    return min(100.0, max(0.0, value))


def slider_component(
    slider_mean: float, slider_count: int, config: AestheticConfig | None = None
) -> float:
    cfg = config or AestheticConfig()
    if slider_count >= 1:
        return slider_mean
    return cfg.slider_neutral


def fire_component(fire_count: int) -> float:
    """Diminishing returns: 3 fires saturate to 100."""
    if fire_count <= 0:
        return 0.0
    return min(100.0, math.log1p(fire_count) / math.log(4) * 100.0)


def elo_blend_weight(
    votes: int, slider_count: int, config: AestheticConfig | None = None
) -> float:
    """Share of the blend given to the Elo side.

    Each side's weight is its sample size plus a prior pseudo-count, so a
    brand-new NFT gets an even split and the better-sampled signal
    dominates as evidence accumulates.
    """
    cfg = config or AestheticConfig()
    elo_w = max(votes, 0) + cfg.elo_prior_votes
    slider_w = max(slider_count, 0) + cfg.slider_prior_samples
    total = elo_w + slider_w
    if total <= 0:
        return 0.5
    return elo_w / total


def confidence(votes: int, slider_count: int, config: AestheticConfig | None = None) -> float:
    cfg = config or AestheticConfig()
    evidence = max(votes, 0) + max(slider_count, 0)
    value = 1.0 - 1.0 / (1.0 + evidence)
    if (
        votes < cfg.min_votes_for_full_confidence
        or slider_count < cfg.min_sliders_for_full_confidence
    ):
        value = min(value, cfg.confidence_cap)
    return min(value, cfg.max_confidence)


def compute_aesthetic(
    elo_mean: float,
    votes: int,
    slider_mean: float,
    slider_count: int,
    fire_count: int = 0,
    config: AestheticConfig | None = None,
) -> AestheticScore:
    """Compute the composite score for one NFT from its rating state."""
    cfg = config or AestheticConfig()

    elo_c = elo_component(elo_mean, cfg)
    slider_c = slider_component(slider_mean, slider_count, cfg)
    fire_c = fire_component(fire_count)
    w_elo = elo_blend_weight(votes, slider_count, cfg)

    blended = w_elo * elo_c + (1.0 - w_elo) * slider_c
    score = min(100.0, max(0.0, blended + cfg.fire_boost_max * fire_c / 100.0))

    return AestheticScore(
        score=score,
        confidence=confidence(votes, slider_count, cfg),
        elo_component=elo_c,
        slider_component=slider_c,
        fire_component=fire_c,
        elo_weight=w_elo,
    )
