"""Rating engine configuration with sensible defaults.

All parameters can be overridden via ``config/rating.yaml``.  If the file
does not exist, defaults are used.  K-factors, objective weights and
cooldowns were retuned several times in production, so none of them are
hard-coded in the engine.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

import structlog
import yaml
from pydantic import BaseModel, model_validator


class EloConfig(BaseModel):
    """Elo mean/uncertainty update parameters."""

    default_mean: float = 1200.0
    default_sigma: float = 400.0
    base_k: float = 32.0
    super_k: float = 64.0
    sigma_floor: float = 150.0
    sigma_shrink: float = 0.95
    mean_min: float = 0.0
    mean_max: float = 3000.0
    sigma_min: float = 10.0
    sigma_max: float = 1000.0

    @model_validator(mode="after")
    def warn_if_super_not_larger(self) -> "EloConfig":
        """Super votes are meant to move ratings further than normal ones."""
        if self.super_k <= self.base_k:
            structlog.get_logger().warning(
                "elo_super_k_not_larger",
                base_k=self.base_k,
                super_k=self.super_k,
            )
        return self


class SliderConfig(BaseModel):
    default_mean: float = 50.0
    min_score: float = 0.0
    max_score: float = 100.0


class AestheticConfig(BaseModel):
    """Composite score blending and confidence parameters."""

    elo_band_low: float = 800.0
    elo_band_high: float = 1400.0
    slider_neutral: float = 50.0
    # Pseudo-counts added to each side before weighting, so sparse NFTs
    # get an even split.
    slider_prior_samples: float = 3.0
    elo_prior_votes: float = 3.0
    fire_boost_max: float = 5.0
    confidence_cap: float = 0.6
    min_votes_for_full_confidence: int = 5
    min_sliders_for_full_confidence: int = 2
    max_confidence: float = 0.99


class ObjectiveWeights(BaseModel):
    """Weights of the exploration/exploitation objective."""

    uncertainty: float = 0.4
    proximity: float = 0.3
    vote_count: float = 0.2
    diversity: float = 0.1

    @model_validator(mode="after")
    def warn_if_weights_dont_sum(self) -> "ObjectiveWeights":
        total = self.uncertainty + self.proximity + self.vote_count + self.diversity
        if abs(total - 1.0) > 0.01:
            structlog.get_logger().warning(
                "objective_weights_sum_mismatch",
                total=round(total, 4),
                expected=1.0,
            )
        return self


class SelectorConfig(BaseModel):
    """Matchup selection parameters."""

    weights: ObjectiveWeights = ObjectiveWeights()
    pool_size: int = 200
    cold_start_votes: int = 5
    proximity_band: float = 100.0
    band_growth: float = 2.0
    max_band: float = 3000.0
    max_attempts: int = 8
    deadline_seconds: float = 2.0
    min_weight: float = 0.01
    slider_target_count: int = 10


class RecentPairsConfig(BaseModel):
    cooldown_seconds: float = 7200.0
    max_entries: int = 10000


class PoolCacheConfig(BaseModel):
    ttl_seconds: float = 30.0
    max_pools: int = 64


class DirtyPriorities(BaseModel):
    """Dirty-marker priority per triggering event (higher drains first)."""

    vote: int = 0
    super_vote: int = 10
    slider: int = 5
    fire: int = 15
    manual: int = 20
    migration: int = 1


class RecomputeConfig(BaseModel):
    batch_size: int = 100
    mode: Literal["incremental", "replay"] = "incremental"
    max_concurrency: int = 4
    priorities: DirtyPriorities = DirtyPriorities()


class RetryConfig(BaseModel):
    """Bounded retry for store reads and writes."""

    attempts: int = 3
    backoff_min: float = 0.05
    backoff_max: float = 0.5
    timeout_seconds: float = 5.0


class RatingConfig(BaseModel):
    """Top-level engine configuration combining all sub-configs."""

    elo: EloConfig = EloConfig()
    slider: SliderConfig = SliderConfig()
    aesthetic: AestheticConfig = AestheticConfig()
    selector: SelectorConfig = SelectorConfig()
    recent_pairs: RecentPairsConfig = RecentPairsConfig()
    pool_cache: PoolCacheConfig = PoolCacheConfig()
    recompute: RecomputeConfig = RecomputeConfig()
    retry: RetryConfig = RetryConfig()


def load_rating_config(path: Path) -> RatingConfig:
    """Load engine configuration from a YAML file.

    If the file does not exist, returns a ``RatingConfig`` with all default
    values.  Partial overrides are supported -- only the keys present in
    the YAML file will override defaults.
    """
    if not path.exists():
        return RatingConfig()

    with open(path) as f:
        data = yaml.safe_load(f) or {}

    return RatingConfig(**data)
