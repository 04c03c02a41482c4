"""Pure rating math: Elo updates, Welford statistics, the composite score and replay."""

from taste_machine.rating.aesthetic import AestheticScore, compute_aesthetic
from taste_machine.rating.config import RatingConfig, load_rating_config
from taste_machine.rating.elo import VoteWeight, elo_update, shrink_sigma
from taste_machine.rating.replay import ReplayState, replay_nft
from taste_machine.rating.stats import RunningStats

__all__ = [
    "AestheticScore",
    "compute_aesthetic",
    "elo_update",
    "load_rating_config",
    "RatingConfig",
    "replay_nft",
    "ReplayState",
    "RunningStats",
    "shrink_sigma",
    "VoteWeight",
]
