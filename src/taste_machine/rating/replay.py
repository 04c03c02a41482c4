"""Rebuild one NFT's rating state from its event history.

Votes are replayed in ``(created_at, event_id)`` order against the
opponent's ``elo_pre_*`` snapshot, which is exactly the value the
ingestion fast path used, so a complete history reproduces the
incrementally maintained state.  PURE -- callers load the events.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Protocol

from taste_machine.rating.config import EloConfig, SliderConfig
from taste_machine.rating.elo import VoteWeight, elo_step, shrink_sigma
from taste_machine.rating.stats import RunningStats


class _Vote(Protocol):
    event_id: str
    nft_a_id: str
    nft_b_id: str
    winner_id: str
    elo_pre_a: float
    elo_pre_b: float
    vote_weight: str
    created_at: object


class _Slider(Protocol):
    event_id: str
    raw_score: float
    created_at: object


@dataclass
class ReplayState:
    """Rating state rebuilt from events."""

    elo_mean: float
    elo_sigma: float
    wins: int = 0
    losses: int = 0
    slider: RunningStats = field(default_factory=RunningStats)
    fire_count: int = 0

    @property
    def total_head_to_head_votes(self) -> int:
        return self.wins + self.losses


def _order_key(event) -> tuple:
    return (event.created_at, event.event_id)


def replay_nft(
    nft_id: str,
    votes: Iterable[_Vote],
    sliders: Iterable[_Slider] = (),
    fire_count: int = 0,
    elo_config: EloConfig | None = None,
    slider_config: SliderConfig | None = None,
) -> ReplayState:
    """Replay ``nft_id``'s votes and slider ratings from scratch.

    Args:
        nft_id: The NFT being rebuilt.  Votes not involving it are ignored.
        votes: Vote events touching the NFT, in any order.
        sliders: Slider events for the NFT, in any order.
        fire_count: Number of fire events (not replayed, only carried).
        elo_config: Elo parameters (defaults if ``None``).
        slider_config: Slider parameters (defaults if ``None``).
    """
    elo_cfg = elo_config or EloConfig()
    slider_cfg = slider_config or SliderConfig()

    state = ReplayState(
        elo_mean=elo_cfg.default_mean,
        elo_sigma=elo_cfg.default_sigma,
        slider=RunningStats(mean=slider_cfg.default_mean),
        fire_count=fire_count,
    )

    for vote in sorted(votes, key=_order_key):
        if vote.nft_a_id == nft_id:
            opponent = vote.elo_pre_b
        elif vote.nft_b_id == nft_id:
            opponent = vote.elo_pre_a
        else:
            continue
        won = vote.winner_id == nft_id
        state.elo_mean = elo_step(
            state.elo_mean, opponent, won, VoteWeight(vote.vote_weight), elo_cfg
        )
        state.elo_sigma = shrink_sigma(state.elo_sigma, elo_cfg)
        if won:
            state.wins += 1
        else:
            state.losses += 1

    for slider in sorted(sliders, key=_order_key):
        state.slider = state.slider.push(slider.raw_score)

    return state
