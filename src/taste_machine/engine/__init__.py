"""Matchup selection, ingestion and recompute built on the store layer."""

from taste_machine.engine.selector import MatchupRequest, PoolExhausted, Selection, SelectionType
from taste_machine.engine.service import ScoreView, TasteMachine

__all__ = [
    "MatchupRequest",
    "PoolExhausted",
    "ScoreView",
    "Selection",
    "SelectionType",
    "TasteMachine",
]
