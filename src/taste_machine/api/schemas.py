"""Pydantic request/response schemas for the Taste Machine API.

Every operation has an explicit request and response type.  Selection
results are tagged by ``status`` so a ``pool_exhausted`` outcome is a
normal response, not an error.
"""

from __future__ import annotations

import datetime as dt
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

SelectionTypeName = Literal["same_collection", "cross_collection", "slider"]


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


class NftRegisterRequest(BaseModel):
    id: str = Field(min_length=1, max_length=128)
    collection: str = Field(min_length=1, max_length=255)
    name: str | None = None
    image_url: str | None = None


class NftRatingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    nft_id: str
    collection: str
    name: str | None = None
    image_url: str | None = None
    elo_mean: float
    elo_sigma: float
    total_head_to_head_votes: int
    wins: int
    losses: int
    slider_mean: float
    slider_count: int
    slider_variance: float | None = None
    fire_count: int
    aesthetic_score: float | None = None
    aesthetic_confidence: float | None = None
    last_scored_at: dt.datetime | None = None


# ---------------------------------------------------------------------------
# Matchups
# ---------------------------------------------------------------------------


class MatchupRequestBody(BaseModel):
    type: SelectionTypeName
    exclude_ids: list[str] = []
    collection_hint: str | None = None


class MatchupResponse(BaseModel):
    status: Literal["ok"] = "ok"
    type: SelectionTypeName
    nft_ids: list[str]
    collections: list[str]
    relaxed: bool = False


class PoolExhaustedResponse(BaseModel):
    status: Literal["pool_exhausted"] = "pool_exhausted"
    type: SelectionTypeName
    reason: str


class RecentPairsStatsResponse(BaseModel):
    tracked: int
    active: int
    evicted: int
    cooldown_seconds: float
    max_entries: int


class RecentPairsClearResponse(BaseModel):
    pairs_cleared: int
    pools_cleared: int


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


class VoteRequest(BaseModel):
    event_id: str | None = None
    voter_id: str
    nft_a_id: str
    nft_b_id: str
    winner_id: str
    vote_weight: str = "normal"


class VoteResponse(BaseModel):
    event_id: str
    elo_delta_a: float
    elo_delta_b: float
    duplicate: bool = False


class SliderRequest(BaseModel):
    event_id: str | None = None
    voter_id: str
    nft_id: str
    # Range is checked by the gateway so the error carries a reason.
    raw_score: float


class FireRequest(BaseModel):
    event_id: str | None = None
    voter_id: str
    nft_id: str


class EventResponse(BaseModel):
    event_id: str
    duplicate: bool = False


# ---------------------------------------------------------------------------
# Scores
# ---------------------------------------------------------------------------


class AestheticScoreResponse(BaseModel):
    nft_id: str
    score: float | None = None
    confidence: float | None = None
    last_scored_at: dt.datetime | None = None
    elo_estimate: float
    degraded: bool = False


class LeaderboardEntry(BaseModel):
    rank: int
    nft_id: str
    collection: str
    name: str | None = None
    image_url: str | None = None
    score: float
    confidence: float | None = None
    scored: bool
    total_head_to_head_votes: int


# ---------------------------------------------------------------------------
# Recompute
# ---------------------------------------------------------------------------


class RecomputeBatchRequest(BaseModel):
    max_items: int | None = Field(default=None, ge=1, le=10_000)


class RecomputeBatchResponse(BaseModel):
    claimed: int
    processed: int
    published: int
    errors: int


class RecomputeStatusResponse(BaseModel):
    dirty_count: int
    high_priority_count: int
    oldest_age_seconds: float | None = None
    mode: str


class MarkDirtyRequest(BaseModel):
    nft_ids: list[str] = Field(min_length=1)
    reason: Literal["manual", "migration"] = "manual"
    priority: int | None = None


class MarkDirtyResponse(BaseModel):
    marked: int
    reason: str
    priority: int
