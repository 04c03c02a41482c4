"""Matchup selection and recent-pair administration."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends

from taste_machine.api.deps import get_service
from taste_machine.api.schemas import (
    MatchupRequestBody,
    MatchupResponse,
    PoolExhaustedResponse,
    RecentPairsClearResponse,
    RecentPairsStatsResponse,
)
from taste_machine.engine.selector import MatchupRequest, PoolExhausted, SelectionType
from taste_machine.engine.service import TasteMachine

logger = structlog.get_logger()

router = APIRouter(prefix="/api/matchups", tags=["matchups"])


@router.post("", response_model=MatchupResponse | PoolExhaustedResponse)
async def select_matchup(
    body: MatchupRequestBody,
    service: TasteMachine = Depends(get_service),
) -> MatchupResponse | PoolExhaustedResponse:
    """Return the next pair (or single NFT for slider rating) to show.

    A pool too small for the request is reported as
    ``status="pool_exhausted"`` with HTTP 200.
    """
    request = MatchupRequest(
        type=SelectionType(body.type),
        exclude_ids=frozenset(body.exclude_ids),
        collection_hint=body.collection_hint,
    )
    result = await service.select_matchup(request)
    if isinstance(result, PoolExhausted):
        return PoolExhaustedResponse(type=result.type.value, reason=result.reason)
    return MatchupResponse(
        type=result.type.value,
        nft_ids=list(result.nft_ids),
        collections=list(result.collections),
        relaxed=result.relaxed,
    )


@router.get("/recent-pairs", response_model=RecentPairsStatsResponse)
async def recent_pairs_stats(service: TasteMachine = Depends(get_service)) -> RecentPairsStatsResponse:
    stats = service.tracker.stats()
    return RecentPairsStatsResponse(
        tracked=stats.tracked,
        active=stats.active,
        evicted=stats.evicted,
        cooldown_seconds=stats.cooldown_seconds,
        max_entries=stats.max_entries,
    )


@router.delete("/recent-pairs", response_model=RecentPairsClearResponse)
async def clear_recent_pairs(service: TasteMachine = Depends(get_service)) -> RecentPairsClearResponse:
    """Forget recently shown pairs and drop cached candidate pools."""
    cleared = service.clear_recent_pairs()
    logger.info("recent_pairs_reset", **cleared)
    return RecentPairsClearResponse(**cleared)
