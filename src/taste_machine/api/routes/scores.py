"""Aesthetic score and leaderboard endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from taste_machine.api.deps import get_service
from taste_machine.api.schemas import AestheticScoreResponse, LeaderboardEntry
from taste_machine.engine.service import TasteMachine
from taste_machine.rating.aesthetic import elo_component

router = APIRouter(prefix="/api", tags=["scores"])


@router.get("/nfts/{nft_id}/aesthetic-score", response_model=AestheticScoreResponse)
async def get_aesthetic_score(
    nft_id: str,
    service: TasteMachine = Depends(get_service),
) -> AestheticScoreResponse:
    """Published score and confidence.

    ``score`` is null until the first recompute; clients then fall back
    to ``elo_estimate``.
    """
    view = await service.get_aesthetic_score(nft_id)
    if view is None:
        raise HTTPException(status_code=404, detail={"reason": "nft_not_found", "nft_id": nft_id})
    return AestheticScoreResponse(
        nft_id=view.nft_id,
        score=view.score,
        confidence=view.confidence,
        last_scored_at=view.last_scored_at,
        elo_estimate=view.elo_estimate,
        degraded=view.degraded,
    )


@router.get("/leaderboard", response_model=list[LeaderboardEntry])
async def leaderboard(
    service: TasteMachine = Depends(get_service),
    collection: str | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=500),
) -> list[LeaderboardEntry]:
    """NFTs by aesthetic score; unscored NFTs rank by their Elo estimate."""
    rows = await service.ratings.leaderboard(collection=collection, limit=limit)
    aes = service.config.aesthetic
    return [
        LeaderboardEntry(
            rank=rank,
            nft_id=row.nft_id,
            collection=row.collection,
            name=row.name,
            image_url=row.image_url,
            score=row.aesthetic_score if row.aesthetic_score is not None else elo_component(row.elo_mean, aes),
            confidence=row.aesthetic_confidence,
            scored=row.aesthetic_score is not None,
            total_head_to_head_votes=row.total_head_to_head_votes,
        )
        for rank, row in enumerate(rows, start=1)
    ]
