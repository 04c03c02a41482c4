"""Vote, slider and fire ingestion endpoints.

Validation failures map to 422 with a ``reason``; an unreachable store
maps to 503 so the client retries with the same ``event_id``.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from taste_machine.api.deps import get_service
from taste_machine.api.schemas import (
    EventResponse,
    FireRequest,
    SliderRequest,
    VoteRequest,
    VoteResponse,
)
from taste_machine.engine.service import TasteMachine

router = APIRouter(prefix="/api/events", tags=["events"])


@router.post("/votes", response_model=VoteResponse)
async def record_vote(
    body: VoteRequest,
    service: TasteMachine = Depends(get_service),
) -> VoteResponse:
    receipt = await service.gateway.record_vote(
        voter_id=body.voter_id,
        nft_a_id=body.nft_a_id,
        nft_b_id=body.nft_b_id,
        winner_id=body.winner_id,
        vote_weight=body.vote_weight,
        event_id=body.event_id,
    )
    return VoteResponse(
        event_id=receipt.event_id,
        elo_delta_a=receipt.elo_delta_a,
        elo_delta_b=receipt.elo_delta_b,
        duplicate=receipt.duplicate,
    )


@router.post("/sliders", response_model=EventResponse)
async def record_slider(
    body: SliderRequest,
    service: TasteMachine = Depends(get_service),
) -> EventResponse:
    receipt = await service.gateway.record_slider(
        voter_id=body.voter_id,
        nft_id=body.nft_id,
        raw_score=body.raw_score,
        event_id=body.event_id,
    )
    return EventResponse(event_id=receipt.event_id, duplicate=receipt.duplicate)


@router.post("/fires", response_model=EventResponse)
async def record_fire(
    body: FireRequest,
    service: TasteMachine = Depends(get_service),
) -> EventResponse:
    receipt = await service.gateway.record_fire(
        voter_id=body.voter_id,
        nft_id=body.nft_id,
        event_id=body.event_id,
    )
    return EventResponse(event_id=receipt.event_id, duplicate=receipt.duplicate)
