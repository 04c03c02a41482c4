"""Operational control of the recompute pipeline."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, HTTPException

from taste_machine.api.deps import get_service
from taste_machine.api.schemas import (
    MarkDirtyRequest,
    MarkDirtyResponse,
    RecomputeBatchRequest,
    RecomputeBatchResponse,
    RecomputeStatusResponse,
)
from taste_machine.engine.service import TasteMachine

logger = structlog.get_logger()

router = APIRouter(prefix="/api/recompute", tags=["recompute"])


@router.post("/batch", response_model=RecomputeBatchResponse)
async def recompute_batch(
    body: RecomputeBatchRequest,
    service: TasteMachine = Depends(get_service),
) -> RecomputeBatchResponse:
    """Drain up to ``max_items`` dirty NFTs now."""
    stats = await service.recompute.drain(body.max_items)
    return RecomputeBatchResponse(
        claimed=stats.claimed,
        processed=stats.processed,
        published=stats.published,
        errors=stats.errors,
    )


@router.get("/status", response_model=RecomputeStatusResponse)
async def recompute_status(service: TasteMachine = Depends(get_service)) -> RecomputeStatusResponse:
    status = await service.dirty.status()
    return RecomputeStatusResponse(
        dirty_count=status.dirty_count,
        high_priority_count=status.high_priority_count,
        oldest_age_seconds=status.oldest_age_seconds,
        mode=service.config.recompute.mode,
    )


@router.post("/mark", response_model=MarkDirtyResponse)
async def mark_dirty(
    body: MarkDirtyRequest,
    service: TasteMachine = Depends(get_service),
) -> MarkDirtyResponse:
    """Queue NFTs for recomputation by hand."""
    known = await service.ratings.get_many(body.nft_ids)
    missing = sorted(set(body.nft_ids) - set(known))
    if missing:
        raise HTTPException(status_code=404, detail={"reason": "nft_not_found", "nft_ids": missing})

    priorities = service.config.recompute.priorities
    priority = body.priority if body.priority is not None else getattr(priorities, body.reason)
    await service.dirty.mark(known.keys(), body.reason, priority)
    logger.info("manual_recompute_requested", count=len(known), reason=body.reason)
    return MarkDirtyResponse(marked=len(known), reason=body.reason, priority=priority)
