"""Catalog registration and rating record lookup."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from taste_machine.api.deps import get_service
from taste_machine.api.schemas import NftRatingResponse, NftRegisterRequest
from taste_machine.engine.service import TasteMachine

router = APIRouter(prefix="/api/nfts", tags=["nfts"])


@router.post("", response_model=NftRatingResponse, status_code=201)
async def register_nft(
    body: NftRegisterRequest,
    service: TasteMachine = Depends(get_service),
) -> NftRatingResponse:
    """Create the rating record for a catalog NFT (idempotent)."""
    row = await service.register_nft(body.id, body.collection, body.name, body.image_url)
    return NftRatingResponse.model_validate(row)


@router.get("/{nft_id}", response_model=NftRatingResponse)
async def get_nft(
    nft_id: str,
    service: TasteMachine = Depends(get_service),
) -> NftRatingResponse:
    row = await service.ratings.get(nft_id)
    if row is None:
        raise HTTPException(status_code=404, detail={"reason": "nft_not_found", "nft_id": nft_id})
    return NftRatingResponse.model_validate(row)
