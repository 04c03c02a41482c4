"""Read-only view of the active engine tunables."""

from fastapi import APIRouter, Depends

from taste_machine.api.deps import get_service
from taste_machine.engine.service import TasteMachine

router = APIRouter(prefix="/api/config", tags=["config"])


@router.get("")
async def get_config(service: TasteMachine = Depends(get_service)) -> dict:
    """Return the rating configuration the service was started with."""
    return service.config.model_dump()
