"""FastAPI application for the Taste Machine rating engine."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from taste_machine import __version__
from taste_machine.api.routes.config import router as config_router
from taste_machine.api.routes.events import router as events_router
from taste_machine.api.routes.health import router as health_router
from taste_machine.api.routes.matchups import router as matchups_router
from taste_machine.api.routes.nfts import router as nfts_router
from taste_machine.api.routes.recompute import router as recompute_router
from taste_machine.api.routes.scores import router as scores_router
from taste_machine.config.settings import get_settings
from taste_machine.db.session import get_session_factory
from taste_machine.engine.service import TasteMachine
from taste_machine.errors import NftNotFound, TransientStoreError, ValidationFailed
from taste_machine.logging_config import configure_logging
from taste_machine.rating.config import load_rating_config

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    configure_logging(json_output=settings.log_json, log_level=settings.log_level)
    config = load_rating_config(settings.rating_config_path)
    app.state.taste_machine = TasteMachine(get_session_factory(), config)
    logger.info(
        "api_starting",
        database=settings.database_url.split("@")[-1],
        recompute_mode=config.recompute.mode,
    )
    yield
    logger.info("api_shutdown")


app = FastAPI(title="Taste Machine API", version=__version__, lifespan=lifespan)


@app.exception_handler(ValidationFailed)
async def validation_failed_handler(request: Request, exc: ValidationFailed) -> JSONResponse:
    logger.info("request_rejected", path=request.url.path, reason=exc.reason)
    return JSONResponse(status_code=422, content={"detail": {"reason": exc.reason, "message": str(exc)}})


@app.exception_handler(NftNotFound)
async def nft_not_found_handler(request: Request, exc: NftNotFound) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": {"reason": "nft_not_found", "nft_id": exc.nft_id}})


@app.exception_handler(TransientStoreError)
async def transient_store_handler(request: Request, exc: TransientStoreError) -> JSONResponse:
    logger.error("store_unavailable", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=503,
        content={"detail": {"reason": "store_unavailable", "message": str(exc)}},
    )


app.include_router(health_router)
app.include_router(nfts_router)
app.include_router(matchups_router)
app.include_router(events_router)
app.include_router(scores_router)
app.include_router(recompute_router)
app.include_router(config_router)
