"""FastAPI dependency injection for the engine service."""

from fastapi import Request

from taste_machine.engine.service import TasteMachine


def get_service(request: Request) -> TasteMachine:
    """Return the ``TasteMachine`` created in the app lifespan."""
    return request.app.state.taste_machine
