from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine as sa_create_async_engine

from taste_machine.config.settings import get_settings

_engine: AsyncEngine | None = None


def get_engine(echo: bool = False) -> AsyncEngine:
    """Return a cached async engine instance.

    ``pool_pre_ping`` drops connections that went stale between requests
    instead of surfacing them as errors on the next vote.
    """
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = sa_create_async_engine(settings.database_url, echo=echo, pool_pre_ping=True)
    return _engine
