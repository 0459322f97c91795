"""Application entry point for the tattoo directory API."""

from typing import Optional

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from loguru import logger
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from tattoo_directory.api.routes.artists import router as artists_router
from tattoo_directory.api.routes.cities import router as cities_router
from tattoo_directory.api.routes.links import router as links_router
from tattoo_directory.api.routes.locations import router as locations_router
from tattoo_directory.api.routes.search import router as search_router
from tattoo_directory.api.routes.shops import router as shops_router
from tattoo_directory.core.cache import CacheGateway, create_redis_client
from tattoo_directory.core.config import Settings, settings as default_settings
from tattoo_directory.core.db import build_engine, build_session_factory, get_session
from tattoo_directory.core.errors import register_exception_handlers
from tattoo_directory.core.logging import setup_logging
from tattoo_directory.core.middleware import BodySizeLimitMiddleware, RequestContextLogMiddleware
from tattoo_directory.core.rate_limit import init_rate_limiter


def create_app(
    settings: Optional[Settings] = None,
    *,
    engine: Optional[AsyncEngine] = None,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    cache: Optional[CacheGateway] = None,
    rate_limit_enabled: bool = True,
) -> FastAPI:
    """Build the API.

    Resources passed in are used as-is and left open on shutdown; anything
    missing is built from ``settings`` at startup and closed on shutdown.
    """

    settings = settings or default_settings
    setup_logging("DEBUG" if settings.DEBUG else "INFO", env=settings.ENV)

    app = FastAPI(title=settings.APP_NAME, debug=settings.DEBUG)
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = session_factory
    if engine is not None and session_factory is None:
        app.state.session_factory = build_session_factory(engine)
    app.state.cache = cache
    owned: list[str] = []

    register_exception_handlers(app)
    init_rate_limiter(app, enabled=rate_limit_enabled)
    app.add_middleware(RequestContextLogMiddleware)
    app.add_middleware(BodySizeLimitMiddleware, max_body_bytes=settings.MAX_BODY_BYTES)
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    # Outermost, so preflight requests are answered before limits apply.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ALLOWED_ORIGINS,
        allow_methods=["GET", "POST", "PUT", "OPTIONS"],
        allow_headers=["Content-Type", "X-Request-ID"],
    )

    @app.on_event("startup")
    async def startup_event():
        """Create the engine and cache client unless they were injected."""

        if app.state.session_factory is None:
            app.state.engine = build_engine(settings)
            app.state.session_factory = build_session_factory(app.state.engine)
            owned.append("engine")
        if app.state.cache is None:
            app.state.cache = CacheGateway.from_settings(create_redis_client(settings), settings)
            owned.append("cache")
            if app.state.cache.enabled and await app.state.cache.ping():
                logger.info("cache_connected")
            else:
                logger.warning("cache_disabled_reads_will_miss")

    @app.on_event("shutdown")
    async def shutdown_event():
        if "cache" in owned:
            await app.state.cache.close()
        if "engine" in owned:
            await app.state.engine.dispose()
        owned.clear()

    @app.get("/api/healthz", tags=["system"], summary="Liveness check")
    def healthz() -> dict[str, str]:
        """Simple liveness check that load balancers and monitors can call."""

        return {"status": "ok"}

    @app.get("/api/readyz", tags=["system"], summary="Readiness check")
    async def readyz(session: AsyncSession = Depends(get_session)):
        try:
            await session.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            raise HTTPException(status_code=503, detail="Database not reachable") from exc
        return {"ready": True, "cache": app.state.cache is not None and app.state.cache.enabled}

    app.include_router(artists_router)
    app.include_router(search_router)
    app.include_router(cities_router)
    app.include_router(shops_router)
    app.include_router(links_router)
    app.include_router(locations_router)
    return app


app = create_app()
