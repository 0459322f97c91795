"""Rate limiting for public submission endpoints using SlowAPI."""

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from tattoo_directory.core.config import settings

limiter = Limiter(key_func=get_remote_address)


def artist_submit_rate() -> str:
    """Resolved per request so tests and deployments can tune it via settings."""

    return settings.ARTIST_SUBMIT_RATE


def init_rate_limiter(app: FastAPI, *, enabled: bool = True) -> None:
    """Attach the limiter, its middleware and a JSON 429 handler to the app."""

    limiter.enabled = enabled
    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)

    async def rate_limit_exceeded_handler(request, exc):  # type: ignore[unused-arg]
        return JSONResponse(
            status_code=429,
            content={"error": "Too many submissions", "details": str(exc.detail)},
        )

    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
