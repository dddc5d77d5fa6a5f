# src/api/rate_limit.py
"""Per-client rate limiting using slowapi."""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from config import Settings
import logging


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    # SlowAPIMiddleware calls this without awaiting it, so it stays sync.
    trace_id = getattr(request.state, "trace_id", "unknown")
    logging.warning(f"[trace_id={trace_id}] Rate limit exceeded for {get_remote_address(request)}: {exc.detail}")
    return JSONResponse(
        status_code=429,
        content={
            "success": False,
            "error": {
                "code": "RATE_LIMITED",
                "message": f"Rate limit exceeded: {exc.detail}",
                "trace_id": trace_id,
            },
        },
    )


def setup_rate_limiter(app: FastAPI, settings: Settings) -> None:
    """Attach a slowapi limiter applying ``settings.rate_limit`` to every route, keyed by client IP."""
    if not settings.rate_limit_enabled:
        logging.info("Rate limiting disabled")
        return

    limiter = Limiter(
        key_func=get_remote_address,
        default_limits=[settings.rate_limit],
        storage_uri=settings.rate_limit_storage_uri,
    )
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)
    logging.info(f"Rate limiter configured: {settings.rate_limit} per client")
