"""
Rate limiting for public endpoints using slowapi.

Usage in a router:
    from shared.security.rate_limit import limiter

    @router.post("/orders")
    @limiter.limit(settings.order_create_rate_limit)
    def create_order(request: Request, ...):
        ...
"""

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from shared.config.logging import get_logger

logger = get_logger(__name__)

# Client IP is the key; table-side customers are anonymous
limiter = Limiter(key_func=get_remote_address)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """
    Handler for rate limit exceeded errors.
    Returns the same ``{"error", "detail"}`` shape as domain failures.
    """
    logger.warning(
        "Rate limit exceeded",
        path=request.url.path,
        client=get_remote_address(request),
        limit=str(exc.detail),
    )
    return JSONResponse(
        status_code=429,
        content={
            "error": "RateLimitExceeded",
            "detail": f"Rate limit exceeded: {exc.detail}. Try again later.",
        },
    )
