"""
Exception handlers.

Every failure leaves the API as ``{"error": kind, "detail": message}``.
"""

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from shared.config.logging import rest_api_logger as logger
from shared.security.rate_limit import rate_limit_exceeded_handler
from rest_api.services.domain.errors import OrderLifecycleError, OrderPersistenceError

# HTTPException status -> error kind
HTTP_ERROR_KINDS = {
    401: "Unauthorized",
    403: "Forbidden",
    404: "NotFound",
    405: "MethodNotAllowed",
    415: "UnsupportedMediaType",
}


async def order_lifecycle_error_handler(request: Request, exc: OrderLifecycleError) -> JSONResponse:
    if isinstance(exc, OrderPersistenceError):
        logger.error("Request failed", path=request.url.path, error=exc.kind)
    else:
        logger.info(
            "Request rejected",
            path=request.url.path,
            error=exc.kind,
            detail=exc.message,
        )
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.kind, "detail": exc.message},
    )


async def request_validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"error": "ValidationError", "detail": jsonable_encoder(exc.errors())},
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": HTTP_ERROR_KINDS.get(exc.status_code, "HTTPError"),
            "detail": exc.detail,
        },
        headers=getattr(exc, "headers", None),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(OrderLifecycleError, order_lifecycle_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
