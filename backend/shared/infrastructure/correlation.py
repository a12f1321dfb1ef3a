"""
Request correlation.

Every HTTP request gets an ID that is echoed back in the X-Request-ID
header and attached to each log record emitted while serving it. Events
published after a request commit carry the same ID in their metadata so
a kitchen screen update can be traced back to the request that caused it.
"""

import uuid
from contextvars import ContextVar
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

# Context variable for request ID (task-local under asyncio, thread-local under the threadpool)
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

REQUEST_ID_HEADER = "X-Request-ID"
MAX_REQUEST_ID_LENGTH = 64


def get_request_id() -> str:
    """Get the current request ID, or an empty string outside a request."""
    return request_id_var.get()


def _sanitize_request_id(raw: str | None) -> str:
    # Client-supplied IDs end up in logs; keep them short and printable
    if not raw:
        return str(uuid.uuid4())
    cleaned = "".join(ch for ch in raw if ch.isalnum() or ch in "-_.")
    return cleaned[:MAX_REQUEST_ID_LENGTH] or str(uuid.uuid4())


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """
    Assigns a correlation ID to each request.

    - Reuses the incoming X-Request-ID header when present
    - Otherwise generates a UUID4
    - Exposes it on request.state and in the response headers
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = _sanitize_request_id(request.headers.get(REQUEST_ID_HEADER))
        token = request_id_var.set(request_id)
        try:
            request.state.request_id = request_id
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            request_id_var.reset(token)


class CorrelationIdFilter:
    """
    Logging filter that adds request_id to log records.

    Usage:
        handler = logging.StreamHandler()
        handler.addFilter(CorrelationIdFilter())
    """

    def filter(self, record) -> bool:
        record.request_id = request_id_var.get() or "-"
        return True
