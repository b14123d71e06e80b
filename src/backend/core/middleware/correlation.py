"""
Correlation ID middleware.

Every request gets an X-Correlation-ID (taken from the request header when
the client or a proxy sent one). It is stored in a context variable so log
records and audit rows can carry it, and echoed on the response.
"""

import uuid
from contextvars import ContextVar
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

CORRELATION_HEADER = "X-Correlation-ID"

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")


def get_correlation_id() -> str:
    """Correlation ID of the current request, or "" outside a request."""
    return correlation_id_var.get("")


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Extracts or generates the correlation id and echoes it on the response."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request.headers.get(CORRELATION_HEADER) or uuid.uuid4().hex
        token = correlation_id_var.set(correlation_id)
        try:
            response = await call_next(request)
        finally:
            correlation_id_var.reset(token)
        response.headers[CORRELATION_HEADER] = correlation_id
        return response
