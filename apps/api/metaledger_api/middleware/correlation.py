"""Correlation ID middleware."""

import uuid
from contextvars import ContextVar
from typing import Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

CORRELATION_HEADER = "x-correlation-id"

_correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)


def current_correlation_id() -> Optional[str]:
    """Correlation ID of the request being served, if any."""
    return _correlation_id.get()


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """Tag each request with a correlation ID that follows it into queued jobs."""

    async def dispatch(self, request: Request, call_next):
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        request.state.correlation_id = correlation_id
        token = _correlation_id.set(correlation_id)
        try:
            response: Response = await call_next(request)
        finally:
            _correlation_id.reset(token)

        response.headers[CORRELATION_HEADER] = correlation_id
        return response
