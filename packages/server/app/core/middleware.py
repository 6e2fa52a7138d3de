"""
Request middleware: correlation ids.
"""

from __future__ import annotations

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.core.logs import REQUEST_ID_HEADER, bind_request_id


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Bind a request id into structlog contextvars and echo it on the response."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = bind_request_id(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = request_id
        try:
            response = await call_next(request)
        finally:
            structlog.contextvars.clear_contextvars()
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
