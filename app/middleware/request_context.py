"""Request context middleware for log correlation.

Every request gets an ID, taken from the incoming ``X-Request-ID`` header when
present or generated otherwise. The ID is stored in a context variable so
``RequestContextFilter`` can stamp it on log records, and echoed back in the
response headers.
"""

import uuid
from contextvars import ContextVar
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.logging_config import get_logger

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Longest client-supplied ID we accept
MAX_REQUEST_ID_LENGTH = 64

_request_id: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def get_request_id() -> Optional[str]:
    """Return the ID of the request being served, if any."""
    return _request_id.get()


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Assigns a request ID for the duration of each request.

    Usage:
        app.add_middleware(RequestContextMiddleware)
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        incoming = request.headers.get(REQUEST_ID_HEADER, "").strip()
        if incoming and len(incoming) <= MAX_REQUEST_ID_LENGTH:
            request_id = incoming
        else:
            request_id = uuid.uuid4().hex

        token = _request_id.set(request_id)
        try:
            logger.debug(f"{request.method} {request.url.path}")
            response = await call_next(request)
        finally:
            _request_id.reset(token)

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
