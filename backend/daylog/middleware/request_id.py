"""
Daylog Backend — Request ID Middleware
========================================

What:  Assigns an ID to each incoming request and returns it in X-Request-ID.
How:   Accepts the client's X-Request-ID when it is a short token of letters,
       digits, '.', '_' or '-'; otherwise generates 8 hex chars. The ID is
       stored in a ContextVar for loggers and error handlers.
When:  First middleware in the chain.

The ID is written into every access-log line and error body, so anything
that could forge a log line or bloat a response is replaced.
"""

import re
import uuid
from contextvars import ContextVar
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

REQUEST_ID_HEADER = "X-Request-ID"
MAX_REQUEST_ID_LENGTH = 64
_REQUEST_ID_PATTERN = re.compile(r"[A-Za-z0-9._-]+")

# Coroutine-local: concurrent requests on one loop each see their own ID
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


def generate_request_id() -> str:
    return uuid.uuid4().hex[:8]


def accepted_request_id(candidate: Optional[str]) -> Optional[str]:
    """Return the client's ID if it is safe to log and echo, else None."""
    if not candidate or len(candidate) > MAX_REQUEST_ID_LENGTH:
        return None
    if not _REQUEST_ID_PATTERN.fullmatch(candidate):
        return None
    return candidate


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Behavior:
        1. Take an acceptable X-Request-ID from the request, or generate one
        2. Store it in request_id_var and request.state.request_id
        3. Echo it back in the response headers
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        rid = accepted_request_id(request.headers.get(REQUEST_ID_HEADER)) or generate_request_id()

        request_id_var.set(rid)
        request.state.request_id = rid

        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = rid
        return response
