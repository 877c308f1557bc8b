"""Request correlation ids.

The caller's ``X-Request-ID`` is reused when it is short and header-safe,
otherwise a fresh id is minted. The id is visible to log processors and to
the outbound HTTP client for the duration of the request, and is returned on
the response.
"""

import re
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from x402_registry.platform.observability.logging import correlation_id_ctx

REQUEST_ID_HEADER = "X-Request-ID"

_USABLE_REQUEST_ID = re.compile(r"[A-Za-z0-9._:-]{1,128}")


def resolve_request_id(header_value: str | None) -> str:
    if header_value and _USABLE_REQUEST_ID.fullmatch(header_value):
        return header_value
    return uuid.uuid4().hex


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        correlation_id = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))
        token = correlation_id_ctx.set(correlation_id)
        structlog.contextvars.bind_contextvars(http_method=request.method, http_path=request.url.path)
        try:
            response = await call_next(request)
        finally:
            structlog.contextvars.unbind_contextvars("http_method", "http_path")
            correlation_id_ctx.reset(token)

        response.headers[REQUEST_ID_HEADER] = correlation_id
        return response
