"""Request correlation middleware."""

from __future__ import annotations

import logging
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

HEADER = "X-Request-ID"


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Attach ``request.state.request_id`` and echo it in ``X-Request-ID``.

    An incoming header value is reused so calls can be traced across the
    cashier UI and this service.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get(HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers[HEADER] = request_id
        logger.debug(
            "%s %s -> %s [%s]",
            request.method,
            request.url.path,
            response.status_code,
            request_id,
        )
        return response
