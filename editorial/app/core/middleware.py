"""ASGI middleware for request logging."""
from __future__ import annotations

import logging
import time
import uuid
from typing import Awaitable, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from .metrics import record_request

REQUEST_ID_HEADER = "X-Request-ID"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Tag every request with an id, log its outcome and feed the request metrics.

    A caller-supplied ``X-Request-ID`` is reused so a chunking run triggered by
    another service can be traced across both logs.
    """

    def __init__(self, app: Callable) -> None:
        super().__init__(app)
        self.logger = logging.getLogger("editorial.request")

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            duration = time.perf_counter() - start
            route_path = _route_path(request)
            record_request(request.method, route_path, 500, duration)
            self.logger.exception(
                "HTTP %s %s request_id=%s raised an unhandled exception",
                request.method,
                route_path,
                request_id,
            )
            raise

        duration = time.perf_counter() - start
        route_path = _route_path(request)
        record_request(request.method, route_path, response.status_code, duration)
        self.logger.info(
            "HTTP %s %s status=%s request_id=%s duration=%.3f",
            request.method,
            route_path,
            response.status_code,
            request_id,
            duration,
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers.setdefault("X-Process-Time", f"{duration:.6f}")
        return response


def _route_path(request: Request) -> str:
    # The matched route is only known once routing has run.
    route = request.scope.get("route")
    return getattr(route, "path", request.url.path)
