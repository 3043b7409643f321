"""HTTP middleware: request correlation ids, access logging and CORS.

Every response carries ``X-Request-Id``. Audit entries written while the
request is handled pick the same id up from ``request.state.request_id``.
"""

import logging
import time
import uuid

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from workdesk.core.config import settings

logger = logging.getLogger("workdesk.http")

REQUEST_ID_HEADER = "X-Request-Id"
ELAPSED_HEADER = "X-Response-Time-Ms"


def incoming_request_id(request: Request) -> str:
    """Reuse a caller-supplied correlation id, or mint one."""
    supplied = request.headers.get(REQUEST_ID_HEADER, "").strip()
    return supplied[:64] or uuid.uuid4().hex


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Attach a correlation id to the request and write one access log line."""

    async def dispatch(self, request: Request, call_next):
        request_id = incoming_request_id(request)
        request.state.request_id = request_id
        started = time.perf_counter()

        response = await call_next(request)

        elapsed_ms = (time.perf_counter() - started) * 1000
        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers[ELAPSED_HEADER] = f"{elapsed_ms:.2f}"
        # Query strings are left out: verification links carry tokens.
        logger.info(
            "%s %s -> %s in %.2fms [%s]",
            request.method, request.url.path, response.status_code, elapsed_ms, request_id,
        )
        return response


def install_middleware(app: FastAPI) -> None:
    # Starlette runs the last-added middleware first, so CORS wraps the request context.
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", REQUEST_ID_HEADER],
        expose_headers=[REQUEST_ID_HEADER, ELAPSED_HEADER],
    )
