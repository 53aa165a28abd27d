"""CORS, request-id, and logging middleware."""

import uuid
import time
import logging
from contextvars import ContextVar
from typing import Optional

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from taskdesk.core.config import settings

logger = logging.getLogger("taskdesk")

# Correlation id of the request being served, if any
request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def current_correlation_id() -> str:
    """Return the active request id, or a fresh one outside a request."""
    return request_id_ctx.get() or str(uuid.uuid4())


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Add a unique request ID to every request/response."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-Id") or str(uuid.uuid4())
        request.state.request_id = request_id
        token = request_id_ctx.set(request_id)
        start_time = time.time()

        try:
            response: Response = await call_next(request)
        finally:
            request_id_ctx.reset(token)

        duration = round((time.time() - start_time) * 1000, 2)
        response.headers["X-Request-Id"] = request_id
        response.headers["X-Response-Time-Ms"] = str(duration)

        logger.info(
            "%s %s %s %sms [%s]",
            request.method,
            request.url.path,
            response.status_code,
            duration,
            request_id,
        )
        return response


def setup_middleware(app: FastAPI) -> None:
    """Configure all middleware for the application."""
    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Request ID + timing
    app.add_middleware(RequestIdMiddleware)
