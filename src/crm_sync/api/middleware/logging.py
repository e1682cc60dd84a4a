"""structlog configuration and per-request logging middleware.

Every request gets a request_id bound into structlog's contextvars, so log
lines emitted by the sync engine while serving the request (retries,
per-record failures, webhook upserts) carry the same id as the access log
line. The id is echoed back in the X-Request-ID header; an incoming
X-Request-ID (e.g. from a HubSpot workflow retry) is reused.
"""

from __future__ import annotations

import logging
import time
import uuid

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from src.crm_sync.config import Environment, get_settings

logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def configure_structlog() -> None:
    """Route structlog through stdlib logging at LOG_LEVEL.

    JSON lines in production, coloured console output elsewhere.
    """
    settings = get_settings()
    logging.basicConfig(format="%(message)s", level=settings.LOG_LEVEL.upper())

    renderer = (
        structlog.processors.JSONRenderer()
        if settings.ENVIRONMENT == Environment.production
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


class LoggingMiddleware(BaseHTTPMiddleware):
    """Logs one http.request line per request and scopes request_id to it."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )
        start_time = time.monotonic()

        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "http.request_error",
                duration_ms=round((time.monotonic() - start_time) * 1000, 2),
            )
            raise
        finally:
            duration_ms = round((time.monotonic() - start_time) * 1000, 2)

        response.headers[REQUEST_ID_HEADER] = request_id

        if response.status_code >= 500:
            log = logger.error
        elif response.status_code >= 400:
            log = logger.warning
        else:
            log = logger.info
        log("http.request", status_code=response.status_code, duration_ms=duration_ms)

        structlog.contextvars.clear_contextvars()
        return response
