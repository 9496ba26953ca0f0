"""structlog setup and per-request log correlation.

Every request gets a request id (taken from a well-formed ``X-Request-ID``
header or freshly generated) that is bound into structlog's context for the
lifetime of the request. Service-level events such as ``file_uploaded`` or
``file_op_failed`` therefore carry the same ``request_id`` and ``client_ip``
as the ``http_request`` summary line.
"""

from __future__ import annotations

import logging
import re
import sys
import time
import uuid
from collections.abc import Awaitable, Callable

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from .deps import client_ip

logger = structlog.get_logger()

REQUEST_ID_HEADER = 'X-Request-ID'
UNLOGGED_PATHS = frozenset({'/healthz'})

_REQUEST_ID_RE = re.compile(r'[A-Za-z0-9._-]{1,64}')


def configure_logging(level: str = 'info', json_logs: bool = True) -> None:
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        numeric = logging.INFO

    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()
    shared = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt='iso', utc=True),
    ]
    structlog.configure(
        processors=[*shared, structlog.dev.set_exc_info, structlog.processors.format_exc_info, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(numeric),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )

    # uvicorn and other stdlib loggers go through the same renderer
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(foreign_pre_chain=shared, processor=renderer))
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(numeric)
    for name in ('uvicorn', 'uvicorn.error', 'uvicorn.access'):
        logging.getLogger(name).handlers = []
        logging.getLogger(name).propagate = True


def request_id_for(request: Request) -> str:
    incoming = request.headers.get(REQUEST_ID_HEADER, '')
    if _REQUEST_ID_RE.fullmatch(incoming):
        return incoming
    return uuid.uuid4().hex


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        if request.url.path in UNLOGGED_PATHS:
            return await call_next(request)

        request_id = request_id_for(request)
        with structlog.contextvars.bound_contextvars(request_id=request_id, client_ip=client_ip(request)):
            start = time.perf_counter()
            response = await call_next(request)
            elapsed = round((time.perf_counter() - start) * 1000, 2)

            log = logger.warning if response.status_code >= 500 else logger.info
            log(
                'http_request',
                method=request.method,
                path=request.url.path,
                status=response.status_code,
                duration_ms=elapsed,
            )

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
