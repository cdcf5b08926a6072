from __future__ import annotations

import logging
import sys
import time
import uuid
from typing import Any, Dict

import structlog
from fastapi import Request


def _add_log_level(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    event_dict["level"] = method_name
    return event_dict


def configure_logging(env: str = "development", debug: bool = False) -> None:
    """Configure structlog to write to stdout.

    Development gets the colored console renderer, everything else gets one
    JSON object per line.
    """
    timestamper = structlog.processors.TimeStamper(fmt="iso", utc=True)

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        _add_log_level,
        timestamper,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    if env == "development":
        renderer: Any = structlog.dev.ConsoleRenderer(colors=True)
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared_processors,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


REQUEST_ID_HEADER = "x-request-id"


async def request_id_middleware(request: Request, call_next):  # type: ignore[no-untyped-def]
    """Bind a request id to every log line emitted while serving the request.

    The id is taken from the incoming ``x-request-id`` header when present
    and echoed back on the response. Server errors are logged as errors.
    """
    request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
    structlog.contextvars.bind_contextvars(
        request_id=request_id,
        method=request.method,
        path=request.url.path,
    )
    log = structlog.get_logger("paysync.http")
    started = time.perf_counter()
    status_code = 500

    try:
        response = await call_next(request)
        status_code = response.status_code
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
    finally:
        elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
        if status_code >= 500:
            log.error("http.request_failed", status=status_code, duration_ms=elapsed_ms)
        else:
            log.info("http.request_completed", status=status_code, duration_ms=elapsed_ms)
        structlog.contextvars.clear_contextvars()
