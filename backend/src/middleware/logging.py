"""HTTP request logging middleware.

Binds a request id for the lifetime of each request (reusing an inbound
X-Request-ID when present), logs one line per completed request and echoes
the id back in the response headers.
"""

import time

from fastapi import Request

from src.utils.logger import clear_request_id, get_logger, set_request_id

log = get_logger(__name__)

_QUIET_PATHS = {"/api/v1/health"}


async def logging_middleware(request: Request, call_next):
    request_id = set_request_id(request.headers.get("x-request-id"))
    start = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception:
        log.error(
            "request failed",
            method=request.method,
            path=request.url.path,
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
            exc_info=True,
        )
        clear_request_id()
        raise

    duration_ms = round((time.perf_counter() - start) * 1000, 2)
    log_fn = log.debug if request.url.path in _QUIET_PATHS else log.info
    log_fn(
        "request completed",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=duration_ms,
    )
    response.headers["X-Request-ID"] = request_id
    clear_request_id()
    return response
