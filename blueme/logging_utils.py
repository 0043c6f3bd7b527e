"""
Structured JSON logging for the Blue+Me API.

Every log line carries ts, level and logger name; lines written while a
request is being handled also carry its request_id. RequestLoggingMiddleware
writes one summary line per request and feeds the HTTP metrics.
"""

import logging
import sys
import time
import uuid
from contextvars import ContextVar
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from pythonjsonlogger import jsonlogger

from blueme.metrics import record_http_request
from blueme.utils import now_iso


REQUEST_ID_HEADER = "X-Request-ID"

# Paths served outside the router (static uploads, 404s) share one label
UNMATCHED_PATH_LABEL = "<unmatched>"

request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

request_logger = logging.getLogger("blueme.requests")


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Adds ts (ISO-8601, ms, Z), level and the current request_id."""

    def add_fields(self, log_record, record, message_dict):
        super(CustomJsonFormatter, self).add_fields(log_record, record, message_dict)
        if not log_record.get('ts'):
            log_record['ts'] = now_iso()
        log_record['level'] = record.levelname

        req_id = request_id_ctx.get()
        if req_id and 'request_id' not in log_record:
            log_record['request_id'] = req_id


def setup_logging(log_level: str = "INFO"):
    """
    Send the root logger and uvicorn's loggers to one JSON stdout handler.
    uvicorn.access is silenced; RequestLoggingMiddleware replaces it.
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(CustomJsonFormatter('%(ts)s %(level)s %(name)s %(message)s'))

    root = logging.getLogger()
    root.setLevel(log_level.upper())
    root.handlers = [handler]

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        server_logger = logging.getLogger(name)
        server_logger.handlers = [handler]
        server_logger.propagate = False
    logging.getLogger("uvicorn.access").disabled = True

    return root


def _metric_path(request: Request) -> str:
    route = request.scope.get("route")
    return getattr(route, "path", UNMATCHED_PATH_LABEL)


def _level_for(status_code: int) -> int:
    if status_code >= 500:
        return logging.ERROR
    if status_code >= 400:
        return logging.WARNING
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    One "Request completed" line per request with request_id, method, path,
    status and latency_ms, plus whatever the route attached through
    log_request_data (user_id, result, ...).

    A client-supplied X-Request-ID is reused; otherwise a uuid4 is minted.
    The id is echoed back in the response header.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id
        token = request_id_ctx.set(request_id)
        started = time.perf_counter()

        try:
            try:
                response = await call_next(request)
            except Exception:
                self._finish(request, request_id, 500, started)
                request_logger.exception("Unhandled error", extra={"path": request.url.path})
                raise

            response.headers[REQUEST_ID_HEADER] = request_id
            self._finish(request, request_id, response.status_code, started)
            return response
        finally:
            request_id_ctx.reset(token)

    def _finish(self, request: Request, request_id: str, status_code: int, started: float) -> None:
        latency_seconds = time.perf_counter() - started
        metric_path = _metric_path(request)
        if metric_path != "/metrics":
            record_http_request(request.method, metric_path, status_code, latency_seconds)

        log_data = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "status": status_code,
            "latency_ms": round(latency_seconds * 1000, 2),
        }
        log_data.update(getattr(request.state, "log_data", {}))
        request_logger.log(_level_for(status_code), "Request completed", extra=log_data)


def log_request_data(request: Request, **fields) -> None:
    """
    Attach domain fields (user_id, result, ...) to the request log line
    written by RequestLoggingMiddleware. None values are skipped.
    """
    data = getattr(request.state, "log_data", {})
    data.update({key: value for key, value in fields.items() if value is not None})
    request.state.log_data = data
