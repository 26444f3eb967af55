"""
backend/pickcache/middleware/logging.py

Purpose:
    One JSON log line per request (request id, timing, status, cache verdict,
    hashed client address) plus the process-wide logging setup. The request
    id is echoed back as X-Request-ID; an inbound X-Request-ID is reused so
    a pick request can be followed across a proxy.
"""

import hashlib
import json
import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("pickcache.access")

_MAX_INBOUND_ID_LENGTH = 64


def _request_id_for(request: Request) -> str:
    inbound = (request.headers.get("x-request-id") or "").strip()
    if inbound and len(inbound) <= _MAX_INBOUND_ID_LENGTH:
        return inbound
    return uuid.uuid4().hex[:8]


def _client_ip_hash(request: Request) -> str | None:
    if not request.client or not request.client.host:
        return None
    return hashlib.sha256(request.client.host.encode()).hexdigest()[:12]


def _level_for(status: int) -> int:
    if status >= 500:
        return logging.ERROR
    if status >= 400:
        return logging.WARNING
    return logging.INFO


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = _request_id_for(request)
        request.state.request_id = request_id
        started = time.perf_counter()

        response: Response = await call_next(request)

        entry = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "status": response.status_code,
            "duration_ms": round((time.perf_counter() - started) * 1000, 2),
            "cache_verdict": response.headers.get("X-Cache-Verdict"),
            "client_ip_hash": _client_ip_hash(request),
        }
        logger.log(_level_for(response.status_code), json.dumps(entry))

        response.headers["X-Request-ID"] = request_id
        return response


def setup_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )
