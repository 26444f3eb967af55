"""Attach CORS and hardening headers to every response, errors included."""

import logging

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

logger = logging.getLogger("pickcache")

ALLOWED_HEADERS = "authorization, x-client-info, apikey, content-type"
ALLOWED_METHODS = "POST, OPTIONS"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, allow_origins: list[str] | None = None) -> None:
        super().__init__(app)
        self._allow_origins = allow_origins or ["*"]

    def _origin_for(self, request: Request) -> str:
        if "*" in self._allow_origins:
            return "*"
        origin = request.headers.get("origin")
        if origin and origin in self._allow_origins:
            return origin
        return self._allow_origins[0]

    async def dispatch(self, request: Request, call_next) -> Response:
        try:
            response: Response = await call_next(request)
        except Exception:
            # Unhandled errors must still carry the headers below.
            logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
            response = JSONResponse(status_code=500, content={"detail": "An internal error occurred."})

        response.headers["Access-Control-Allow-Origin"] = self._origin_for(request)
        response.headers["Access-Control-Allow-Headers"] = ALLOWED_HEADERS
        response.headers["Access-Control-Allow-Methods"] = ALLOWED_METHODS
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains; preload"
        if "*" not in self._allow_origins:
            response.headers["Vary"] = "Origin"
        return response
