"""Request logging middleware"""
import logging
import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger("clinic.requests")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs one line per request and tags the response with a request id"""

    skip_paths = ("/health", "/docs", "/openapi.json", "/redoc", "/favicon.ico")

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]
        request.state.request_id = request_id

        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000

        response.headers["X-Request-ID"] = request_id
        if not request.url.path.startswith(self.skip_paths):
            level = logging.WARNING if response.status_code >= 500 else logging.INFO
            logger.log(
                level,
                "%s %s -> %d (%.1f ms) [%s] client=%s",
                request.method,
                request.url.path,
                response.status_code,
                elapsed_ms,
                request_id,
                self._client_ip(request),
            )
        return response

    @staticmethod
    def _client_ip(request: Request) -> str:
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()
        return request.client.host if request.client else "unknown"
