import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class LoggingMiddleware(BaseHTTPMiddleware):
    """Logs one line per request and echoes a request id back to the caller."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:16]
        start = time.monotonic()

        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "[%s] %s %s failed after %.2fs",
                request_id,
                request.method,
                request.url.path,
                time.monotonic() - start,
            )
            raise

        logger.info(
            "[%s] %s %s -> %s (%.2fs) actor=%s/%s",
            request_id,
            request.method,
            request.url.path,
            response.status_code,
            time.monotonic() - start,
            request.headers.get("x-user-id", "-"),
            request.headers.get("x-user-role", "-"),
        )

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
