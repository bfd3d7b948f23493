import logging
from time import perf_counter
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from bookgate.core.errors import app_error_response

logger = logging.getLogger("bookgate.http")


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Tags each request with an id and logs one access line per response.

    Unexpected errors become the 500 envelope here, inside the origin
    middleware, so trusted origins can still read the failure.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("x-request-id") or str(uuid4())
        request.state.request_id = request_id
        started = perf_counter()
        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error("unhandled_error", exc_info=exc, extra={"request_id": request_id})
            response = app_error_response(
                500,
                "internal_error",
                "Internal server error",
                "An unexpected error occurred.",
                request_id,
            )
        response.headers["x-request-id"] = request_id
        logger.info(
            "request_completed",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "latency_ms": round((perf_counter() - started) * 1000, 1),
            },
        )
        return response
