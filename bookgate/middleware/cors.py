import logging

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from bookgate.cors.origins import OriginAuthorizer
from bookgate.metrics import record_origin_decision

logger = logging.getLogger("bookgate.cors")


class OriginMiddleware(BaseHTTPMiddleware):
    """Edge check for every request: annotate allowed origins, end preflights."""

    def __init__(self, app: ASGIApp, authorizer: OriginAuthorizer):
        super().__init__(app)
        self._authorizer = authorizer

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        origin = request.headers.get("origin")
        decision = self._authorizer.decide(origin)
        preflight = request.method == "OPTIONS"

        if not decision.same_origin:
            record_origin_decision(decision.allowed, preflight)
            if not decision.allowed:
                logger.warning(
                    "cors_origin_rejected",
                    extra={"origin": origin, "method": request.method, "path": request.url.path},
                )

        headers = self._authorizer.cors_headers(decision)
        if preflight:
            return Response(status_code=204, headers=headers)

        response = await call_next(request)
        for key, value in headers.items():
            response.headers[key] = value
        return response
