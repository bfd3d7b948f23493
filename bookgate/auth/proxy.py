"""Relay of ``/api/auth/*`` traffic to the external auth service.

Sessions, passwords and cookies are owned by the auth service.  This module
only forwards requests and hands back its responses, keeping every
``Set-Cookie`` header intact so the browser stores the session cookie for the
site's domain.
"""

import logging

import httpx
from fastapi import Request
from starlette.responses import Response

from bookgate.core.errors import AppError

logger = logging.getLogger("bookgate.auth")

FORWARDED_REQUEST_HEADERS = (
    "cookie",
    "content-type",
    "authorization",
    "origin",
    "user-agent",
    "accept",
)
FORWARDED_RESPONSE_HEADERS = ("content-type", "location", "cache-control")
NO_STORE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, private",
    "Pragma": "no-cache",
    "Expires": "0",
}


class AuthProxy:
    def __init__(
        self,
        base_url: str | None,
        timeout_s: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._base_url = base_url.rstrip("/") if base_url else None
        self._timeout_s = timeout_s
        self._transport = transport

    @property
    def configured(self) -> bool:
        return self._base_url is not None

    def _client(self) -> httpx.AsyncClient:
        if self._transport is None:
            return httpx.AsyncClient(timeout=self._timeout_s)
        return httpx.AsyncClient(timeout=self._timeout_s, transport=self._transport)

    async def _send(self, request: Request, path: str) -> httpx.Response:
        if self._base_url is None:
            raise AppError(
                503,
                "auth_not_configured",
                "Service unavailable",
                "Authentication service URL is not configured",
            )
        url = f"{self._base_url}/api/auth/{path.lstrip('/')}"
        headers = {
            name: request.headers[name]
            for name in FORWARDED_REQUEST_HEADERS
            if name in request.headers
        }
        body = await request.body()
        try:
            async with self._client() as client:
                return await client.request(
                    request.method,
                    url,
                    params=list(request.query_params.multi_items()),
                    headers=headers,
                    content=body or None,
                )
        except httpx.TransportError as exc:
            logger.warning(
                "auth_service_unreachable",
                extra={"path": path, "error_code": type(exc).__name__},
            )
            raise AppError(
                503,
                "auth_unreachable",
                "Authentication service is unreachable",
                "No response from the authentication service. Please try again shortly.",
            ) from exc

    async def forward(self, request: Request, path: str) -> Response:
        upstream = await self._send(request, path)
        response = Response(content=upstream.content, status_code=upstream.status_code)
        for name in FORWARDED_RESPONSE_HEADERS:
            if name in upstream.headers:
                response.headers[name] = upstream.headers[name]
        for cookie in upstream.headers.get_list("set-cookie"):
            response.headers.append("set-cookie", cookie)
        return response

    async def get_session(self, request: Request) -> tuple[dict[str, object] | None, list[str]]:
        """Return the current session (or None) plus any refreshed cookies."""
        upstream = await self._send(request, "get-session")
        cookies = upstream.headers.get_list("set-cookie")
        if upstream.status_code >= 400:
            raise AppError(
                502,
                "auth_session_error",
                "Error retrieving session",
                f"Authentication service returned {upstream.status_code}",
            )
        try:
            payload = upstream.json()
        except ValueError:
            payload = None
        if not isinstance(payload, dict) or not payload:
            return None, cookies
        return payload, cookies
