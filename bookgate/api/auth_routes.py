from datetime import UTC, datetime

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from starlette.responses import Response

from bookgate.auth.proxy import NO_STORE_HEADERS, AuthProxy
from bookgate.cors.origins import OriginAuthorizer

auth_router = APIRouter(prefix="/api/auth")


@auth_router.get("/auth-health")
def auth_health() -> dict[str, str]:
    return {
        "status": "ok",
        "message": "Auth routes are accessible",
        "timestamp": datetime.now(tz=UTC).isoformat(),
    }


@auth_router.get("/get-session")
async def get_session(request: Request) -> JSONResponse:
    proxy: AuthProxy = request.app.state.auth_proxy
    session, cookies = await proxy.get_session(request)
    content: dict[str, object]
    if session is None:
        content = {"success": False, "session": None, "message": "No session found"}
    else:
        content = {"success": True, "session": session}
    response = JSONResponse(content=content, headers=NO_STORE_HEADERS)
    for cookie in cookies:
        response.headers.append("set-cookie", cookie)
    return response


@auth_router.api_route("/{path:path}", methods=["GET", "POST", "PUT", "PATCH", "DELETE"])
async def relay(request: Request, path: str) -> Response:
    proxy: AuthProxy = request.app.state.auth_proxy
    if request.method != "GET":
        # Cookie-bearing mutations must come from a trusted page.
        authorizer: OriginAuthorizer = request.app.state.origin_authorizer
        authorizer.require(request.headers.get("origin"))
    return await proxy.forward(request, path)
