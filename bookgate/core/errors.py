from dataclasses import dataclass
from typing import Any
from uuid import uuid4

from fastapi import Request
from fastapi.responses import JSONResponse


@dataclass
class ErrorEnvelope:
    code: str
    error: str
    details: str
    request_id: str

    def as_dict(self) -> dict[str, Any]:
        return {
            "success": False,
            "error": self.error,
            "details": self.details,
            "code": self.code,
            "request_id": self.request_id,
        }


class AppError(Exception):
    def __init__(self, status_code: int, code: str, error: str, details: str = ""):
        super().__init__(error)
        self.status_code = status_code
        self.code = code
        self.error = error
        self.details = details


def request_id_from_request(request: Request) -> str:
    state_id = getattr(request.state, "request_id", None)
    header_id = request.headers.get("x-request-id")
    return state_id or header_id or str(uuid4())


def app_error_response(
    status_code: int,
    code: str,
    error: str,
    details: str,
    request_id: str,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    envelope = ErrorEnvelope(code=code, error=error, details=details, request_id=request_id)
    response = JSONResponse(status_code=status_code, content=envelope.as_dict())
    response.headers["x-request-id"] = request_id
    for key, value in (headers or {}).items():
        response.headers[key] = value
    return response
