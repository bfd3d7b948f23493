import logging
from datetime import UTC, datetime

from fastapi import APIRouter, Request

from bookgate.core.errors import AppError
from bookgate.metrics import metrics_router
from bookgate.models.api import (
    ChatRequest,
    ChatResponse,
    PersonalizeRequest,
    PersonalizeResponse,
    TranslateRequest,
    TranslateResponse,
)
from bookgate.services.chat_service import ChatService
from bookgate.services.personalization_service import PersonalizationService
from bookgate.services.translation_service import TranslationService

logger = logging.getLogger("bookgate.api")

router = APIRouter()
router.include_router(metrics_router)

AVAILABLE_ENDPOINTS = (
    "GET /health",
    "GET /api/auth/auth-health",
    "POST /api/auth/sign-up/email",
    "POST /api/auth/sign-in/email",
    "POST /api/auth/sign-out",
    "GET /api/auth/get-session",
    "POST /api/gemini/translate",
    "POST /api/translate",
    "POST /api/personalize",
    "POST /chat",
    "GET /chat/health",
)


@router.get("/health")
async def health(request: Request) -> dict[str, object]:
    state = request.app.state
    services = {
        "database": await state.database.ping(),
        "qdrant": await state.vector_store.ping(),
        "provider": "ok" if state.governor.provider.configured else "not_configured",
        "auth": "ok" if state.auth_proxy.configured else "not_configured",
    }
    status = "degraded" if "unavailable" in services.values() else "ok"
    return {
        "status": status,
        "message": "Book backend is running",
        "timestamp": datetime.now(tz=UTC).isoformat(),
        "services": services,
        "rateLimit": state.governor.budget_summary(),
    }


@router.post("/chat", response_model=ChatResponse)
async def chat(request: Request, payload: ChatRequest) -> ChatResponse:
    service: ChatService = request.app.state.chat_service
    return await service.handle_chat(payload)


@router.get("/chat/health")
def chat_health(request: Request) -> dict[str, object]:
    service: ChatService = request.app.state.chat_service
    return service.health()


@router.post("/api/gemini/translate", response_model=TranslateResponse)
async def gemini_translate(request: Request, payload: TranslateRequest) -> TranslateResponse:
    service: TranslationService = request.app.state.translation_service
    # This endpoint always lets the model detect the source language.
    return await service.translate(payload.model_copy(update={"source_language": None}))


@router.post("/api/translate", response_model=TranslateResponse)
async def translate(request: Request, payload: TranslateRequest) -> TranslateResponse:
    service: TranslationService = request.app.state.translation_service
    return await service.translate(payload)


@router.post("/api/personalize", response_model=PersonalizeResponse)
async def personalize(request: Request, payload: PersonalizeRequest) -> PersonalizeResponse:
    service: PersonalizationService = request.app.state.personalization_service
    session: dict[str, object] | None = None
    auth_proxy = request.app.state.auth_proxy
    if payload.user_background is None and auth_proxy.configured and request.headers.get("cookie"):
        try:
            session, _ = await auth_proxy.get_session(request)
        except AppError as exc:
            logger.warning("personalize_session_lookup_failed", extra={"error_code": exc.code})
    return await service.personalize(payload, session=session)
