import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from bookgate.api.auth_routes import auth_router
from bookgate.api.routes import AVAILABLE_ENDPOINTS, router
from bookgate.auth.proxy import AuthProxy
from bookgate.config.settings import Settings, get_settings
from bookgate.core.errors import (
    AppError,
    ErrorEnvelope,
    app_error_response,
    request_id_from_request,
)
from bookgate.core.logging import configure_logging
from bookgate.cors.origins import OriginAuthorizer, OriginRejectedError
from bookgate.db.pool import Database
from bookgate.governor.governor import OutboundCallGovernor
from bookgate.middleware.cors import OriginMiddleware
from bookgate.middleware.request_id import RequestIDMiddleware
from bookgate.providers.base import CompletionProvider, ProviderError, RateLimitExhaustedError
from bookgate.providers.openrouter import OpenRouterProvider
from bookgate.rag.vectorstore import BookVectorStore
from bookgate.services.chat_service import ChatService
from bookgate.services.personalization_service import PersonalizationService
from bookgate.services.translation_service import TranslationService

logger = logging.getLogger("bookgate.app")


def _warn_missing_config(settings: Settings) -> None:
    if not settings.openrouter_api_key:
        logger.warning("config_missing_openrouter_api_key")
    if not settings.database_url:
        logger.warning("config_missing_database_url")
    if not settings.qdrant_url:
        logger.warning("config_missing_qdrant_url")
    if not settings.auth_service_url:
        logger.warning("config_missing_auth_service_url")


def _validation_details(exc: RequestValidationError) -> str:
    parts: list[str] = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ())[1:])
        message = str(error.get("msg", "invalid value"))
        parts.append(f"{location}: {message}" if location else message)
    return "; ".join(parts) or "Invalid request body"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    vector_store: BookVectorStore = app.state.vector_store
    if vector_store.configured:
        try:
            await vector_store.ensure_collection()
        except Exception:
            logger.exception("qdrant_initialization_failed")
    yield
    await app.state.database.close()
    await vector_store.close()


def create_app(
    provider: CompletionProvider | None = None,
    vector_store: BookVectorStore | None = None,
    database: Database | None = None,
    auth_transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)

    # Fails fast on a malformed allow-list instead of at request time.
    authorizer = OriginAuthorizer.from_patterns(
        settings.cors_allowed_origin_list,
        max_age_seconds=settings.cors_max_age_seconds,
        require_non_empty=settings.is_production,
    )
    logger.info("cors_allowlist_loaded", extra={"pattern_count": len(authorizer.patterns)})
    _warn_missing_config(settings)

    app = FastAPI(title="Physical AI Book Backend", version="0.1.0", lifespan=lifespan)

    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(OriginMiddleware, authorizer=authorizer)

    provider = provider or OpenRouterProvider(
        base_url=settings.openrouter_base_url,
        api_key=settings.openrouter_api_key,
        timeout_s=settings.provider_timeout_s,
        http_referer=settings.openrouter_http_referer,
        app_title=settings.openrouter_app_title,
    )
    governor = OutboundCallGovernor.from_settings(settings, provider)
    vector_store = vector_store or BookVectorStore(
        url=settings.qdrant_url,
        api_key=settings.qdrant_api_key,
        collection=settings.qdrant_collection,
        vector_size=settings.qdrant_vector_size,
    )

    app.state.origin_authorizer = authorizer
    app.state.governor = governor
    app.state.vector_store = vector_store
    app.state.database = database or Database(
        dsn=settings.database_url,
        max_size=settings.database_pool_max_size,
        timeout_s=settings.database_connect_timeout_s,
    )
    app.state.auth_proxy = AuthProxy(
        base_url=settings.auth_service_url,
        timeout_s=settings.auth_timeout_s,
        transport=auth_transport,
    )
    app.state.chat_service = ChatService(
        settings=settings, governor=governor, vector_store=vector_store
    )
    app.state.translation_service = TranslationService(governor=governor)
    app.state.personalization_service = PersonalizationService(governor=governor)

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        return app_error_response(
            exc.status_code, exc.code, exc.error, exc.details, request_id_from_request(request)
        )

    @app.exception_handler(ProviderError)
    async def provider_error_handler(request: Request, exc: ProviderError) -> JSONResponse:
        headers: dict[str, str] = {}
        if isinstance(exc, RateLimitExhaustedError):
            headers["Retry-After"] = str(int(round(exc.retry_after_s)))
        logger.warning(
            "provider_request_failed",
            extra={
                "request_id": request_id_from_request(request),
                "status_code": exc.status_code,
                "error_code": exc.code,
            },
        )
        return app_error_response(
            exc.status_code,
            exc.code,
            exc.user_message,
            exc.message,
            request_id_from_request(request),
            headers=headers,
        )

    @app.exception_handler(OriginRejectedError)
    async def origin_rejected_handler(request: Request, exc: OriginRejectedError) -> JSONResponse:
        return app_error_response(
            403,
            "origin_rejected",
            "Origin not allowed",
            "This request must come from a trusted site origin",
            request_id_from_request(request),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return app_error_response(
            400,
            "request_validation_failed",
            "Invalid request",
            _validation_details(exc),
            request_id_from_request(request),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        request_id = request_id_from_request(request)
        if exc.status_code != 404:
            return app_error_response(
                exc.status_code, "http_error", str(exc.detail), "", request_id
            )
        content: dict[str, Any] = ErrorEnvelope(
            code="not_found",
            error="Endpoint not found",
            details=f"The requested endpoint '{request.url.path}' was not found.",
            request_id=request_id,
        ).as_dict()
        content["availableEndpoints"] = list(AVAILABLE_ENDPOINTS)
        return JSONResponse(
            status_code=404, content=content, headers={"x-request-id": request_id}
        )

    @app.exception_handler(Exception)
    async def unhandled_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "unhandled_error",
            exc_info=exc,
            extra={"request_id": request_id_from_request(request)},
        )
        return app_error_response(
            500,
            "internal_error",
            "Internal server error",
            "An unexpected error occurred.",
            request_id_from_request(request),
        )

    app.include_router(auth_router)
    app.include_router(router)
    return app


app = create_app()
