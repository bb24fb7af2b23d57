from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from .config import Settings, get_settings
from .routers import admin, products, recipients, suggestions
from .services.error_handling import (
    AppError,
    build_error_response,
    log_exception,
    map_exception_to_error_code,
    resolve_trace_id,
)

logger = logging.getLogger(__name__)


async def _error_response(request: Request, exc: Exception, *, handled: bool) -> JSONResponse:
    trace_id = resolve_trace_id(request)
    await log_exception(request=request, exc=exc, trace_id=trace_id, handled=handled)
    error_code, reason, status_code, message = map_exception_to_error_code(exc)
    debug_payload = {"trace_id": trace_id}
    if isinstance(exc, AppError) and exc.debug:
        debug_payload.update(exc.debug)
    return build_error_response(
        error_code=error_code,
        reason=reason,
        status_code=status_code,
        message=message,
        debug_payload=debug_payload,
    )


def _register_exception_handlers(app: FastAPI) -> None:
    async def handled_error(request: Request, exc: Exception) -> JSONResponse:
        return await _error_response(request, exc, handled=True)

    async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
        return await _error_response(request, exc, handled=False)

    for exc_class in (RequestValidationError, HTTPException, AppError):
        app.add_exception_handler(exc_class, handled_error)
    app.add_exception_handler(Exception, unhandled_error)


def _log_startup(settings: Settings) -> None:
    if settings.langsmith_api_key and settings.langsmith_tracing_v2:
        logger.info(
            "LangSmith tracing enabled for project=%s",
            settings.langsmith_project or "gift-suggestions",
        )
    else:
        logger.info("LangSmith tracing disabled (no API key or flag)")
    if not settings.openai_api_key:
        logger.warning("OPENAI_API_KEY is not set, suggestion requests will fail with LLM_UNAVAILABLE")
    if not settings.product_search_live:
        logger.info("Product search credentials missing, serving mock products")
    if not settings.admin_emails:
        logger.info("ADMIN_EMAILS is empty, /api/admin/metrics will reject every caller")
    logger.info(
        "Gift suggestion engine initialized (env=%s model=%s max_passes=%s)",
        settings.env,
        settings.suggestion_model,
        settings.max_extra_passes + 1,
    )


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(
        title="Gift Suggestion Engine",
        version=settings.service_version,
        docs_url="/docs" if settings.debug else None,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    _register_exception_handlers(app)
    for module in (suggestions, recipients, products, admin):
        app.include_router(module.router)
    _log_startup(settings)
    return app


app = create_app()
