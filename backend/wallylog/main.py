import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from wallylog.api.v1 import api_router
from wallylog.core.config import settings
from wallylog.core.errors import TooManyAttemptsError, WallyLogError
from wallylog.core.logging_config import configure_logging
from wallylog.core.sentry import init_sentry
from wallylog.core.startup_checks import validate_production_settings
from wallylog.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware
from wallylog.schemas.error import ErrorResponse
from wallylog.services import dispatch_scheduler

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "서버 처리 중 오류가 발생했습니다."


@asynccontextmanager
async def lifespan(app: FastAPI):
    validate_production_settings()
    dispatch_scheduler.start(app)
    try:
        yield
    finally:
        await dispatch_scheduler.stop(app)


def _error(status_code: int, message: str, code: str | None = None, headers: dict[str, str] | None = None) -> JSONResponse:
    payload = ErrorResponse(error=message, code=code)
    return JSONResponse(status_code=status_code, content=payload.model_dump(exclude_none=True), headers=headers)


def get_application() -> FastAPI:
    configure_logging(settings.log_json)
    init_sentry()
    tags_metadata = [
        {"name": "auth", "description": "Admin login and session cookie"},
        {"name": "subscriptions", "description": "Email subscription requests"},
        {"name": "content", "description": "AI-generated content feeds"},
    ]
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        openapi_tags=tags_metadata,
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    app.include_router(api_router, prefix="/api/v1")

    @app.exception_handler(WallyLogError)
    async def wallylog_exception_handler(request: Request, exc: WallyLogError):
        if exc.status_code >= 500:
            logger.error("unhandled_service_error", extra={"error": exc.message, "path": request.url.path})
            return _error(exc.status_code, INTERNAL_ERROR_MESSAGE)
        headers = None
        if isinstance(exc, TooManyAttemptsError):
            headers = {"Retry-After": str(exc.retry_after)}
        return _error(exc.status_code, exc.message, headers=headers)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return _error(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return _error(400, "요청 형식이 올바르지 않습니다.", code="validation_error")

    return app


app = get_application()
