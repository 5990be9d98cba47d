"""Global error handler: consistent ``{"error", "details"}`` JSON responses."""

from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from specmarket.auth.guards import GuardError, GuardReason
from specmarket.errors import AppError

logger = structlog.get_logger()

# Single place where guard refusals become transport codes and messages.
GUARD_STATUS: dict[GuardReason, int] = {
    GuardReason.UNAUTHORIZED: 401,
    GuardReason.USER_NOT_FOUND: 401,
    GuardReason.USER_NOT_ACTIVE: 403,
    GuardReason.NO_CLIENT_PROFILE: 403,
    GuardReason.NO_SPECIALIST_PROFILE: 403,
    GuardReason.ADMIN_REQUIRED: 403,
}

GUARD_MESSAGES: dict[GuardReason, str] = {
    GuardReason.UNAUTHORIZED: "Требуется авторизация",
    GuardReason.USER_NOT_FOUND: "Пользователь не найден",
    GuardReason.USER_NOT_ACTIVE: "Аккаунт неактивен",
    GuardReason.NO_CLIENT_PROFILE: "Требуется профиль клиента",
    GuardReason.NO_SPECIALIST_PROFILE: "Требуется профиль специалиста",
    GuardReason.ADMIN_REQUIRED: "Требуются права администратора",
}

_HTTP_MESSAGES: dict[int, str] = {
    404: "Не найдено",
    405: "Метод не поддерживается",
}


def error_body(message: str, details: list[dict[str, str]] | None = None) -> dict[str, Any]:
    """Build the uniform error body."""
    body: dict[str, Any] = {"error": message}
    if details:
        body["details"] = details
    return body


def _field_name(loc: tuple[Any, ...]) -> str:
    # ("body", "slugs", 0) -> "slugs.0"; the "body"/"query"/"path" prefix is noise for clients
    parts = [str(p) for p in loc if p not in ("body", "query", "path", "header", "cookie")]
    return ".".join(parts) or "body"


def setup_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers."""

    @app.exception_handler(AppError)
    async def app_error_handler(_request: Request, exc: AppError) -> JSONResponse:
        """Domain errors raised by services."""
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.message, [d.as_dict() for d in exc.details]),
        )

    @app.exception_handler(GuardError)
    async def guard_error_handler(request: Request, exc: GuardError) -> JSONResponse:
        """Guard refusals: 401 when there is no usable session, 403 otherwise."""
        logger.info("guard_refused", path=request.url.path, reason=exc.reason.value)
        return JSONResponse(
            status_code=GUARD_STATUS[exc.reason],
            content=error_body(GUARD_MESSAGES[exc.reason]),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
        """Handle HTTP exceptions with consistent JSON format."""
        message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
        if exc.status_code in _HTTP_MESSAGES and exc.detail in ("Not Found", "Method Not Allowed"):
            message = _HTTP_MESSAGES[exc.status_code]
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(message),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
        """Schema violations -> 400 with one entry per offending field."""
        details = [
            {"field": _field_name(tuple(err.get("loc", ()))), "message": err.get("msg", "")} for err in exc.errors()
        ]
        return JSONResponse(
            status_code=400,
            content=error_body("Ошибка валидации", details),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all for unhandled exceptions: always return JSON."""
        logger.error(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=exc,
        )
        return JSONResponse(
            status_code=500,
            content=error_body("Внутренняя ошибка сервера"),
        )
