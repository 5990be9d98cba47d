"""Domain error types.

Services raise these; ``specmarket.middleware.error_handler`` turns them into
the uniform ``{"error": ..., "details": [...]}`` JSON body. Messages are the
user-facing (Russian) text, log events stay in English.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class FieldError:
    """One entry of the ``details`` list."""

    field: str
    message: str

    def as_dict(self) -> dict[str, str]:
        return {"field": self.field, "message": self.message}


class AppError(Exception):
    """Base class for errors that map to a client-visible HTTP response."""

    status_code: int = 400
    default_message: str = "Некорректный запрос"

    def __init__(self, message: str | None = None, details: list[FieldError] | None = None) -> None:
        self.message = message or self.default_message
        self.details = details or []
        super().__init__(self.message)


class NotFoundError(AppError):
    status_code = 404
    default_message = "Не найдено"


class ForbiddenError(AppError):
    status_code = 403
    default_message = "Доступ запрещён"


class ConflictError(AppError):
    """Uniqueness conflict (duplicate email, repeated application)."""

    status_code = 409
    default_message = "Конфликт данных"


class StateConflictError(AppError):
    """Operation on an entity in a terminal or incompatible status."""

    status_code = 400
    default_message = "Недопустимое состояние"


class DomainValidationError(AppError):
    """Input that passed schema validation but fails a domain rule."""

    status_code = 400
    default_message = "Ошибка валидации"


class AuthenticationError(AppError):
    status_code = 401
    default_message = "Неверный email или пароль"


class RateLimitedError(AppError):
    status_code = 429
    default_message = "Слишком много попыток. Попробуйте позже."
