from __future__ import annotations

from enum import Enum


class ErrorCategory(Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    STATE = "state"
    GATEWAY = "gateway"
    PERSISTENCE = "persistence"
    UNKNOWN = "unknown"


class TiplineError(Exception):
    """Base class for errors that carry a user-facing message."""

    category: ErrorCategory = ErrorCategory.UNKNOWN
    default_message = "Something went wrong. Please contact an administrator."

    def __init__(self, user_message: str | None = None, *, detail: str | None = None) -> None:
        self.user_message = user_message or self.default_message
        super().__init__(detail or self.user_message)


class ValidationError(TiplineError):
    category = ErrorCategory.VALIDATION
    default_message = "The input is invalid. Please check it and try again."


class NotFoundError(TiplineError):
    category = ErrorCategory.NOT_FOUND
    default_message = "Cannot find that submission."


class StateError(TiplineError):
    category = ErrorCategory.STATE
    default_message = "This submission was already processed."


class ExternalGatewayError(TiplineError):
    category = ErrorCategory.GATEWAY
    default_message = "The chat service is unavailable right now. Please try again later."


class PersistenceError(TiplineError):
    category = ErrorCategory.PERSISTENCE
    default_message = "A storage error occurred. Please try again later."


def categorize(exc: BaseException) -> ErrorCategory:
    if isinstance(exc, TiplineError):
        return exc.category
    return ErrorCategory.UNKNOWN
