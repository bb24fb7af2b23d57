from __future__ import annotations

from typing import Any

from fastapi import status

UNAVAILABLE_MESSAGE = "Gift suggestions are temporarily unavailable. Please try again in a moment."


class AppError(Exception):
    """Base application error for unified handling."""

    code: str = "INTERNAL_ERROR"
    http_status: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    public_message: str = "Something went wrong. Please try again."

    def __init__(
        self,
        message: str | None = None,
        *,
        reason: str | None = None,
        http_status: int | None = None,
        public_message: str | None = None,
        debug: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message or reason or "")
        self.reason = reason or message or self.code.lower()
        if http_status is not None:
            self.http_status = http_status
        if public_message is not None:
            self.public_message = public_message
        self.debug = debug or {}


class BadRequestError(AppError):
    """Raised when the request is invalid or cannot be processed."""

    code = "BAD_REQUEST"
    http_status = status.HTTP_400_BAD_REQUEST
    public_message = "The request is invalid."

    def __init__(self, message: str | None = None, **kwargs: Any) -> None:
        kwargs.setdefault("public_message", message or self.public_message)
        super().__init__(message, **kwargs)


class UnauthorizedError(AppError):
    code = "UNAUTHORIZED"
    http_status = status.HTTP_401_UNAUTHORIZED
    public_message = "Unauthorized"


class ForbiddenError(AppError):
    code = "FORBIDDEN"
    http_status = status.HTTP_403_FORBIDDEN
    public_message = "Forbidden"


class RecipientNotFoundError(AppError):
    """Raised when the recipient does not exist or belongs to another user."""

    code = "RECIPIENT_NOT_FOUND"
    http_status = status.HTTP_404_NOT_FOUND
    public_message = "Recipient not found"


class RateLimitedError(AppError):
    code = "RATE_LIMITED"
    http_status = status.HTTP_429_TOO_MANY_REQUESTS
    public_message = "Too many suggestion requests. Please wait a moment."


class UpstreamError(AppError):
    """Raised when an external dependency fails."""

    code = "UPSTREAM_UNAVAILABLE"
    http_status = status.HTTP_502_BAD_GATEWAY
    public_message = UNAVAILABLE_MESSAGE


class LLMError(UpstreamError):
    """Raised when the text-generation layer fails."""

    code = "LLM_UNAVAILABLE"


class GenerationProviderError(LLMError):
    """Raised when a generation pass cannot reach the provider or times out."""


class NoSuggestionsError(UpstreamError):
    """Raised when every generation pass produced nothing usable."""

    code = "NO_SUGGESTIONS"


class ProductSearchError(UpstreamError):
    """Raised when the product-search provider fails."""


class DataStoreError(UpstreamError):
    """Raised when the recipient/history store cannot be read."""

    http_status = status.HTTP_503_SERVICE_UNAVAILABLE


class PersistenceError(AppError):
    """Raised when a suggestion run could not be written."""

    code = "PERSISTENCE_FAILED"
    public_message = "Unable to save suggestions. Please try again."
