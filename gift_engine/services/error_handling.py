from __future__ import annotations

import logging
import traceback
import uuid
from typing import Any, Tuple

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from .errors import UNAVAILABLE_MESSAGE, AppError

logger = logging.getLogger(__name__)

TRACE_HEADER = "X-Request-Id"
INTERNAL_ERROR_MESSAGE = "Something went wrong. Please try again."

# Bare HTTPExceptions (unknown routes, wrong methods, framework checks).
_HTTP_STATUS_CODES = {
    status.HTTP_401_UNAUTHORIZED: ("UNAUTHORIZED", "Unauthorized"),
    status.HTTP_403_FORBIDDEN: ("FORBIDDEN", "Forbidden"),
    status.HTTP_404_NOT_FOUND: ("NOT_FOUND", "Not found"),
    status.HTTP_405_METHOD_NOT_ALLOWED: ("BAD_REQUEST", "Method not allowed"),
    status.HTTP_429_TOO_MANY_REQUESTS: ("RATE_LIMITED", "Too many requests. Please wait a moment."),
    status.HTTP_502_BAD_GATEWAY: ("UPSTREAM_UNAVAILABLE", UNAVAILABLE_MESSAGE),
    status.HTTP_503_SERVICE_UNAVAILABLE: ("UPSTREAM_UNAVAILABLE", UNAVAILABLE_MESSAGE),
    status.HTTP_504_GATEWAY_TIMEOUT: ("UPSTREAM_UNAVAILABLE", UNAVAILABLE_MESSAGE),
}


def _detail_to_reason(detail: Any) -> str | None:
    if isinstance(detail, dict):
        return detail.get("reason") or detail.get("message")
    if isinstance(detail, list):
        return str(detail[0]) if detail else None
    return str(detail) if detail else None


def _format_validation_error(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "validation_error"
    first_error = errors[0]
    # Drop the "body"/"query" prefix so the reason names the caller's field.
    loc = [str(part) for part in first_error.get("loc", ()) if part not in (None, "body", "query", "path")]
    msg = first_error.get("msg") or "validation_error"
    return f"{'.'.join(loc)}: {msg}" if loc else msg


def map_exception_to_error_code(exc: Exception) -> Tuple[str, str, int, str]:
    """Return error code, reason, HTTP status and user-facing message for the exception."""

    if isinstance(exc, AppError):
        return exc.code, exc.reason, exc.http_status, exc.public_message

    if isinstance(exc, RequestValidationError):
        reason = _format_validation_error(exc)
        return "BAD_REQUEST", reason, status.HTTP_422_UNPROCESSABLE_ENTITY, f"Invalid request: {reason}"

    if isinstance(exc, HTTPException):
        status_code = exc.status_code or status.HTTP_500_INTERNAL_SERVER_ERROR
        reason = _detail_to_reason(exc.detail)
        if status_code in _HTTP_STATUS_CODES:
            code, message = _HTTP_STATUS_CODES[status_code]
            return code, reason or code.lower(), status_code, message
        if status.HTTP_400_BAD_REQUEST <= status_code < status.HTTP_500_INTERNAL_SERVER_ERROR:
            return "BAD_REQUEST", reason or "bad_request", status_code, reason or "The request is invalid."
        return "INTERNAL_ERROR", reason or "internal_error", status_code, INTERNAL_ERROR_MESSAGE

    return (
        "INTERNAL_ERROR",
        exc.__class__.__name__,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        INTERNAL_ERROR_MESSAGE,
    )


def build_error_response(
    *,
    error_code: str,
    reason: str,
    status_code: int,
    message: str,
    debug_payload: dict[str, Any] | None = None,
) -> JSONResponse:
    content: dict[str, Any] = {
        "error": {"code": error_code, "message": message, "reason": reason},
    }
    headers = None
    if debug_payload:
        content["meta"] = {"debug": debug_payload}
        if debug_payload.get("trace_id"):
            headers = {TRACE_HEADER: str(debug_payload["trace_id"])}
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def resolve_trace_id(request: Request | None = None) -> str:
    """Reuse the caller's ``X-Request-Id`` so errors and logs share one trace id."""

    if request is not None:
        supplied = (request.headers.get(TRACE_HEADER) or "").strip()
        if supplied:
            return supplied[:64]
    return uuid.uuid4().hex


async def get_request_payload(request: Request) -> str | None:
    try:
        body = await request.body()
    except Exception:
        return None
    if not body:
        return None
    return body.decode("utf-8", errors="replace")[:2000]


async def log_exception(
    *,
    request: Request,
    exc: Exception,
    trace_id: str,
    handled: bool,
) -> None:
    payload = await get_request_payload(request)
    reason = getattr(exc, "reason", None) or exc.__class__.__name__
    if not handled:
        logger.error(
            "Unhandled error trace_id=%s method=%s path=%s reason=%s payload=%s",
            trace_id,
            request.method,
            request.url.path,
            reason,
            payload,
            exc_info=exc,
        )
        return
    logger.warning(
        "Handled error trace_id=%s method=%s path=%s status=%s reason=%s payload=%s",
        trace_id,
        request.method,
        request.url.path,
        getattr(exc, "http_status", None) or getattr(exc, "status_code", None),
        reason,
        payload,
    )
    if exc.__cause__ is not None:
        logger.debug(
            "Underlying cause for trace_id=%s\n%s",
            trace_id,
            "".join(traceback.format_exception(type(exc.__cause__), exc.__cause__, exc.__cause__.__traceback__)),
        )
