from __future__ import annotations

import logging
from typing import Iterable

from ..models import AuthenticatedUser
from .data_store import SuggestionStore
from .errors import DataStoreError, ForbiddenError, UnauthorizedError

logger = logging.getLogger(__name__)


def extract_bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None
    return token.strip() or None


async def authenticate(store: SuggestionStore, authorization: str | None) -> AuthenticatedUser:
    """Resolve the bearer credential to a user or raise ``UnauthorizedError``."""

    token = extract_bearer_token(authorization)
    if not token:
        raise UnauthorizedError("Missing bearer token", reason="missing_token")
    try:
        user = await store.resolve_user(token)
    except Exception as exc:
        raise DataStoreError(str(exc) or "token lookup failed", reason="auth_lookup_failed") from exc
    if user is None:
        raise UnauthorizedError("Unknown bearer token", reason="invalid_token")
    return user


def is_admin(user: AuthenticatedUser, admin_emails: Iterable[str]) -> bool:
    email = (user.email or "").strip().lower()
    if not email:
        return False
    return email in {item.strip().lower() for item in admin_emails if item and item.strip()}


def require_admin(user: AuthenticatedUser, admin_emails: Iterable[str]) -> AuthenticatedUser:
    if not is_admin(user, admin_emails):
        logger.warning("Admin access denied user_id=%s", user.id)
        raise ForbiddenError("Admin access required", reason="not_admin")
    return user
