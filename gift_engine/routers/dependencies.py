from __future__ import annotations

from fastapi import Depends, Request

from ..config import Settings, get_settings
from ..models import AuthenticatedUser
from ..services.auth import authenticate
from ..services.cache import get_caching_service
from ..services.data_store import SuggestionStore, get_suggestion_store
from ..services.error_handling import resolve_trace_id
from ..services.metrics import MetricsService, get_metrics_service
from ..services.product_search import ProductSearchClient


def get_store_dependency() -> SuggestionStore:
    return get_suggestion_store()


def get_metrics_dependency() -> MetricsService:
    return get_metrics_service()


def get_product_search_client(settings: Settings = Depends(get_settings)) -> ProductSearchClient:
    return ProductSearchClient(settings, cache=get_caching_service())


async def get_current_user(
    http_request: Request,
    store: SuggestionStore = Depends(get_store_dependency),
) -> AuthenticatedUser:
    return await authenticate(store, http_request.headers.get("Authorization"))


def get_trace_id(http_request: Request) -> str:
    return resolve_trace_id(http_request)
