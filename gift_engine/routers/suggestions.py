from __future__ import annotations

from fastapi import APIRouter, Depends

from ..config import Settings, get_settings
from ..models import AuthenticatedUser, SuggestRequest, SuggestResponse
from ..services.data_store import SuggestionStore
from ..services.generation import GenerationPassExecutor
from ..services.metrics import MetricsService
from ..services.product_search import ProductSearchClient
from ..services.suggestion_service import SuggestionService
from .dependencies import (
    get_current_user,
    get_metrics_dependency,
    get_product_search_client,
    get_store_dependency,
    get_trace_id,
)

router = APIRouter(prefix="/api", tags=["suggestions"])


def get_generation_executor(settings: Settings = Depends(get_settings)) -> GenerationPassExecutor:
    return GenerationPassExecutor(settings)


def get_suggestion_service(
    settings: Settings = Depends(get_settings),
    store: SuggestionStore = Depends(get_store_dependency),
    executor: GenerationPassExecutor = Depends(get_generation_executor),
    searcher: ProductSearchClient = Depends(get_product_search_client),
    metrics: MetricsService = Depends(get_metrics_dependency),
) -> SuggestionService:
    return SuggestionService(
        settings,
        store=store,
        executor=executor,
        searcher=searcher,
        metrics=metrics,
    )


@router.post(
    "/suggestions",
    response_model=SuggestResponse,
    response_model_by_alias=True,
    summary="Generate novel gift suggestions for a recipient",
)
async def create_suggestions(
    request: SuggestRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    service: SuggestionService = Depends(get_suggestion_service),
    trace_id: str = Depends(get_trace_id),
) -> SuggestResponse:
    return await service.generate(user, request, trace_id=trace_id)
