from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..models import (
    AuthenticatedUser,
    DeleteFeedbackResponse,
    DeleteSavedGiftResponse,
    FeedbackRequest,
    FeedbackResponse,
    FeedbackSummaryResponse,
    SaveGiftRequest,
    SavedGiftResponse,
    SavedGiftsResponse,
)
from ..services.data_store import SuggestionStore
from ..services.history_service import RecipientHistoryService
from .dependencies import get_current_user, get_store_dependency, get_trace_id

router = APIRouter(prefix="/api/recipients", tags=["recipients"])


def get_history_service(store: SuggestionStore = Depends(get_store_dependency)) -> RecipientHistoryService:
    return RecipientHistoryService(store)


@router.get("/{recipient_id}/saved-gifts", response_model=SavedGiftsResponse, response_model_by_alias=True)
async def list_saved_gifts(
    recipient_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    service: RecipientHistoryService = Depends(get_history_service),
) -> SavedGiftsResponse:
    return SavedGiftsResponse(saved_gifts=await service.list_saved(user, recipient_id))


@router.post("/{recipient_id}/saved-gifts", response_model=SavedGiftResponse, response_model_by_alias=True)
async def save_gift(
    recipient_id: str,
    request: SaveGiftRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    service: RecipientHistoryService = Depends(get_history_service),
    trace_id: str = Depends(get_trace_id),
) -> SavedGiftResponse:
    saved = await service.save(user, recipient_id, request, trace_id=trace_id)
    return SavedGiftResponse(saved_gift=saved)


@router.delete("/{recipient_id}/saved-gifts", response_model=DeleteSavedGiftResponse)
async def delete_saved_gift(
    recipient_id: str,
    saved_id: Optional[str] = Query(None, alias="id"),
    suggestion_id: Optional[str] = Query(None, alias="suggestionId"),
    user: AuthenticatedUser = Depends(get_current_user),
    service: RecipientHistoryService = Depends(get_history_service),
) -> DeleteSavedGiftResponse:
    deleted = await service.delete_saved(
        user,
        recipient_id,
        saved_id=saved_id,
        suggestion_id=suggestion_id,
    )
    return DeleteSavedGiftResponse(success=True, deleted=deleted)


@router.post("/{recipient_id}/suggestions/{run_id}/feedback", response_model=FeedbackResponse)
async def post_feedback(
    recipient_id: str,
    run_id: str,
    request: FeedbackRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    service: RecipientHistoryService = Depends(get_history_service),
    trace_id: str = Depends(get_trace_id),
) -> FeedbackResponse:
    feedback = await service.record_feedback(user, recipient_id, run_id, request, trace_id=trace_id)
    return FeedbackResponse(feedback=feedback)


@router.get("/{recipient_id}/feedback/summary", response_model=FeedbackSummaryResponse)
async def get_feedback_summary(
    recipient_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    service: RecipientHistoryService = Depends(get_history_service),
) -> FeedbackSummaryResponse:
    return await service.list_feedback_summary(user, recipient_id)


@router.delete("/{recipient_id}/feedback", response_model=DeleteFeedbackResponse)
async def delete_feedback(
    recipient_id: str,
    feedback_id: Optional[str] = Query(None, alias="id"),
    user: AuthenticatedUser = Depends(get_current_user),
    service: RecipientHistoryService = Depends(get_history_service),
    trace_id: str = Depends(get_trace_id),
) -> DeleteFeedbackResponse:
    await service.delete_feedback(user, recipient_id, feedback_id, trace_id=trace_id)
    return DeleteFeedbackResponse(success=True)
