from __future__ import annotations

import logging
import re
from typing import List

from ..models import (
    AuthenticatedUser,
    EnrichedGiftIdea,
    FeedbackIdea,
    FeedbackPreference,
    FeedbackRequest,
    FeedbackSummaryResponse,
    GiftFeedback,
    SaveGiftRequest,
    SavedGiftIdea,
)
from ..utils.logging import get_request_logger
from .data_store import SuggestionStore
from .errors import BadRequestError, DataStoreError, ForbiddenError, PersistenceError
from .exclusions import resolve_feedback_idea

logger = logging.getLogger(__name__)

_RUN_ID_PATTERN = re.compile(r"^[0-9a-fA-F-]{32,36}$")


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def _product_url(idea: EnrichedGiftIdea | None) -> str | None:
    if idea is None:
        return None
    if idea.suggested_url:
        return idea.suggested_url
    return idea.product.product_url if idea.product is not None else None


class RecipientHistoryService:
    """Saved ideas and liked/disliked feedback that feed the exclusion set.

    Every operation first checks that the caller owns the recipient and
    answers 403 otherwise.
    """

    def __init__(self, store: SuggestionStore) -> None:
        self._store = store

    async def list_saved(self, user: AuthenticatedUser, recipient_id: str) -> List[SavedGiftIdea]:
        recipient_id = await self._ensure_recipient(user, recipient_id)
        try:
            return await self._store.list_saved_ideas(user.id, recipient_id)
        except Exception as exc:
            raise DataStoreError(str(exc) or "saved ideas lookup failed", reason="saved_ideas_failed") from exc

    async def save(
        self,
        user: AuthenticatedUser,
        recipient_id: str,
        request: SaveGiftRequest,
        *,
        trace_id: str | None = None,
    ) -> SavedGiftIdea:
        recipient_id = await self._ensure_recipient(user, recipient_id)
        title = _clean(request.title)
        if not title:
            raise BadRequestError("title is required", reason="missing_title")
        suggestion_id = _clean(request.suggestion_id)
        if suggestion_id and not _RUN_ID_PATTERN.match(suggestion_id):
            suggestion_id = None

        try:
            saved = await self._store.add_saved_idea(
                user.id,
                recipient_id,
                suggestion_id=suggestion_id,
                title=title,
                tier=_clean(request.tier),
                rationale=_clean(request.rationale),
                estimated_price_min=request.estimated_price_min,
                estimated_price_max=request.estimated_price_max,
                product_url=_clean(request.product_url),
                image_url=_clean(request.image_url),
            )
        except Exception as exc:
            raise PersistenceError("Failed to save gift idea", reason="save_gift_failed") from exc
        get_request_logger(logger, trace_id=trace_id, user_id=user.id, recipient_id=recipient_id).info(
            "Saved gift idea id=%s title=%s", saved.id, saved.title
        )
        return saved

    async def delete_saved(
        self,
        user: AuthenticatedUser,
        recipient_id: str,
        *,
        saved_id: str | None = None,
        suggestion_id: str | None = None,
    ) -> int:
        saved_id = _clean(saved_id)
        suggestion_id = _clean(suggestion_id)
        if not saved_id and not suggestion_id:
            raise BadRequestError("id or suggestionId query param is required", reason="missing_saved_id")
        recipient_id = await self._ensure_recipient(user, recipient_id)
        try:
            return await self._store.delete_saved_ideas(
                user.id,
                recipient_id,
                saved_id=saved_id,
                suggestion_id=suggestion_id,
            )
        except Exception as exc:
            raise PersistenceError("Failed to delete saved gift idea", reason="delete_gift_failed") from exc

    async def record_feedback(
        self,
        user: AuthenticatedUser,
        recipient_id: str,
        run_id: str,
        request: FeedbackRequest,
        *,
        trace_id: str | None = None,
    ) -> GiftFeedback | None:
        """Mark one idea of a past run as liked or disliked, or clear the mark.

        The idea title is copied onto the feedback row so it still excludes
        the idea if the run disappears later.
        """

        recipient_id = await self._ensure_recipient(user, recipient_id)
        run_id = _clean(run_id) or ""
        if not run_id:
            raise BadRequestError("recipientId and suggestionId are required", reason="missing_run_id")
        run = await self._store.get_run(user.id, recipient_id, run_id)
        if run is None:
            raise ForbiddenError("Suggestion run not owned by caller", reason="run_not_owned")

        log = get_request_logger(logger, trace_id=trace_id, user_id=user.id, recipient_id=recipient_id).with_context(
            run_id=run_id
        )
        try:
            if request.preference == "clear":
                removed = await self._store.clear_feedback(
                    user.id,
                    recipient_id,
                    run_id=run_id,
                    suggestion_index=request.suggestion_index,
                )
                log.info("Cleared feedback index=%s removed=%s", request.suggestion_index, removed)
                return None

            idea = run.idea_at(request.suggestion_index)
            feedback = await self._store.upsert_feedback(
                user.id,
                recipient_id,
                run_id=run_id,
                suggestion_index=request.suggestion_index,
                preference=FeedbackPreference(request.preference),
                title=idea.title if idea is not None else None,
            )
        except Exception as exc:
            raise PersistenceError("Failed to save feedback", reason="feedback_failed") from exc
        log.info(
            "Recorded feedback index=%s preference=%s",
            feedback.suggestion_index,
            feedback.preference.value,
        )
        return feedback

    async def list_feedback_summary(self, user: AuthenticatedUser, recipient_id: str) -> FeedbackSummaryResponse:
        """Liked and disliked ideas, resolved through their runs regardless of age."""

        recipient_id = await self._ensure_recipient(user, recipient_id)
        try:
            rows = await self._store.list_feedback(user.id, recipient_id)
            run_ids = [row.run_id for row in rows if row.run_id]
            runs = await self._store.get_runs(user.id, recipient_id, run_ids) if run_ids else []
        except Exception as exc:
            raise DataStoreError(str(exc) or "feedback lookup failed", reason="feedback_lookup_failed") from exc

        runs_by_id = {run.id: run for run in runs}
        summary = FeedbackSummaryResponse()
        for row in rows:
            idea = resolve_feedback_idea(row, runs_by_id)
            item = FeedbackIdea(
                id=row.id,
                suggestion_id=row.run_id or "",
                title=(idea.title if idea is not None else row.title) or "Gift idea",
                tier=idea.tier.value if idea is not None else None,
                rationale=idea.why_it_fits if idea is not None else None,
                estimated_price_min=idea.price_min if idea is not None else None,
                estimated_price_max=idea.price_max if idea is not None else None,
                product_url=_product_url(idea),
                image_url=idea.image_url if idea is not None else None,
                preference=row.preference,
                created_at=row.created_at,
            )
            bucket = summary.liked if row.preference == FeedbackPreference.LIKED else summary.disliked
            bucket.append(item)
        return summary

    async def delete_feedback(
        self,
        user: AuthenticatedUser,
        recipient_id: str,
        feedback_id: str | None,
        *,
        trace_id: str | None = None,
    ) -> None:
        feedback_id = _clean(feedback_id)
        if not feedback_id:
            raise BadRequestError("id query param is required", reason="missing_feedback_id")
        recipient_id = await self._ensure_recipient(user, recipient_id)
        try:
            removed = await self._store.delete_feedback(user.id, recipient_id, feedback_id)
        except Exception as exc:
            raise PersistenceError("Failed to remove feedback", reason="delete_feedback_failed") from exc
        if not removed:
            raise ForbiddenError("Feedback not owned by caller", reason="feedback_not_owned")
        get_request_logger(logger, trace_id=trace_id, user_id=user.id, recipient_id=recipient_id).info(
            "Removed feedback id=%s", feedback_id
        )

    async def _ensure_recipient(self, user: AuthenticatedUser, recipient_id: str) -> str:
        recipient_id = _clean(recipient_id) or ""
        if not recipient_id:
            raise BadRequestError("recipientId is required", reason="missing_recipient_id")
        try:
            recipient = await self._store.get_recipient(user.id, recipient_id)
        except Exception as exc:
            raise DataStoreError(str(exc) or "recipient lookup failed", reason="recipient_lookup_failed") from exc
        if recipient is None:
            raise ForbiddenError("Recipient not owned by caller", reason="recipient_not_owned")
        return recipient_id
