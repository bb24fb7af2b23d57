from __future__ import annotations

import asyncio
import logging
import math
import time
from typing import Any, Awaitable, Dict, List, Sequence, Tuple, TypeVar

from ..config import Settings
from ..models import (
    AuthenticatedUser,
    EnrichedGiftIdea,
    GiftHistoryItem,
    RecipientContext,
    RecipientInterest,
    RecipientRecord,
    SuggestRequest,
    SuggestResponse,
    SuggestionView,
)
from ..utils.logging import get_request_logger
from .canonical import canonicalize
from .controller import ControllerResult, MultiPassController, PassExecutor
from .data_store import SuggestionStore
from .enrichment import EnrichmentFanout, ProductSearcher
from .errors import (
    AppError,
    BadRequestError,
    DataStoreError,
    GenerationProviderError,
    NoSuggestionsError,
    PersistenceError,
    RateLimitedError,
    RecipientNotFoundError,
)
from .exclusions import ExclusionSetBuilder, ExclusionSnapshot
from .generation import format_amount
from .metrics import MetricsService, get_metrics_service

logger = logging.getLogger(__name__)

T = TypeVar("T")

INTEREST_SECTIONS: Tuple[Tuple[str, str], ...] = (
    ("interest", "Interests"),
    ("vibe", "Vibes"),
    ("personality", "Personality"),
    ("brand", "Brands"),
    ("other", "Tags"),
)
MAX_INTEREST_CATEGORIES = 3
GIFT_HISTORY_FETCH_LIMIT = 5


def resolve_num_suggestions(
    value: float | None,
    *,
    default: int = 5,
    minimum: int = 3,
    maximum: int = 10,
) -> int:
    if value is None or isinstance(value, bool) or not math.isfinite(value):
        count = default
    else:
        # Half-up, so 4.5 asks for 5.
        count = math.floor(value + 0.5)
    return min(maximum, max(minimum, count))


def summarize_notes(notes: str | None, max_chars: int = 280) -> str | None:
    if not notes:
        return None
    trimmed = notes.strip()
    if not trimmed:
        return None
    if len(trimmed) > max_chars:
        return f"{trimmed[: max_chars - 3]}..."
    return trimmed


def group_interests(interests: Sequence[RecipientInterest]) -> Dict[str, List[str]]:
    """Group interest labels by category, keeping at most three categories.

    Known categories win over the ``other`` bucket, which only fills a slot
    left free by them.
    """

    sections: Dict[str, List[str]] = {key: [] for key, _ in INTEREST_SECTIONS}
    for item in interests:
        label = (item.label or "").strip()
        if not label:
            continue
        category = (item.category or "other").strip().lower()
        sections.get(category, sections["other"]).append(label)

    grouped: Dict[str, List[str]] = {}
    for key, _ in INTEREST_SECTIONS:
        if sections[key] and len(grouped) < MAX_INTEREST_CATEGORIES:
            grouped[key] = sections[key]
    return grouped


def summarize_interests(grouped: Dict[str, List[str]]) -> str | None:
    parts = [f"{title}: {', '.join(grouped[key])}" for key, title in INTEREST_SECTIONS if grouped.get(key)]
    return " | ".join(parts) or None


def summarize_gift(gift: GiftHistoryItem) -> str:
    bits = [gift.title.strip()]
    if gift.price:
        bits.append(format_amount(gift.price))
    if gift.purchased_at:
        bits.append(str(gift.purchased_at.year))
    return " - ".join(bit for bit in bits if bit)


def summarize_gifts(gifts: Sequence[GiftHistoryItem], limit: int = 3) -> Tuple[List[str], str | None]:
    snippets = [summary for summary in (summarize_gift(gift) for gift in gifts[:limit]) if summary]
    if not snippets:
        return [], None
    return snippets, f"Recent gifts: {'; '.join(snippets)}. Avoid exact repeats."


def build_recipient_context(
    recipient: RecipientRecord,
    request: SuggestRequest,
    interests: Sequence[RecipientInterest],
    gifts: Sequence[GiftHistoryItem],
    *,
    notes_max_chars: int = 280,
    recent_gifts_limit: int = 3,
) -> RecipientContext:
    grouped = group_interests(interests)
    recent_gifts, last_gifts_summary = summarize_gifts(gifts, recent_gifts_limit)
    return RecipientContext(
        recipient_id=recipient.id,
        recipient_name=recipient.name,
        relationship=recipient.relationship,
        gender=recipient.gender,
        occasion=request.occasion,
        budget_min=request.budget_min if request.budget_min is not None else recipient.gift_budget_min,
        budget_max=request.budget_max if request.budget_max is not None else recipient.gift_budget_max,
        annual_budget=recipient.annual_budget,
        notes_summary=summarize_notes(recipient.notes, notes_max_chars),
        interests=grouped,
        interests_summary=summarize_interests(grouped),
        recent_gifts=recent_gifts,
        last_gifts_summary=last_gifts_summary,
    )


def to_suggestion_view(idea: EnrichedGiftIdea, snapshot: ExclusionSnapshot) -> SuggestionView:
    key = canonicalize(idea.title)
    return SuggestionView(
        **idea.model_dump(),
        is_saved=key in snapshot.saved_keys,
        is_liked=key in snapshot.liked_keys,
        is_disliked=key in snapshot.disliked_keys,
    )


class SuggestionService:
    """Runs one suggestion request end to end and persists the resulting run."""

    def __init__(
        self,
        settings: Settings,
        *,
        store: SuggestionStore,
        executor: PassExecutor,
        searcher: ProductSearcher,
        metrics: MetricsService | None = None,
    ) -> None:
        self._settings = settings
        self._store = store
        self._executor = executor
        self._exclusion_builder = ExclusionSetBuilder.from_settings(store, settings)
        self._controller = MultiPassController.from_settings(executor, settings)
        self._enrichment = EnrichmentFanout(searcher)
        self._metrics = metrics or get_metrics_service()

    @property
    def model_name(self) -> str:
        return getattr(self._executor, "model_name", None) or self._settings.suggestion_model

    async def generate(
        self,
        user: AuthenticatedUser,
        request: SuggestRequest,
        *,
        trace_id: str | None = None,
    ) -> SuggestResponse:
        start_time = time.perf_counter()
        request_logger = get_request_logger(
            logger,
            trace_id=trace_id,
            user_id=user.id,
            recipient_id=request.recipient_id,
        )
        self._validate(request)
        target_count = resolve_num_suggestions(
            request.num_suggestions,
            default=self._settings.default_suggestions,
            minimum=self._settings.min_suggestions,
            maximum=self._settings.max_suggestions,
        )

        recipient = await self._load_recipient(user.id, request.recipient_id)
        if recipient is None:
            request_logger.info("Recipient not found or not owned by caller")
            raise RecipientNotFoundError("Recipient not found", reason="recipient_not_found")

        if not self._metrics.check_rate_limit(
            user.id,
            window_seconds=self._settings.suggestion_rate_limit_window_seconds,
            max_calls=self._settings.suggestion_rate_limit_max_calls,
        ):
            request_logger.warning("Rate limit exceeded")
            raise RateLimitedError("Suggestion rate limit exceeded", reason="rate_limit_exceeded")

        interests, gifts = await asyncio.gather(
            self._read_profile("interests", self._store.list_interests(user.id, recipient.id), request_logger),
            self._read_profile(
                "gift_history",
                self._store.list_gift_history(user.id, recipient.id, limit=GIFT_HISTORY_FETCH_LIMIT),
                request_logger,
            ),
        )
        context = build_recipient_context(
            recipient,
            request,
            interests,
            gifts,
            notes_max_chars=self._settings.notes_max_chars,
            recent_gifts_limit=self._settings.recent_gifts_limit,
        )
        snapshot = await self._exclusion_builder.build(
            user.id,
            recipient.id,
            request.previous_suggestions,
            request_logger=request_logger,
        )

        result = await self._run_controller(context, target_count, snapshot, request_logger)
        if not result.ideas:
            self._metrics.record_run_failure(passes_used=result.passes_used)
            request_logger.error("No usable suggestions after all passes counts=%s", result.counts())
            raise NoSuggestionsError(
                "Provider returned nothing usable",
                reason="no_usable_suggestions",
                debug={"counts": result.counts()},
            )
        if result.shortfall:
            request_logger.warning(
                "Suggestion shortfall accepted=%s target=%s passes_used=%s",
                len(result.ideas),
                target_count,
                result.passes_used,
            )

        enriched = await self._enrichment.enrich(
            result.ideas,
            trace_id=trace_id,
            user_id=user.id,
            request_logger=request_logger,
        )

        try:
            run = await self._store.create_run(
                user_id=user.id,
                recipient_id=recipient.id,
                model=self.model_name,
                prompt_context=context,
                suggestions=enriched,
            )
        except Exception as exc:
            self._metrics.record_run_failure(passes_used=result.passes_used)
            request_logger.error("Failed to persist suggestion run: %s", exc)
            raise PersistenceError("Failed to persist suggestion run", reason="persist_failed") from exc

        unmatched = EnrichmentFanout.unmatched_count(run.suggestions)
        self._metrics.record_run(
            user_id=user.id,
            counts=result.counts(),
            shortfall=result.shortfall,
            enrichment_unmatched=unmatched,
        )
        self._metrics.record_response_latency((time.perf_counter() - start_time) * 1000)
        request_logger.with_context(run_id=run.id).info(
            "Suggestion run stored ideas=%s passes_used=%s unmatched=%s",
            len(run.suggestions),
            result.passes_used,
            unmatched,
        )
        return SuggestResponse(
            suggestion_run_id=run.id,
            created_at=run.created_at,
            model=run.model,
            suggestions=[to_suggestion_view(idea, snapshot) for idea in run.suggestions],
            prompt_context=context,
        )

    @staticmethod
    def _validate(request: SuggestRequest) -> None:
        if not request.recipient_id:
            raise BadRequestError("recipientId is required", reason="missing_recipient_id")
        if request.budget_min is not None and request.budget_max is not None:
            if request.budget_min > request.budget_max:
                raise BadRequestError(
                    "budgetMin must not exceed budgetMax",
                    reason="invalid_budget_range",
                )

    async def _load_recipient(self, user_id: str, recipient_id: str) -> RecipientRecord | None:
        try:
            return await self._store.get_recipient(user_id, recipient_id)
        except Exception as exc:
            raise DataStoreError(str(exc) or "recipient lookup failed", reason="recipient_lookup_failed") from exc

    async def _run_controller(
        self,
        context: RecipientContext,
        target_count: int,
        snapshot: ExclusionSnapshot,
        request_logger: Any,
    ) -> ControllerResult:
        try:
            return await self._controller.run(
                context,
                target_count,
                snapshot.exclusions,
                request_logger=request_logger,
            )
        except Exception as exc:
            self._metrics.record_run_failure(passes_used=1)
            request_logger.error("First generation pass failed: %s", exc)
            if isinstance(exc, AppError):
                raise
            raise GenerationProviderError(str(exc) or exc.__class__.__name__, reason="generation_failed") from exc

    @staticmethod
    async def _read_profile(source: str, lookup: Awaitable[List[T]], request_logger: Any) -> List[T]:
        try:
            return list(await lookup)
        except Exception as exc:
            request_logger.warning("Recipient %s unavailable, continuing without it: %s", source, exc)
            return []
