from __future__ import annotations

import asyncio
import logging
from typing import Any, List, Optional, Protocol, Sequence

from ..models import EnrichedGiftIdea, GiftIdea, ProductCandidate, ProductMatch

logger = logging.getLogger(__name__)


class ProductSearcher(Protocol):
    async def search(
        self,
        query: str,
        *,
        budget_min: float | None = None,
        budget_max: float | None = None,
        max_results: int | None = None,
        trace_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> List[ProductCandidate]: ...


def to_product_match(candidate: ProductCandidate) -> ProductMatch:
    return ProductMatch(
        product_id=candidate.product_id,
        title=candidate.title,
        image_url=candidate.image_url,
        price_display=candidate.price_display,
        product_url=candidate.detail_url,
    )


class EnrichmentFanout:
    """Attaches a matched product to every idea, one concurrent lookup per idea."""

    def __init__(self, searcher: ProductSearcher, *, max_results: int = 1) -> None:
        self._searcher = searcher
        self._max_results = max_results

    async def enrich(
        self,
        ideas: Sequence[GiftIdea],
        *,
        trace_id: str | None = None,
        user_id: str | None = None,
        request_logger: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> List[EnrichedGiftIdea]:
        """Return one enriched idea per input idea, in input order.

        A failed lookup leaves ``product`` empty for that idea only.
        """

        log = request_logger or logger
        products = await asyncio.gather(
            *(self._match(idea, trace_id=trace_id, user_id=user_id, log=log) for idea in ideas)
        )
        enriched = [
            EnrichedGiftIdea(**idea.model_dump(exclude={"product"}), product=product)
            for idea, product in zip(ideas, products)
        ]
        matched = sum(1 for product in products if product is not None)
        log.info("Enrichment finished ideas=%s matched=%s", len(enriched), matched)
        return enriched

    async def _match(
        self,
        idea: GiftIdea,
        *,
        trace_id: str | None,
        user_id: str | None,
        log: Any,
    ) -> ProductMatch | None:
        try:
            candidates = await self._searcher.search(
                idea.title,
                budget_min=idea.price_min,
                budget_max=idea.price_max,
                max_results=self._max_results,
                trace_id=trace_id,
                user_id=user_id,
            )
        except Exception as exc:
            log.warning("Enrichment failed for idea id=%s title=%s: %s", idea.id, idea.title, exc)
            return None
        if not candidates:
            return None
        return to_product_match(candidates[0])

    @staticmethod
    def unmatched_count(enriched: Sequence[EnrichedGiftIdea]) -> int:
        return sum(1 for idea in enriched if idea.product is None)
