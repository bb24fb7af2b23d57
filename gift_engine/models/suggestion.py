from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class GiftTier(str, Enum):
    SAFE = "safe"
    THOUGHTFUL = "thoughtful"
    EXPERIENCE = "experience"
    SPLURGE = "splurge"


DEFAULT_TIER = GiftTier.THOUGHTFUL


class RecipientContext(BaseModel):
    """Snapshot of the recipient used to build the generation prompt."""

    model_config = ConfigDict(frozen=True)

    recipient_id: str
    recipient_name: str
    relationship: Optional[str] = None
    gender: Optional[str] = None
    occasion: Optional[str] = None
    budget_min: Optional[float] = None
    budget_max: Optional[float] = None
    annual_budget: Optional[float] = None
    notes_summary: Optional[str] = None
    interests: Dict[str, List[str]] = Field(default_factory=dict)
    interests_summary: Optional[str] = None
    recent_gifts: List[str] = Field(default_factory=list)
    last_gifts_summary: Optional[str] = None


class GiftIdea(BaseModel):
    """Candidate idea produced by a single generation pass."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str
    short_description: str
    tier: GiftTier = DEFAULT_TIER
    price_min: Optional[float] = None
    price_max: Optional[float] = None
    price_hint: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("price_hint", "price_guidance"),
    )
    why_it_fits: str
    suggested_url: Optional[str] = None
    image_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("image_url", "imageUrl"),
    )


class ProductMatch(BaseModel):
    """Real product resolved for an idea by the product-search provider."""

    product_id: str
    title: str
    image_url: Optional[str] = None
    price_display: Optional[str] = None
    product_url: Optional[str] = None


class EnrichedGiftIdea(GiftIdea):
    product: Optional[ProductMatch] = None


class SuggestionView(EnrichedGiftIdea):
    """Idea as returned to the caller, with flags resolved against history."""

    is_saved: bool = False
    is_liked: bool = False
    is_disliked: bool = False


class SuggestionRun(BaseModel):
    """Persisted, immutable batch of enriched suggestions."""

    model_config = ConfigDict(frozen=True)

    id: str
    user_id: str
    recipient_id: str
    model: str
    prompt_context: Dict[str, Any] = Field(default_factory=dict)
    suggestions: List[EnrichedGiftIdea] = Field(default_factory=list)
    created_at: datetime

    def idea_at(self, index: int | None) -> EnrichedGiftIdea | None:
        """Return the idea at ``index``, falling back to the first idea."""

        if not self.suggestions:
            return None
        if index is not None and 0 <= index < len(self.suggestions):
            return self.suggestions[index]
        return self.suggestions[0]
