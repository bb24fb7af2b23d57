from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from .product import ProductCandidate
from .records import (
    AuthenticatedUser,
    FeedbackPreference,
    GiftFeedback,
    GiftHistoryItem,
    RecipientInterest,
    RecipientRecord,
    SavedGiftIdea,
)
from .suggestion import (
    EnrichedGiftIdea,
    GiftIdea,
    GiftTier,
    ProductMatch,
    RecipientContext,
    SuggestionRun,
    SuggestionView,
)


def _camel(snake: str, camel: str) -> AliasChoices:
    return AliasChoices(camel, snake)


class SuggestRequest(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True, allow_inf_nan=False)

    recipient_id: str = Field(validation_alias=_camel("recipient_id", "recipientId"))
    occasion: Optional[str] = None
    budget_min: Optional[float] = Field(default=None, validation_alias=_camel("budget_min", "budgetMin"))
    budget_max: Optional[float] = Field(default=None, validation_alias=_camel("budget_max", "budgetMax"))
    num_suggestions: Optional[float] = Field(
        default=None,
        validation_alias=_camel("num_suggestions", "numSuggestions"),
    )
    previous_suggestions: List[str] = Field(
        default_factory=list,
        validation_alias=_camel("previous_suggestions", "previousSuggestions"),
    )

    @field_validator("recipient_id", mode="before")
    @classmethod
    def _strip_recipient_id(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("occasion", mode="before")
    @classmethod
    def _blank_occasion(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip() or None
        return value

    @field_validator("previous_suggestions", mode="before")
    @classmethod
    def _coerce_previous(cls, value: Any) -> Any:
        # Callers send either bare titles or the idea objects they were shown.
        if value is None:
            return []
        if not isinstance(value, list):
            return value
        titles: List[str] = []
        for item in value:
            if isinstance(item, dict):
                item = item.get("title")
            if isinstance(item, str) and item.strip():
                titles.append(item)
        return titles


class SuggestResponse(BaseModel):
    suggestion_run_id: str = Field(serialization_alias="suggestionRunId")
    created_at: datetime = Field(serialization_alias="createdAt")
    model: str
    suggestions: List[SuggestionView] = Field(default_factory=list)
    prompt_context: RecipientContext = Field(serialization_alias="promptContext")


class SaveGiftRequest(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True, allow_inf_nan=False)

    title: str
    suggestion_id: Optional[str] = Field(default=None, validation_alias=_camel("suggestion_id", "suggestionId"))
    tier: Optional[str] = None
    rationale: Optional[str] = None
    estimated_price_min: Optional[float] = None
    estimated_price_max: Optional[float] = None
    product_url: Optional[str] = None
    image_url: Optional[str] = None


class SavedGiftsResponse(BaseModel):
    saved_gifts: List[SavedGiftIdea] = Field(default_factory=list, serialization_alias="savedGifts")


class SavedGiftResponse(BaseModel):
    saved_gift: SavedGiftIdea = Field(serialization_alias="savedGift")


class DeleteSavedGiftResponse(BaseModel):
    success: bool = True
    deleted: int = 0


class FeedbackRequest(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    preference: Literal["liked", "disliked", "clear"]
    suggestion_index: Optional[int] = Field(
        default=None,
        ge=0,
        validation_alias=_camel("suggestion_index", "suggestionIndex"),
    )


class FeedbackResponse(BaseModel):
    feedback: Optional[GiftFeedback] = None


class FeedbackIdea(BaseModel):
    """Liked or disliked idea resolved through the run it came from."""

    id: str
    suggestion_id: str = ""
    title: str
    tier: Optional[str] = None
    rationale: Optional[str] = None
    estimated_price_min: Optional[float] = None
    estimated_price_max: Optional[float] = None
    product_url: Optional[str] = None
    image_url: Optional[str] = None
    preference: FeedbackPreference
    created_at: datetime


class FeedbackSummaryResponse(BaseModel):
    liked: List[FeedbackIdea] = Field(default_factory=list)
    disliked: List[FeedbackIdea] = Field(default_factory=list)


class DeleteFeedbackResponse(BaseModel):
    success: bool = True


class ProductSearchRequest(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True, allow_inf_nan=False)

    query: str = ""
    budget_min: Optional[float] = Field(default=None, validation_alias=_camel("budget_min", "budgetMin"))
    budget_max: Optional[float] = Field(default=None, validation_alias=_camel("budget_max", "budgetMax"))
    max_results: Optional[int] = Field(default=None, ge=1, validation_alias=_camel("max_results", "maxResults"))


class ProductSearchResponse(BaseModel):
    products: List[ProductCandidate] = Field(default_factory=list)


class MetricsResponse(BaseModel):
    metrics: Dict[str, Any] = Field(default_factory=dict)


__all__ = [
    "AuthenticatedUser",
    "DeleteFeedbackResponse",
    "DeleteSavedGiftResponse",
    "EnrichedGiftIdea",
    "FeedbackIdea",
    "FeedbackPreference",
    "FeedbackRequest",
    "FeedbackResponse",
    "FeedbackSummaryResponse",
    "GiftFeedback",
    "GiftHistoryItem",
    "GiftIdea",
    "GiftTier",
    "MetricsResponse",
    "ProductCandidate",
    "ProductMatch",
    "ProductSearchRequest",
    "ProductSearchResponse",
    "RecipientContext",
    "RecipientInterest",
    "RecipientRecord",
    "SaveGiftRequest",
    "SavedGiftIdea",
    "SavedGiftResponse",
    "SavedGiftsResponse",
    "SuggestRequest",
    "SuggestResponse",
    "SuggestionRun",
    "SuggestionView",
]
