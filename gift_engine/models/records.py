from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FeedbackPreference(str, Enum):
    LIKED = "liked"
    DISLIKED = "disliked"


class AuthenticatedUser(BaseModel):
    id: str
    email: Optional[str] = None


class RecipientRecord(BaseModel):
    id: str
    user_id: str
    name: str
    relationship: Optional[str] = None
    gender: Optional[str] = None
    notes: Optional[str] = None
    annual_budget: Optional[float] = None
    gift_budget_min: Optional[float] = None
    gift_budget_max: Optional[float] = None
    birthday: Optional[str] = None


class RecipientInterest(BaseModel):
    label: str
    category: Optional[str] = None


class GiftHistoryItem(BaseModel):
    title: str
    price: Optional[float] = None
    purchased_at: Optional[datetime] = None
    notes: Optional[str] = None


class SavedGiftIdea(BaseModel):
    id: str
    user_id: str
    recipient_id: str
    suggestion_id: Optional[str] = None
    title: str
    tier: Optional[str] = None
    rationale: Optional[str] = None
    estimated_price_min: Optional[float] = None
    estimated_price_max: Optional[float] = None
    product_url: Optional[str] = None
    image_url: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class GiftFeedback(BaseModel):
    """Liked/disliked mark on one idea of a past run."""

    id: str
    user_id: str
    recipient_id: str
    run_id: Optional[str] = None
    suggestion_index: Optional[int] = None
    preference: FeedbackPreference
    title: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
