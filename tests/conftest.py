"""Shared pytest fixtures for all tests."""

from __future__ import annotations

import pytest

from gift_engine.config import Settings
from gift_engine.models import AuthenticatedUser, RecipientContext
from gift_engine.services.data_store import DEFAULT_DATA_DIR, InMemorySuggestionStore
from gift_engine.services.metrics import MetricsService


@pytest.fixture
def settings() -> Settings:
    """Default settings for tests: no provider credentials, generous rate limit."""
    return Settings(
        openai_api_key="",
        product_search_base_url=None,
        product_search_token=None,
        suggestion_rate_limit_max_calls=1000,
    )


@pytest.fixture
def store() -> InMemorySuggestionStore:
    """In-memory store seeded from the bundled demo data."""
    return InMemorySuggestionStore.from_file(DEFAULT_DATA_DIR / "seed.json")


@pytest.fixture
def metrics() -> MetricsService:
    return MetricsService()


@pytest.fixture
def demo_user() -> AuthenticatedUser:
    return AuthenticatedUser(id="user-demo", email="demo@giftengine.local")


@pytest.fixture
def context() -> RecipientContext:
    return RecipientContext(recipient_id="rec-maya", recipient_name="Maya", budget_min=25, budget_max=75)
