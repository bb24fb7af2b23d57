from __future__ import annotations

import pytest
from pydantic import ValidationError

from gift_engine.config import Settings


def test_defaults_match_engine_limits(monkeypatch):
    for name in ("MIN_SUGGESTIONS", "MAX_SUGGESTIONS", "DEFAULT_SUGGESTIONS", "MAX_EXTRA_PASSES"):
        monkeypatch.delenv(name, raising=False)
    settings = Settings(_env_file=None)

    assert (settings.min_suggestions, settings.default_suggestions, settings.max_suggestions) == (3, 5, 10)
    assert settings.max_extra_passes == 3
    assert settings.top_up_buffer == 2


def test_env_aliases_are_read(monkeypatch):
    monkeypatch.setenv("ADMIN_EMAILS", '["ops@example.com"]')
    monkeypatch.setenv("PRODUCT_SEARCH_BASE_URL", "https://search.example")
    monkeypatch.setenv("PRODUCT_SEARCH_TOKEN", "secret")

    settings = Settings(_env_file=None)

    assert settings.admin_emails == ["ops@example.com"]
    assert settings.product_search_live


def test_inconsistent_suggestion_bounds_are_rejected():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, min_suggestions=6, default_suggestions=5)
