from __future__ import annotations

import asyncio

import pytest
from fastapi.testclient import TestClient

from fakes import make_run
from gift_engine.config import get_settings
from gift_engine.main import create_app
from gift_engine.models import FeedbackPreference, GiftFeedback
from gift_engine.routers.dependencies import get_metrics_dependency, get_store_dependency

AUTH = {"Authorization": "Bearer demo-token"}
OTHER_AUTH = {"Authorization": "Bearer other-token"}
RUN_ID = "0123456789abcdef0123456789abcdef"
OLD_RUN_ID = "fedcba9876543210fedcba9876543210"


@pytest.fixture
def client(settings, store, metrics) -> TestClient:
    app = create_app()
    admin_settings = settings.model_copy(update={"admin_emails": ["Demo@GiftEngine.local"]})
    app.dependency_overrides[get_settings] = lambda: admin_settings
    app.dependency_overrides[get_store_dependency] = lambda: store
    app.dependency_overrides[get_metrics_dependency] = lambda: metrics
    store.add_run(make_run(RUN_ID, ["Candle", "Ceramic Mug", "Fern"]))
    return TestClient(app)


def test_saved_gifts_round_trip(client: TestClient) -> None:
    created = client.post(
        "/api/recipients/rec-maya/saved-gifts",
        json={"title": "  Botanical Print ", "suggestionId": RUN_ID, "tier": "safe"},
        headers=AUTH,
    )
    assert created.status_code == 200
    saved = created.json()["savedGift"]
    assert saved["title"] == "Botanical Print"
    assert saved["suggestion_id"] == RUN_ID

    listed = client.get("/api/recipients/rec-maya/saved-gifts", headers=AUTH)
    assert [item["title"] for item in listed.json()["savedGifts"]] == ["Botanical Print"]

    deleted = client.delete(f"/api/recipients/rec-maya/saved-gifts?id={saved['id']}", headers=AUTH)
    assert deleted.json() == {"success": True, "deleted": 1}
    assert client.get("/api/recipients/rec-maya/saved-gifts", headers=AUTH).json()["savedGifts"] == []


def test_save_gift_requires_title(client: TestClient) -> None:
    response = client.post("/api/recipients/rec-maya/saved-gifts", json={"title": "   "}, headers=AUTH)
    assert response.status_code == 400
    assert response.json()["error"]["message"] == "title is required"


def test_save_gift_drops_malformed_suggestion_id(client: TestClient) -> None:
    response = client.post(
        "/api/recipients/rec-maya/saved-gifts",
        json={"title": "Fern", "suggestionId": "3"},
        headers=AUTH,
    )
    assert response.json()["savedGift"]["suggestion_id"] is None


def test_delete_saved_gift_requires_an_identifier(client: TestClient) -> None:
    response = client.delete("/api/recipients/rec-maya/saved-gifts", headers=AUTH)
    assert response.status_code == 400


def test_saved_gifts_of_foreign_recipient_are_forbidden(client: TestClient) -> None:
    response = client.get("/api/recipients/rec-maya/saved-gifts", headers=OTHER_AUTH)
    assert response.status_code == 403
    assert response.json()["error"]["code"] == "FORBIDDEN"


def test_feedback_stores_idea_title(client: TestClient, store) -> None:
    response = client.post(
        f"/api/recipients/rec-maya/suggestions/{RUN_ID}/feedback",
        json={"preference": "liked", "suggestionIndex": 1},
        headers=AUTH,
    )

    assert response.status_code == 200
    feedback = response.json()["feedback"]
    assert feedback["preference"] == "liked"
    assert feedback["title"] == "Ceramic Mug"

    rows = asyncio.run(store.list_feedback("user-demo", "rec-maya"))
    assert [(row.preference, row.title) for row in rows] == [(FeedbackPreference.LIKED, "Ceramic Mug")]


def test_feedback_upsert_then_clear(client: TestClient, store) -> None:
    url = f"/api/recipients/rec-maya/suggestions/{RUN_ID}/feedback"
    client.post(url, json={"preference": "liked", "suggestionIndex": 0}, headers=AUTH)
    client.post(url, json={"preference": "disliked", "suggestionIndex": 0}, headers=AUTH)

    rows = asyncio.run(store.list_feedback("user-demo", "rec-maya"))
    assert [row.preference for row in rows] == [FeedbackPreference.DISLIKED]

    cleared = client.post(url, json={"preference": "clear", "suggestionIndex": 0}, headers=AUTH)
    assert cleared.json() == {"feedback": None}
    assert asyncio.run(store.list_feedback("user-demo", "rec-maya")) == []


def test_feedback_on_unknown_run_is_forbidden(client: TestClient) -> None:
    response = client.post(
        "/api/recipients/rec-maya/suggestions/run-unknown/feedback",
        json={"preference": "liked"},
        headers=AUTH,
    )
    assert response.status_code == 403


def test_feedback_rejects_unknown_preference(client: TestClient) -> None:
    response = client.post(
        f"/api/recipients/rec-maya/suggestions/{RUN_ID}/feedback",
        json={"preference": "love"},
        headers=AUTH,
    )
    assert response.status_code == 422


def test_product_search_endpoint_uses_mock_products(client: TestClient) -> None:
    response = client.post("/api/products/search", json={"query": "tea set", "maxResults": 2}, headers=AUTH)

    assert response.status_code == 200
    products = response.json()["products"]
    assert len(products) == 2
    assert products[0]["title"].startswith("tea set")


def test_product_search_rejects_blank_query(client: TestClient) -> None:
    response = client.post("/api/products/search", json={"query": "  "}, headers=AUTH)
    assert response.status_code == 400


def test_admin_metrics_allowlist(client: TestClient) -> None:
    allowed = client.get("/api/admin/metrics", headers=AUTH)
    assert allowed.status_code == 200
    assert allowed.json()["metrics"]["runs_succeeded"] == 0

    denied = client.get("/api/admin/metrics", headers=OTHER_AUTH)
    assert denied.status_code == 403


def _seed_old_feedback(store) -> None:
    store.add_run(make_run(OLD_RUN_ID, ["Pottery Class", "Tea Sampler"], days_ago=150))
    store.add_feedback(
        GiftFeedback(
            id="fb-old-liked",
            user_id="user-demo",
            recipient_id="rec-maya",
            run_id=OLD_RUN_ID,
            suggestion_index=1,
            preference=FeedbackPreference.LIKED,
        )
    )
    store.add_feedback(
        GiftFeedback(
            id="fb-old-stale",
            user_id="user-demo",
            recipient_id="rec-maya",
            run_id=OLD_RUN_ID,
            suggestion_index=9,
            preference=FeedbackPreference.DISLIKED,
            title="Stored Title",
        )
    )


def test_feedback_summary_resolves_ideas_from_old_runs(client: TestClient, store) -> None:
    _seed_old_feedback(store)

    response = client.get("/api/recipients/rec-maya/feedback/summary", headers=AUTH)

    assert response.status_code == 200
    body = response.json()
    assert [(item["id"], item["title"]) for item in body["liked"]] == [("fb-old-liked", "Tea Sampler")]
    assert body["liked"][0]["suggestion_id"] == OLD_RUN_ID
    # An out-of-range index falls back to the run's first idea.
    assert [item["title"] for item in body["disliked"]] == ["Pottery Class"]


def test_feedback_summary_of_foreign_recipient_is_forbidden(client: TestClient, store) -> None:
    _seed_old_feedback(store)

    response = client.get("/api/recipients/rec-maya/feedback/summary", headers=OTHER_AUTH)

    assert response.status_code == 403
    assert response.json()["error"]["code"] == "FORBIDDEN"


def test_delete_feedback_removes_row(client: TestClient, store) -> None:
    _seed_old_feedback(store)

    response = client.delete("/api/recipients/rec-maya/feedback?id=fb-old-liked", headers=AUTH)

    assert response.status_code == 200
    assert response.json() == {"success": True}
    rows = asyncio.run(store.list_feedback("user-demo", "rec-maya"))
    assert [row.id for row in rows] == ["fb-old-stale"]


def test_delete_feedback_not_owned_is_forbidden(client: TestClient, store) -> None:
    _seed_old_feedback(store)

    unknown = client.delete("/api/recipients/rec-maya/feedback?id=fb-missing", headers=AUTH)
    foreign = client.delete("/api/recipients/rec-maya/feedback?id=fb-old-liked", headers=OTHER_AUTH)

    assert unknown.status_code == 403
    assert foreign.status_code == 403
    assert len(asyncio.run(store.list_feedback("user-demo", "rec-maya"))) == 2


def test_delete_feedback_requires_an_identifier(client: TestClient) -> None:
    response = client.delete("/api/recipients/rec-maya/feedback", headers=AUTH)
    assert response.status_code == 400
    assert response.json()["error"]["message"] == "id query param is required"
