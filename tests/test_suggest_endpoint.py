from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from fakes import FakeLLM, FakeSearcher, suggestions_body
from gift_engine.config import get_settings
from gift_engine.main import create_app
from gift_engine.routers.dependencies import (
    get_metrics_dependency,
    get_product_search_client,
    get_store_dependency,
)
from gift_engine.routers.suggestions import get_generation_executor
from gift_engine.services.generation import GenerationPassExecutor

AUTH = {"Authorization": "Bearer demo-token"}


@pytest.fixture
def llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture
def client(settings, store, metrics, llm) -> TestClient:
    app = create_app()
    llm_settings = settings.model_copy(update={"openai_api_key": "test-key", "suggestion_model": "gpt-test"})
    app.dependency_overrides[get_settings] = lambda: llm_settings
    app.dependency_overrides[get_store_dependency] = lambda: store
    app.dependency_overrides[get_metrics_dependency] = lambda: metrics
    app.dependency_overrides[get_product_search_client] = lambda: FakeSearcher(failing=["Linen Apron"])
    app.dependency_overrides[get_generation_executor] = lambda: GenerationPassExecutor(llm_settings, llm=llm)
    return TestClient(app)


def test_health(client: TestClient) -> None:
    assert client.get("/health").json() == {"status": "ok"}


def test_suggestions_happy_path(client: TestClient, llm: FakeLLM) -> None:
    llm.responses.append(suggestions_body("Pour-over Kettle", "Herb Garden Kit", "Linen Apron", "Tea Tin"))

    response = client.post(
        "/api/suggestions",
        json={"recipientId": "rec-maya", "numSuggestions": 3, "occasion": "Birthday"},
        headers=AUTH,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["suggestionRunId"]
    assert data["createdAt"]
    assert data["model"] == "gpt-test"
    assert data["promptContext"]["recipient_name"] == "Maya"
    assert data["promptContext"]["budget_min"] == 25
    titles = [item["title"] for item in data["suggestions"]]
    assert titles == ["Pour-over Kettle", "Herb Garden Kit", "Linen Apron"]
    assert data["suggestions"][0]["product"]["product_id"]
    assert data["suggestions"][2]["product"] is None
    assert data["suggestions"][0]["is_saved"] is False
    assert len(llm.calls) == 1


def test_suggestions_require_bearer_token(client: TestClient, llm: FakeLLM) -> None:
    response = client.post("/api/suggestions", json={"recipientId": "rec-maya"})

    assert response.status_code == 401
    body = response.json()
    assert body["error"]["code"] == "UNAUTHORIZED"
    assert body["meta"]["debug"]["trace_id"]

    response = client.post(
        "/api/suggestions",
        json={"recipientId": "rec-maya"},
        headers={"Authorization": "Bearer nope"},
    )
    assert response.status_code == 401
    assert llm.calls == []


def test_suggestions_for_foreign_recipient_is_not_found(client: TestClient, llm: FakeLLM) -> None:
    llm.responses.append(suggestions_body("Candle", "Mug", "Plant"))

    response = client.post("/api/suggestions", json={"recipientId": "rec-leo"}, headers=AUTH)

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "RECIPIENT_NOT_FOUND"
    assert llm.calls == []


def test_suggestions_no_usable_ideas(client: TestClient, llm: FakeLLM) -> None:
    llm.responses.extend([suggestions_body("Idea 1", "placeholder", "Idea 3")] * 4)

    response = client.post("/api/suggestions", json={"recipientId": "rec-maya"}, headers=AUTH)

    assert response.status_code == 502
    body = response.json()
    assert body["error"]["code"] == "NO_SUGGESTIONS"
    assert body["error"]["message"] == "Gift suggestions are temporarily unavailable. Please try again in a moment."
    assert body["meta"]["debug"]["counts"]["filtered_placeholder"] == 12
    assert len(llm.calls) == 4


def test_suggestions_provider_failure_on_first_pass(client: TestClient, llm: FakeLLM) -> None:
    llm.raise_error = True

    response = client.post("/api/suggestions", json={"recipientId": "rec-maya"}, headers=AUTH)

    assert response.status_code == 502
    assert response.json()["error"]["code"] == "LLM_UNAVAILABLE"


def test_suggestions_reject_inverted_budget(client: TestClient) -> None:
    response = client.post(
        "/api/suggestions",
        json={"recipientId": "rec-maya", "budgetMin": 90, "budgetMax": 10},
        headers=AUTH,
    )

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "BAD_REQUEST"


def test_suggestions_require_recipient_id(client: TestClient) -> None:
    response = client.post("/api/suggestions", json={"occasion": "Birthday"}, headers=AUTH)

    assert response.status_code == 422
    assert response.json()["error"]["code"] == "BAD_REQUEST"


def test_errors_reuse_caller_trace_id(client: TestClient) -> None:
    response = client.post(
        "/api/suggestions",
        json={"recipientId": "rec-maya"},
        headers={"X-Request-Id": "trace-abc"},
    )

    assert response.status_code == 401
    assert response.json()["meta"]["debug"]["trace_id"] == "trace-abc"
    assert response.headers["X-Request-Id"] == "trace-abc"


def test_unknown_route_uses_error_envelope(client: TestClient) -> None:
    response = client.get("/api/nowhere", headers=AUTH)

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "NOT_FOUND"


def test_package_exposes_app_factory() -> None:
    import gift_engine

    assert gift_engine.create_app is create_app
