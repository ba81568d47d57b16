"""HTTP surface tests using the FastAPI test client.

Only paths that never reach GitHub or the oracle are exercised here.
"""

from typing import Iterator, List

import pytest
from fastapi.testclient import TestClient

from starlists.main import app
from starlists.models import Category
from starlists.plan_store import save_plan


@pytest.fixture
def client() -> Iterator[TestClient]:
    with TestClient(app) as test_client:
        yield test_client


class TestHealth:
    def test_health(self, client: TestClient) -> None:
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestPlanRoutes:
    def test_missing_plan_is_404(self, client: TestClient) -> None:
        assert client.get("/plan").status_code == 404

    def test_saved_plan_returned(self, client: TestClient, categories: List[Category]) -> None:
        save_plan(categories, repo_count=5)

        response = client.get("/plan")

        assert response.status_code == 200
        body = response.json()
        assert body["repo_count"] == 5
        assert [item["name"] for item in body["categories"]] == [c.name for c in categories]

    def test_delete_plan(self, client: TestClient, categories: List[Category]) -> None:
        save_plan(categories, repo_count=5)
        assert client.delete("/plan").json() == {"deleted": True}
        assert client.delete("/plan").json() == {"deleted": False}


class TestClassifyRoutes:
    def test_missing_ai_key_is_400(self, client: TestClient) -> None:
        response = client.post("/classify", json={})
        assert response.status_code == 400
        assert "AI_API_KEY" in response.json()["detail"]

    def test_missing_plan_is_400(self, client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("AI_API_KEY", "key")
        response = client.post("/classify", json={"only_new": True})
        assert response.status_code == 400
        assert "No saved plan" in response.json()["detail"]

    def test_status_idle(self, client: TestClient) -> None:
        response = client.get("/classify/status")
        assert response.status_code == 200
        body = response.json()
        assert body["running"] is False
        assert body["task_id"] is None

    def test_stop_when_idle(self, client: TestClient) -> None:
        assert client.post("/classify/stop").json() == {"stopped": False}

    def test_admin_token_enforced(self, client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ADMIN_TOKEN", "s3cret")
        assert client.post("/classify", json={}).status_code == 401
        response = client.post("/classify", json={}, headers={"X-Admin-Token": "s3cret"})
        assert response.status_code == 400


class TestTaskRoutes:
    def test_unknown_task_is_404(self, client: TestClient) -> None:
        assert client.get("/tasks/does-not-exist").status_code == 404
