import pytest
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock

from core.config import Settings
from main import create_app
from conftest import REPOSITORY_DATA

AUTH = {"Authorization": "Bearer test-token"}


@pytest.fixture
def app(tmp_path):
    settings = Settings(database_url=f"sqlite:///{tmp_path / 'repositories.db'}", heartbeat_interval_seconds=0)
    app = create_app(settings)
    app.state.container.github_client.graphql = AsyncMock(return_value=REPOSITORY_DATA)
    return app


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


def _add(client, owner="acme", name="widgets", **extra):
    return client.post("/api/repositories", json={"owner": owner, "name": name, **extra}, headers=AUTH)


@pytest.mark.parametrize("method, path", [
    ("get", "/api/repositories"),
    ("post", "/api/repositories"),
    ("get", "/api/repositories/1"),
    ("delete", "/api/repositories/1"),
])
def test_requires_bearer_token(client, method, path):
    assert client.request(method, path).status_code == 401


def test_add_repository(client):
    """Test that a validated repository is returned with its metadata."""
    response = _add(client, credentials={"type": "token", "value": "ghp_x"})

    assert response.status_code == 201
    repository = response.json()["data"]["repository"]
    assert repository["fullName"] == "acme/widgets"
    assert repository["status"] == "active"
    assert repository["metadata"]["defaultBranch"] == "main"
    assert repository["credentials"]["type"] == "token"
    assert "ghp_x" not in response.text


def test_add_repository_failing_validation(app, client):
    app.state.container.github_client.graphql.return_value = {"repository": None}

    response = _add(client)

    assert response.status_code == 400
    assert response.json()["error"]["message"] == "Repository validation failed"


def test_add_repository_rejects_unknown_credentials_type(client):
    assert _add(client, credentials={"type": "password", "value": "x"}).status_code == 422


def test_list_repositories(client):
    _add(client, name="widgets")
    _add(client, name="gadgets")

    response = client.get("/api/repositories?sortField=fullName&sortOrder=asc&pageSize=1", headers=AUTH)

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["total"] == 2
    assert data["pageSize"] == 1
    assert [item["fullName"] for item in data["items"]] == ["acme/gadgets"]


def test_get_unknown_repository(client):
    response = client.get("/api/repositories/999", headers=AUTH)

    assert response.status_code == 404
    assert response.json() == {"success": False, "error": {"message": "Repository not found", "status": 404}}


def test_delete_archives_repository(client):
    repo_id = _add(client).json()["data"]["repository"]["id"]

    response = client.delete(f"/api/repositories/{repo_id}", headers=AUTH)

    assert response.json() == {"success": True, "message": "Repository archived successfully"}
    fetched = client.get(f"/api/repositories/{repo_id}", headers=AUTH).json()
    assert fetched["data"]["repository"]["status"] == "archived"


def test_update_status_and_settings(client):
    repo_id = _add(client).json()["data"]["repository"]["id"]

    status = client.patch(f"/api/repositories/{repo_id}/status", json={"status": "inactive"}, headers=AUTH)
    assert status.json()["data"]["repository"]["status"] == "inactive"

    invalid = client.patch(f"/api/repositories/{repo_id}/status", json={"status": "deleted"}, headers=AUTH)
    assert invalid.status_code == 422

    settings = client.patch(f"/api/repositories/{repo_id}/settings",
                            json={"syncEnabled": False, "labelPatterns": ["team-*"]}, headers=AUTH)
    assert settings.json()["data"]["repository"]["settings"] == {
        "syncEnabled": False,
        "syncInterval": None,
        "branchPatterns": [],
        "labelPatterns": ["team-*"],
    }
