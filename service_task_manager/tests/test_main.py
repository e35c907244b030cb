"""
Tests for the Task Manager HTTP API.
"""

from datetime import date, timedelta
from typing import Dict
from urllib.parse import parse_qs, urlsplit

import pytest
from fastapi.testclient import TestClient

from shared.config import get_config
from shared.test_helpers import MockTokenGenerator, TestDataFactory, TestEnvironment, auth_headers
from service_task_manager.app.main import TaskManagerService


@pytest.fixture
def task_manager_service():
    """Create TaskManagerService instance for testing."""
    config = get_config("task-manager", 8000, **TestEnvironment.get_mock_config())
    return TaskManagerService(config=config)


@pytest.fixture
def client(task_manager_service):
    """Test client with startup hooks run (demo users seeded)."""
    with TestClient(task_manager_service.app) as client:
        yield client


def login(client: TestClient, email: str) -> Dict[str, str]:
    response = client.post("/auth/login", json={"email": email, "password": "123456"})
    assert response.status_code == 200, response.text
    return auth_headers(response.json()["data"]["token"])


@pytest.fixture
def manager_headers(client):
    return login(client, "manager@example.com")


@pytest.fixture
def user_headers(client):
    return login(client, "user@example.com")


@pytest.fixture
def user_id(client):
    response = client.post("/auth/login", json={"email": "user@example.com", "password": "123456"})
    return response.json()["data"]["user"]["id"]


def create_task(client, headers, **kwargs) -> Dict:
    response = client.post("/tasks", json=TestDataFactory.task_payload(**kwargs), headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["data"]


class TestServiceEndpoints:
    """Root, health and metrics endpoints."""

    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["service"] == "task-manager"

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["dependencies"] == {"store": "ok"}

    def test_metrics(self, client):
        client.get("/")
        response = client.get("/metrics")

        assert response.status_code == 200
        assert "http_requests_total" in response.text

    def test_request_id_echoed(self, client):
        response = client.get("/", headers={"X-Request-Id": "req-123"})

        assert response.headers["X-Request-Id"] == "req-123"
        assert "X-Process-Time" in response.headers

    def test_unknown_route_uses_envelope(self, client):
        response = client.get("/nope")

        assert response.status_code == 404
        assert response.json()["status"] is False


class TestAuthEndpoints:
    """Login and logout."""

    def test_login(self, client):
        response = client.post("/auth/login", json={"email": "manager@example.com", "password": "123456"})

        assert response.status_code == 200
        body = response.json()
        assert body["status"] is True
        assert body["message"] == "User logged in successfully"
        assert body["pagination"] is None
        assert body["data"]["token_type"] == "Bearer"
        assert body["data"]["token"]
        assert body["data"]["user"]["email"] == "manager@example.com"
        assert body["data"]["user"]["role"] == "manager"
        assert "password_hash" not in body["data"]["user"]

    def test_login_invalid_credentials(self, client):
        response = client.post("/auth/login", json={"email": "manager@example.com", "password": "wrong"})

        assert response.status_code == 401
        body = response.json()
        assert body["status"] is False
        assert body["message"] == "Invalid credentials"

    def test_login_missing_fields(self, client):
        response = client.post("/auth/login", json={"email": "manager@example.com"})

        assert response.status_code == 422
        assert "password" in response.json()["data"]["errors"]

    def test_login_rejects_malformed_email(self, client):
        response = client.post("/auth/login", json={"email": "not-an-email", "password": "123456"})

        assert response.status_code == 422
        assert "email" in response.json()["data"]["errors"]

    def test_requests_without_token_are_rejected(self, client):
        response = client.get("/tasks")

        assert response.status_code == 401
        assert response.json() == {
            "status": False,
            "data": None,
            "message": "Unauthenticated",
            "pagination": None,
        }

    def test_forged_token_rejected(self, client):
        token = MockTokenGenerator(secret="not-the-secret").generate_access_token(1, role="manager")

        response = client.get("/tasks", headers=auth_headers(token))

        assert response.status_code == 401

    def test_logout_revokes_token(self, client, user_headers):
        response = client.post("/auth/logout", headers=user_headers)

        assert response.status_code == 200
        assert response.json()["message"] == "User logged out successfully"
        assert client.get("/tasks", headers=user_headers).status_code == 401


class TestTaskEndpoints:
    """Task listing, retrieval, creation and update."""

    def test_create_task(self, client, manager_headers, user_id):
        dependency = create_task(client, manager_headers, title="B")

        response = client.post(
            "/tasks",
            json=TestDataFactory.task_payload(title="A", assignee_id=user_id, dependency_ids=[dependency["id"]]),
            headers=manager_headers,
        )

        assert response.status_code == 201
        body = response.json()
        assert body["message"] == "Task created successfully."
        assert body["data"]["title"] == "A"
        assert body["data"]["assignee"]["id"] == user_id
        assert body["data"]["dependencies"][0]["id"] == dependency["id"]
        assert body["data"]["dependencies"][0]["status"] == "pending"

    def test_create_requires_manager(self, client, user_headers):
        response = client.post("/tasks", json=TestDataFactory.task_payload(), headers=user_headers)

        assert response.status_code == 403
        assert response.json()["message"] == "Unauthorized"

    def test_create_rejects_past_due_date(self, client, manager_headers):
        response = client.post(
            "/tasks", json=TestDataFactory.task_payload(due_in_days=-1), headers=manager_headers
        )

        assert response.status_code == 422
        assert "due_date" in response.json()["data"]["errors"]

    def test_create_rejects_unknown_status(self, client, manager_headers):
        response = client.post(
            "/tasks", json=TestDataFactory.task_payload(status="archived"), headers=manager_headers
        )

        assert response.status_code == 422
        assert "status" in response.json()["data"]["errors"]

    def test_create_with_missing_dependency(self, client, manager_headers):
        response = client.post(
            "/tasks", json=TestDataFactory.task_payload(dependency_ids=[999]), headers=manager_headers
        )

        assert response.status_code == 422
        assert response.json()["message"] == "The selected dependency_ids is invalid."
        listing = client.get("/tasks", headers=manager_headers).json()
        assert listing["data"] == []

    def test_get_task(self, client, manager_headers, user_headers, user_id):
        mine = create_task(client, manager_headers, assignee_id=user_id)
        theirs = create_task(client, manager_headers)

        response = client.get(f"/tasks/{mine['id']}", headers=user_headers)
        assert response.status_code == 200
        assert response.json()["message"] == "Task details retrieved successfully."

        assert client.get(f"/tasks/{theirs['id']}", headers=user_headers).status_code == 403
        assert client.get(f"/tasks/{theirs['id']}", headers=manager_headers).status_code == 200

    def test_get_missing_task(self, client, manager_headers):
        response = client.get("/tasks/9999", headers=manager_headers)

        assert response.status_code == 404
        assert response.json()["message"] == "Task not found."

    @pytest.mark.parametrize("task_id", [0, 2**31])
    def test_task_id_out_of_range(self, client, manager_headers, task_id):
        get_response = client.get(f"/tasks/{task_id}", headers=manager_headers)
        put_response = client.put(f"/tasks/{task_id}", json={"title": "x"}, headers=manager_headers)

        for response in (get_response, put_response):
            assert response.status_code == 422
            assert "task_id" in response.json()["data"]["errors"]

    def test_reference_ids_out_of_range(self, client, manager_headers):
        huge = 3_000_000_000

        created = client.post(
            "/tasks", json=TestDataFactory.task_payload(dependency_ids=[huge]), headers=manager_headers
        )
        assigned = client.post(
            "/tasks", json=TestDataFactory.task_payload(assignee_id=huge), headers=manager_headers
        )
        listed = client.get("/tasks", params={"assignee_id": huge}, headers=manager_headers)

        assert created.status_code == 422
        assert "dependency_ids.0" in created.json()["data"]["errors"]
        assert assigned.status_code == 422
        assert "assignee_id" in assigned.json()["data"]["errors"]
        assert listed.status_code == 422
        assert "assignee_id" in listed.json()["data"]["errors"]

    def test_user_list_ignores_assignee_filter(self, client, manager_headers, user_headers, user_id):
        mine = create_task(client, manager_headers, title="mine", assignee_id=user_id)
        create_task(client, manager_headers, title="unassigned")

        response = client.get("/tasks", params={"assignee_id": 1}, headers=user_headers)

        assert response.status_code == 200
        assert [task["id"] for task in response.json()["data"]] == [mine["id"]]

    def test_list_filters(self, client, manager_headers):
        soon = create_task(client, manager_headers, title="soon", due_in_days=1)
        later = create_task(client, manager_headers, title="later", due_in_days=30, status="canceled")
        today = date.today()

        by_status = client.get("/tasks", params={"status": "canceled"}, headers=manager_headers).json()
        by_range = client.get(
            "/tasks",
            params={
                "due_date_from": today.isoformat(),
                "due_date_to": (today + timedelta(days=7)).isoformat(),
            },
            headers=manager_headers,
        ).json()

        assert [task["id"] for task in by_status["data"]] == [later["id"]]
        assert [task["id"] for task in by_range["data"]] == [soon["id"]]
        assert by_range["message"] == "Tasks retrieved successfully."

    def test_list_pagination(self, client, manager_headers):
        ids = [create_task(client, manager_headers, title=f"T{i}")["id"] for i in range(3)]

        response = client.get("/tasks", params={"page": 2, "per_page": 2}, headers=manager_headers)

        assert response.status_code == 200
        body = response.json()
        assert [task["id"] for task in body["data"]] == ids[2:]
        pagination = body["pagination"]
        assert {key: value for key, value in pagination.items() if not key.endswith("_url")} == {
            "current_page": 2,
            "total_pages": 2,
            "items_per_page": 2,
            "total_items": 3,
        }
        assert pagination["next_page_url"] is None
        assert parse_qs(urlsplit(pagination["prev_page_url"]).query) == {"page": ["1"], "per_page": ["2"]}
        assert response.headers["X-Total-Count"] == "3"
        assert response.headers["X-Total-Pages"] == "2"
        assert response.headers["X-Previous-Page"] == pagination["prev_page_url"]
        assert "X-Next-Page" not in response.headers

    def test_list_pagination_links_keep_filters(self, client, manager_headers):
        for i in range(3):
            create_task(client, manager_headers, title=f"T{i}")

        response = client.get(
            "/tasks", params={"status": "pending", "page": 1, "per_page": 2}, headers=manager_headers
        )

        pagination = response.json()["pagination"]
        assert pagination["prev_page_url"] is None
        assert urlsplit(pagination["next_page_url"]).path == "/tasks"
        assert parse_qs(urlsplit(pagination["next_page_url"]).query) == {
            "status": ["pending"],
            "page": ["2"],
            "per_page": ["2"],
        }
        assert response.headers["X-Next-Page"] == pagination["next_page_url"]

    def test_list_without_page_is_unpaginated(self, client, manager_headers):
        create_task(client, manager_headers)

        body = client.get("/tasks", headers=manager_headers).json()

        assert body["pagination"] is None
        assert len(body["data"]) == 1

    def test_assignee_completion_blocked_then_allowed(self, client, manager_headers, user_headers, user_id):
        b = create_task(client, manager_headers, title="B")
        a = create_task(client, manager_headers, title="A", assignee_id=user_id, dependency_ids=[b["id"]])

        blocked = client.put(f"/tasks/{a['id']}", json={"status": "completed"}, headers=user_headers)
        assert blocked.status_code == 400
        assert blocked.json()["message"] == "Cannot complete task until all dependencies are completed."
        assert blocked.json()["data"]["incomplete_dependency_ids"] == [b["id"]]

        done = client.put(f"/tasks/{b['id']}", json={"status": "completed"}, headers=manager_headers)
        assert done.status_code == 200

        retried = client.put(f"/tasks/{a['id']}", json={"status": "completed"}, headers=user_headers)
        assert retried.status_code == 200
        assert retried.json()["message"] == "Task updated successfully."
        assert retried.json()["data"]["status"] == "completed"

    def test_assignee_cannot_change_title(self, client, manager_headers, user_headers, user_id):
        task = create_task(client, manager_headers, assignee_id=user_id)

        response = client.put(f"/tasks/{task['id']}", json={"title": "Renamed"}, headers=user_headers)

        assert response.status_code == 403

    def test_non_assignee_cannot_update(self, client, manager_headers, user_headers):
        task = create_task(client, manager_headers)

        response = client.put(f"/tasks/{task['id']}", json={"status": "completed"}, headers=user_headers)

        assert response.status_code == 403

    def test_manager_updates_task(self, client, manager_headers, user_id):
        task = create_task(client, manager_headers)

        response = client.put(
            f"/tasks/{task['id']}",
            json={"title": "Renamed", "assignee_id": user_id},
            headers=manager_headers,
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["title"] == "Renamed"
        assert data["assignee"]["id"] == user_id

    def test_update_missing_task(self, client, manager_headers):
        response = client.put("/tasks/9999", json={"title": "x"}, headers=manager_headers)

        assert response.status_code == 404

    def test_update_rejects_unknown_field(self, client, manager_headers):
        task = create_task(client, manager_headers)

        response = client.put(f"/tasks/{task['id']}", json={"priority": "high"}, headers=manager_headers)

        assert response.status_code == 422
        assert "priority" in response.json()["data"]["errors"]

    @pytest.mark.parametrize("body", [{"title": None}, {"status": None}, {"due_date": None}])
    def test_update_rejects_null_required_field(self, client, manager_headers, body):
        task = create_task(client, manager_headers)

        response = client.put(f"/tasks/{task['id']}", json=body, headers=manager_headers)

        assert response.status_code == 422

    def test_update_rejects_self_dependency(self, client, manager_headers):
        task = create_task(client, manager_headers)

        response = client.put(
            f"/tasks/{task['id']}", json={"dependency_ids": [task["id"]]}, headers=manager_headers
        )

        assert response.status_code == 422
        assert "dependency_ids" in response.json()["data"]["errors"]

    def test_update_rejects_duplicate_dependencies(self, client, manager_headers):
        task = create_task(client, manager_headers)
        other = create_task(client, manager_headers)

        response = client.put(
            f"/tasks/{task['id']}", json={"dependency_ids": [other["id"], other["id"]]}, headers=manager_headers
        )

        assert response.status_code == 422
