"""
Integration tests for the complete task workflow through the HTTP API.
"""

import pytest
from fastapi.testclient import TestClient

from shared.config import get_config
from shared.test_helpers import TestDataFactory, TestEnvironment, auth_headers
from service_task_manager.app.main import create_app


class TestTaskFlow:
    """End-to-end flow: login, plan dependent work, complete it in order, logout."""

    @pytest.fixture
    def client(self):
        config = get_config("task-manager", 8000, **TestEnvironment.get_mock_config())
        with TestClient(create_app(config)) as client:
            yield client

    def _login(self, client, email):
        response = client.post("/auth/login", json={"email": email, "password": "123456"})
        assert response.status_code == 200, response.text
        data = response.json()["data"]
        return auth_headers(data["token"]), data["user"]

    def test_dependent_tasks_complete_in_order(self, client):
        """Test the dependency chain A -> B -> C from creation to completion."""
        manager, _ = self._login(client, "manager@example.com")
        user, user_info = self._login(client, "user@example.com")

        def create(title, dependency_ids=None):
            payload = TestDataFactory.task_payload(
                title=title, assignee_id=user_info["id"], dependency_ids=dependency_ids
            )
            response = client.post("/tasks", json=payload, headers=manager)
            assert response.status_code == 201, response.text
            return response.json()["data"]["id"]

        c = create("Gather requirements")
        b = create("Draft design", [c])
        a = create("Ship feature", [b])

        # 1. The user sees all three, each with its dependencies resolved
        listing = client.get("/tasks", headers=user).json()
        assert [task["id"] for task in listing["data"]] == [c, b, a]
        assert listing["data"][2]["dependencies"][0]["title"] == "Draft design"

        # 2. Completing out of order is refused with the blocking ids
        blocked = client.put(f"/tasks/{a}", json={"status": "completed"}, headers=user)
        assert blocked.status_code == 400
        assert blocked.json()["data"]["incomplete_dependency_ids"] == [b]

        # 3. Completing bottom-up succeeds
        for task_id in (c, b, a):
            response = client.put(f"/tasks/{task_id}", json={"status": "completed"}, headers=user)
            assert response.status_code == 200, response.text

        completed = client.get("/tasks", params={"status": "completed"}, headers=manager).json()
        assert len(completed["data"]) == 3

        # 4. Logout ends the session
        assert client.post("/auth/logout", headers=user).status_code == 200
        assert client.get(f"/tasks/{a}", headers=user).status_code == 401

    def test_reassignment_moves_visibility(self, client):
        """Test that reassigning a task moves it out of the old assignee's view."""
        manager, manager_info = self._login(client, "manager@example.com")
        user, user_info = self._login(client, "user@example.com")

        created = client.post(
            "/tasks",
            json=TestDataFactory.task_payload(assignee_id=user_info["id"]),
            headers=manager,
        ).json()["data"]
        assert client.get(f"/tasks/{created['id']}", headers=user).status_code == 200

        response = client.put(
            f"/tasks/{created['id']}", json={"assignee_id": manager_info["id"]}, headers=manager
        )
        assert response.status_code == 200

        assert client.get(f"/tasks/{created['id']}", headers=user).status_code == 403
        assert client.get("/tasks", headers=user).json()["data"] == []

    def test_manager_cannot_bypass_dependencies(self, client):
        """Test that managers also hit the completion precondition."""
        manager, _ = self._login(client, "manager@example.com")

        dependency = client.post("/tasks", json=TestDataFactory.task_payload(title="First"), headers=manager)
        dependent = client.post(
            "/tasks",
            json=TestDataFactory.task_payload(title="Second", dependency_ids=[dependency.json()["data"]["id"]]),
            headers=manager,
        )

        response = client.put(
            f"/tasks/{dependent.json()['data']['id']}", json={"status": "completed"}, headers=manager
        )

        assert response.status_code == 400
        assert response.json()["status"] is False
