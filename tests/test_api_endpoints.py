"""Integration tests for API endpoints.

These tests verify API endpoints work correctly end-to-end.
"""

import json
from unittest.mock import patch

from aikanban.errors import ConfigurationError, RequestFailed


def _create(test_client, title="Test Task", **fields):
    response = test_client.post("/tasks", json={"title": title, **fields})
    assert response.status_code == 201, response.text
    return response.json()["task"]


def _column(test_client, column_id):
    board = test_client.get("/tasks").json()
    return next(column for column in board["columns"] if column["id"] == column_id)


class TestTaskEndpoints:
    """Test task CRUD API endpoints."""

    def test_health(self, test_client):
        response = test_client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_create_task(self, test_client, test_user_id):
        task = _create(test_client, "Write report", description="Q3", priority="high", tags=["work", "work"])

        assert task["title"] == "Write report"
        assert task["priority"] == "high"
        assert task["status"] == "backlog"
        assert task["tags"] == ["work"]
        assert task["ai_enhanced"] is False
        assert task["user_id"] == test_user_id
        # The store assigns the id, not the provisional task_<ms>_<suffix> one
        assert not task["id"].startswith("task_")

    def test_create_task_requires_title(self, test_client):
        response = test_client.post("/tasks", json={"title": "  "})
        assert response.status_code == 422
        assert response.json()["error"] == "ValidationError"

    def test_board_lists_columns_in_order(self, test_client):
        _create(test_client, "Backlog item")
        _create(test_client, "In progress item", status="inprogress")

        board = test_client.get("/tasks").json()

        assert [column["id"] for column in board["columns"]] == ["backlog", "todo", "inprogress", "done"]
        assert [column["title"] for column in board["columns"]] == ["Backlog", "To Do", "In Progress", "Done"]
        assert [t["title"] for t in board["columns"][0]["tasks"]] == ["Backlog item"]
        assert [t["title"] for t in board["columns"][2]["tasks"]] == ["In progress item"]

    def test_board_is_loaded_from_store(self, test_client, task_repository, make_task, test_user_id):
        task_repository.insert(make_task(title="Stored earlier"), test_user_id)

        titles = [t["title"] for t in _column(test_client, "backlog")["tasks"]]

        assert titles == ["Stored earlier"]

    def test_update_task(self, test_client, task_repository, test_user_id):
        task = _create(test_client)

        response = test_client.patch(f"/tasks/{task['id']}", json={"description": "Updated", "tags": ["x"]})

        assert response.status_code == 200
        updated = response.json()["task"]
        assert updated["description"] == "Updated"
        assert updated["tags"] == ["x"]
        assert task_repository.get(test_user_id, task["id"]).description == "Updated"

    def test_update_missing_task(self, test_client):
        response = test_client.patch("/tasks/missing", json={"title": "x"})
        assert response.status_code == 404
        assert response.json()["error"] == "NotFound"

    def test_delete_is_idempotent(self, test_client, task_repository, test_user_id):
        task = _create(test_client)

        first = test_client.delete(f"/tasks/{task['id']}")
        second = test_client.delete(f"/tasks/{task['id']}")

        assert first.json() == {"deleted": True}
        assert second.status_code == 200
        assert second.json() == {"deleted": False}
        assert task_repository.get(test_user_id, task["id"]) is None

    def test_move_task(self, test_client):
        task = _create(test_client)

        moved = test_client.post(f"/tasks/{task['id']}/move", json={"status": "done"})
        again = test_client.post(f"/tasks/{task['id']}/move", json={"status": "done"})

        assert moved.json()["task"]["status"] == "done"
        assert again.json()["changed"] is False
        assert [t["id"] for t in _column(test_client, "done")["tasks"]] == [task["id"]]

    def test_move_to_invalid_status(self, test_client):
        task = _create(test_client)
        response = test_client.post(f"/tasks/{task['id']}/move", json={"status": "someday"})
        assert response.status_code == 422

    def test_archive_and_unarchive(self, test_client, task_repository, test_user_id):
        task = _create(test_client, status="done")

        archived = test_client.post(f"/tasks/{task['id']}/archive").json()["task"]
        assert archived["archived"] is True
        assert archived["archived_at"] is not None
        assert _column(test_client, "done")["tasks"] == []
        assert [t["id"] for t in test_client.get("/tasks/archived").json()["tasks"]] == [task["id"]]
        assert task_repository.list_archived(test_user_id)[0].id == task["id"]

        restored = test_client.post(f"/tasks/{task['id']}/unarchive").json()["task"]
        assert restored["archived"] is False
        assert restored["archived_at"] is None
        assert [t["id"] for t in _column(test_client, "done")["tasks"]] == [task["id"]]

    def test_store_failure_rolls_back_and_returns_502(self, test_client):
        task = _create(test_client, "Original")

        with patch(
            "aikanban.database.store.RepositoryTaskStore.update",
            side_effect=RequestFailed("Task store rejected update: OperationalError"),
        ):
            response = test_client.patch(f"/tasks/{task['id']}", json={"title": "Changed"})

        assert response.status_code == 502
        titles = [t["title"] for t in _column(test_client, "backlog")["tasks"]]
        assert titles == ["Original"]


class TestAIEndpoints:
    """Test endpoints backed by the (mocked) Mistral client."""

    def test_enhance_then_apply(self, test_client, mock_ai_client):
        task = _create(test_client, "Write report", tags=["work"])
        mock_ai_client.complete.return_value = (
            '```json\n{"improvedDescription": "Draft and review the Q3 report",'
            ' "recommendedTags": ["reports"], "recommendedPriority": "high"}\n```'
        )

        suggestion = test_client.post(f"/tasks/{task['id']}/enhance")
        assert suggestion.status_code == 200
        body = suggestion.json()
        assert body["improvedDescription"] == "Draft and review the Q3 report"

        applied = test_client.post(f"/tasks/{task['id']}/enhance/apply", json={"suggestion": body})
        assert applied.status_code == 200
        enhanced = applied.json()["task"]
        assert enhanced["ai_enhanced"] is True
        assert enhanced["tags"] == ["work", "reports"]
        assert enhanced["ai_suggested_tags"] == ["reports"]
        assert enhanced["priority"] == "high"

    def test_enhance_unknown_task(self, test_client, mock_ai_client):
        response = test_client.post("/tasks/missing/enhance")
        assert response.status_code == 404
        mock_ai_client.complete.assert_not_called()

    def test_missing_api_key_returns_503(self, test_client, mock_ai_client):
        task = _create(test_client)
        mock_ai_client.complete.side_effect = ConfigurationError("Mistral API key is not configured")

        response = test_client.post(f"/tasks/{task['id']}/enhance")

        assert response.status_code == 503

    def test_upstream_error_returns_502(self, test_client, mock_ai_client):
        task = _create(test_client)
        mock_ai_client.complete.side_effect = RequestFailed("Mistral API error: 429", status_code=429)

        response = test_client.post(f"/tasks/{task['id']}/enhance")

        assert response.status_code == 502
        assert response.json()["upstream_status"] == 429

    def test_malformed_output_returns_502(self, test_client, mock_ai_client):
        task = _create(test_client)
        mock_ai_client.complete.return_value = "I think this task is great!"

        response = test_client.post(f"/tasks/{task['id']}/enhance")

        assert response.status_code == 502
        assert response.json()["error"] == "MalformedResponse"

    def test_parse_creates_task(self, test_client, mock_ai_client):
        mock_ai_client.complete.return_value = '{"title": "Call the dentist", "priority": "high", "tags": ["health"]}'

        response = test_client.post("/tasks/parse", json={"text": "call the dentist asap"})

        assert response.status_code == 200
        body = response.json()
        assert body["parsed"]["title"] == "Call the dentist"
        assert body["task"]["priority"] == "high"
        assert [t["title"] for t in _column(test_client, "backlog")["tasks"]] == ["Call the dentist"]

    def test_parse_without_create(self, test_client, mock_ai_client):
        mock_ai_client.complete.return_value = '{"title": "Call the dentist"}'

        body = test_client.post("/tasks/parse", json={"text": "dentist", "create": False}).json()

        assert body["task"] is None
        assert _column(test_client, "backlog")["tasks"] == []

    def test_parse_without_title_returns_422(self, test_client, mock_ai_client):
        mock_ai_client.complete.return_value = '{"description": "no title here"}'
        response = test_client.post("/tasks/parse", json={"text": "hmm"})
        assert response.status_code == 422

    def test_suggest_tags(self, test_client, mock_ai_client):
        mock_ai_client.complete.return_value = '```\n{"tags": ["home", "chores"]}\n```'
        response = test_client.post("/tasks/suggest-tags", json={"title": "Clean the garage"})
        assert response.json() == {"tags": ["home", "chores"]}

    def test_generate_subtasks_and_create(self, test_client, mock_ai_client):
        task = _create(test_client, "Plan offsite")
        mock_ai_client.complete.return_value = json.dumps({
            "subtasks": [{"title": "Book venue", "priority": "high"}, {"title": "Send invites"}]
        })

        body = test_client.post(f"/tasks/{task['id']}/subtasks", json={"create": True}).json()

        assert [s["title"] for s in body["subtasks"]] == ["Book venue", "Send invites"]
        assert [t["title"] for t in body["created"]] == ["Book venue", "Send invites"]
        assert len(_column(test_client, "backlog")["tasks"]) == 3

    def test_insights_with_synthesized_summary(self, test_client, mock_ai_client):
        done = _create(test_client, "Finished", status="done")
        _create(test_client, "Open")
        mock_ai_client.complete.side_effect = [
            '{"insights": [{"type": "recommendation", "title": "Keep going", "severity": "low"}]}',
            json.dumps({"recommendations": [
                {"taskId": done["id"], "recommendedPriority": "low"},
                {"taskId": "ghost", "recommendedPriority": "high"},
            ]}),
        ]

        response = test_client.get("/insights")

        assert response.status_code == 200
        body = response.json()
        summary = body["productivity"]["summary"]
        assert summary["totalTasks"] == 2
        assert summary["completionRate"] == "50%"
        assert summary["averageTimeInProgress"] == "N/A"
        assert [i["title"] for i in body["productivity"]["insights"]] == ["Keep going"]
        assert [r["taskId"] for r in body["priorities"]["recommendations"]] == [done["id"]]

    def test_apply_recommendations(self, test_client):
        task = _create(test_client, priority="low")

        response = test_client.post("/recommendations/apply", json={"recommendations": [
            {"taskId": task["id"], "recommendedPriority": "high", "reason": "due soon"},
            {"taskId": "ghost", "recommendedPriority": "high"},
        ]})

        assert response.json() == {"applied": [task["id"]], "ignored": ["ghost"]}
        assert _column(test_client, "backlog")["tasks"][0]["priority"] == "high"

    def test_archive_categories(self, test_client, mock_ai_client):
        task = _create(test_client, "Old work")
        test_client.post(f"/tasks/{task['id']}/archive")
        mock_ai_client.complete.return_value = json.dumps({
            "categories": [{"name": "Work", "description": "Work items", "taskIds": [task["id"], "ghost"]}]
        })

        body = test_client.get("/archive/categories").json()

        assert body["categories"][0]["name"] == "Work"
        assert body["categories"][0]["taskIds"] == [task["id"]]

    def test_archive_categories_empty_archive_makes_no_call(self, test_client, mock_ai_client):
        assert test_client.get("/archive/categories").json() == {"categories": []}
        mock_ai_client.complete.assert_not_called()


class TestAuthEndpoints:
    """Test the auth flow with real bearer tokens."""

    def test_signup_session_signout(self, auth_client):
        signup = auth_client.post(
            "/auth/signup", json={"email": "new@example.com", "password": "password1", "name": "New"}
        )
        assert signup.status_code == 201
        token = signup.json()["access_token"]
        headers = {"Authorization": f"Bearer {token}"}

        session = auth_client.get("/auth/session", headers=headers)
        assert session.status_code == 200
        assert session.json()["user"]["email"] == "new@example.com"

        assert auth_client.post("/tasks", json={"title": "Mine"}, headers=headers).status_code == 201

        signout = auth_client.post("/auth/signout", headers=headers)
        assert signout.json() == {"signed_out": True}
        assert auth_client.get("/auth/session", headers=headers).status_code == 401
        assert auth_client.get("/tasks", headers=headers).status_code == 401

    def test_signin(self, auth_client, test_password):
        response = auth_client.post("/auth/signin", json={"email": "test@example.com", "password": test_password})
        assert response.status_code == 200
        assert response.json()["token_type"] == "bearer"

    def test_signin_wrong_password(self, auth_client):
        response = auth_client.post("/auth/signin", json={"email": "test@example.com", "password": "nope-nope"})
        assert response.status_code == 401

    def test_tasks_require_auth(self, auth_client):
        assert auth_client.get("/tasks").status_code == 401
        assert auth_client.get("/tasks", headers={"Authorization": "Bearer garbage"}).status_code == 401

    def test_boards_are_per_user(self, auth_client, test_password):
        other = auth_client.post("/auth/signup", json={"email": "other@example.com", "password": "password1"})
        mine = auth_client.post("/auth/signin", json={"email": "test@example.com", "password": test_password})
        other_headers = {"Authorization": f"Bearer {other.json()['access_token']}"}
        my_headers = {"Authorization": f"Bearer {mine.json()['access_token']}"}

        auth_client.post("/tasks", json={"title": "Other's task"}, headers=other_headers)

        board = auth_client.get("/tasks", headers=my_headers).json()
        assert all(column["tasks"] == [] for column in board["columns"])
