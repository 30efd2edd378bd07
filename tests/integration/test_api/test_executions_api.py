"""
API tests

The app runs without its lifespan handler and with the engine dependency
pointed at the in-memory engine from conftest, so no MongoDB is needed.
"""
import pytest
from fastapi.testclient import TestClient

from flowengine.api.deps import get_engine_dep
from flowengine.main import create_app


@pytest.fixture
def client(engine):
    app = create_app(with_lifespan=False)
    app.dependency_overrides[get_engine_dep] = lambda: engine
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def paused_execution(client, manager_review_workflow, request_context):
    response = client.post("/api/v1/executions", json={
        "workflowId": "WF-manager-review",
        "context": request_context,
    })
    assert response.status_code == 201
    return response.json()["executionId"]


class TestExecutions:

    def test_start_runs_to_completion(self, client, auto_approve_workflow, request_context, operations):
        response = client.post("/api/v1/executions", json={
            "workflowId": "WF-auto-approve",
            "context": request_context,
        })

        assert response.status_code == 201
        assert response.json()["status"] == "COMPLETED"
        assert operations.calls == [("approve_request", "REQ-1", None)]

    def test_status_and_tasks_of_paused_execution(self, client, paused_execution):
        status = client.get(f"/api/v1/executions/{paused_execution}").json()
        assert status["status"] == "PAUSED"
        assert status["current_node_id"] == "assign"

        [task] = client.get(f"/api/v1/executions/{paused_execution}/tasks").json()["items"]
        assert task["status"] == "pending"
        assert task["allowed_actions"] == ["approve", "reject"]

    def test_completing_task_resumes(self, client, paused_execution, operations):
        [task] = client.get(f"/api/v1/executions/{paused_execution}/tasks").json()["items"]

        response = client.post(f"/api/v1/tasks/{task['task_id']}/complete", json={
            "actorId": "U-mgr",
            "action": "reject",
            "notes": "Not this quarter",
        })

        assert response.status_code == 200
        assert response.json()["status"] == "COMPLETED"
        assert operations.calls == [("reject_request", "REQ-1", "Declined by manager")]

        history = client.get(f"/api/v1/executions/{paused_execution}/history").json()["items"]
        assert history[-1]["event_type"] == "EXECUTION_COMPLETED"

    def test_disallowed_action_is_rejected(self, client, paused_execution):
        [task] = client.get(f"/api/v1/executions/{paused_execution}/tasks").json()["items"]

        response = client.post(f"/api/v1/tasks/{task['task_id']}/complete", json={"action": "escalate"})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_cancel(self, client, paused_execution):
        response = client.post(f"/api/v1/executions/{paused_execution}/cancel", json={"reason": "Duplicate"})
        assert response.json()["status"] == "CANCELLED"

        again = client.post(f"/api/v1/executions/{paused_execution}/cancel", json={})
        assert again.status_code == 409
        assert again.json()["error"]["code"] == "INVALID_STATE"

    def test_unknown_execution(self, client):
        response = client.get("/api/v1/executions/WFX-missing")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "EXECUTION_NOT_FOUND"
        assert response.headers["X-Correlation-Id"]

    def test_trigger_without_match(self, client):
        response = client.post("/api/v1/executions/trigger", json={"triggerType": "pr_created"})

        assert response.status_code == 200
        assert response.json() == {"executionId": None, "status": None}


class TestWorkflowsAndSweep:

    def test_validate_condition(self, client):
        response = client.post("/api/v1/workflows/validate-condition", json={"expression": "a > 1 && b"})
        assert response.json() == {"valid": True, "error": None, "variables": ["a", "b"]}

    def test_invalid_definition_is_rejected(self, client):
        response = client.post("/api/v1/workflows", json={
            "id": "WF-bad",
            "rootNodeId": "nope",
            "nodes": [{"id": "a", "type": "action", "config": {"action": "AUTO_APPROVE"}}],
        })

        assert response.status_code == 400
        body = response.json()["error"]
        assert body["code"] == "WORKFLOW_VALIDATION_ERROR"
        assert "MISSING_ROOT" in [issue["code"] for issue in body["details"]["issues"]]

    def test_sweep_expires_overdue_task(self, client, paused_execution, clock):
        [task] = client.get(f"/api/v1/executions/{paused_execution}/tasks").json()["items"]
        clock.advance(hours=25)

        report = client.post("/api/v1/sla/sweep").json()

        assert report["expired"] == [task["task_id"]]
        assert report["resumed"] == [paused_execution]
