from datetime import UTC, datetime, timedelta

import pytest

from publishdesk.domain.models.user import UserRole
from publishdesk.integrations import n8n_client

TODAY = datetime.now(UTC).replace(hour=8, minute=0, second=0, microsecond=0)


def _iso(value: datetime) -> str:
    return value.isoformat().replace("+00:00", "Z")


ENGINE_WORKFLOWS = [
    {"id": "wf-1", "name": "SOP-05 sop-05-publish-content", "active": True, "tags": []},
    {"id": "wf-2", "name": "Anime news", "active": True, "tags": [{"name": "sop-01-ann-rss"}]},
    {"id": "wf-3", "name": "sop-13-weekly-report", "active": False, "tags": []},
]

EXECUTIONS = [
    {
        "id": "ex-3",
        "workflowId": "wf-2",
        "status": "error",
        "startedAt": _iso(TODAY),
        "stoppedAt": _iso(TODAY + timedelta(seconds=2)),
        "data": {"resultData": {"error": {"message": "feed unreachable"}}},
    },
    {
        "id": "ex-2",
        "workflowId": "wf-1",
        "status": "success",
        "startedAt": _iso(TODAY),
        "stoppedAt": _iso(TODAY + timedelta(seconds=5)),
    },
    {
        "id": "ex-1",
        "workflowId": "wf-1",
        "status": "success",
        "startedAt": _iso(TODAY - timedelta(days=2)),
        "stoppedAt": _iso(TODAY - timedelta(days=2) + timedelta(seconds=3)),
    },
]


@pytest.fixture
def engine(monkeypatch):
    calls = {"executions": [], "toggles": []}

    def fake_executions(*, workflow_id=None, limit=20, status=None):
        calls["executions"].append({"workflow_id": workflow_id, "limit": limit, "status": status})
        items = [item for item in EXECUTIONS if workflow_id is None or item["workflowId"] == workflow_id]
        return {"executions": items, "total": len(items), "hasMore": False}

    def fake_toggle(workflow_id, active):
        calls["toggles"].append((workflow_id, active))
        return {"id": workflow_id, "name": "SOP-05 sop-05-publish-content", "active": active, "updatedAt": "2026-01-01T00:00:00Z"}

    monkeypatch.setattr(n8n_client, "list_workflows", lambda: list(ENGINE_WORKFLOWS))
    monkeypatch.setattr(n8n_client, "list_executions", fake_executions)
    monkeypatch.setattr(n8n_client, "toggle_workflow", fake_toggle)
    return calls


def test_overview_merges_definitions_with_engine_state(client, operator, engine):
    _, headers = operator

    response = client.get("/workflows", headers=headers)

    assert response.status_code == 200
    body = response.json()
    by_id = {item["id"]: item for item in body["workflows"]}
    assert len(by_id) == 21

    publish = by_id["sop-05-publish-content"]["runtime"]
    assert publish["status"] == "active"
    assert publish["n8nWorkflowId"] == "wf-1"
    assert publish["executionStats"] == {"total": 2, "success": 2, "failed": 0, "todayCount": 1}
    assert publish["lastExecution"]["duration"] == 5000

    rss = by_id["sop-01-ann-rss"]["runtime"]
    assert rss["status"] == "error"
    assert rss["lastExecution"]["error"] == "feed unreachable"

    assert by_id["sop-13-weekly-report"]["runtime"]["status"] == "inactive"
    assert by_id["sop-08-auto-reply"]["runtime"]["isConfigured"] is False

    assert body["stats"] == {
        "total": 21,
        "active": 1,
        "inactive": 19,
        "error": 1,
        "todayExecutions": 2,
        "successRate": 67,
    }


def test_overview_phase_filter(client, operator, engine):
    _, headers = operator

    response = client.get("/workflows", params={"phase": "content_distribution"}, headers=headers)

    assert {item["phase"] for item in response.json()["workflows"]} == {"content_distribution"}
    assert client.get("/workflows", params={"phase": "nope"}, headers=headers).status_code == 400


def test_engine_outage_degrades_to_inactive(client, operator, monkeypatch):
    _, headers = operator
    monkeypatch.setattr(n8n_client, "list_workflows", lambda: [])
    monkeypatch.setattr(
        n8n_client, "list_executions", lambda **kwargs: {"executions": [], "total": 0, "hasMore": False}
    )

    body = client.get("/workflows", headers=headers).json()

    assert body["stats"]["inactive"] == 21
    assert body["stats"]["successRate"] == 100


def test_executions_for_definition(client, operator, engine):
    _, headers = operator

    response = client.get(
        "/workflows/sop-05-publish-content/executions", params={"limit": 5, "status": "success"}, headers=headers
    )

    assert response.status_code == 200
    assert [item["id"] for item in response.json()["executions"]] == ["ex-2", "ex-1"]
    assert engine["executions"][-1] == {"workflow_id": "wf-1", "limit": 5, "status": "success"}

    unconfigured = client.get("/workflows/sop-08-auto-reply/executions", headers=headers).json()
    assert unconfigured["executions"] == []
    assert unconfigured["message"]

    assert client.get("/workflows/unknown/executions", headers=headers).status_code == 404
    assert (
        client.get("/workflows/sop-05-publish-content/executions", params={"status": "bogus"}, headers=headers).status_code
        == 400
    )


def test_toggle_requires_admin(client, operator, make_user, engine):
    _, operator_headers = operator
    _, admin_headers = make_user(email="admin@publishdesk.test", role=UserRole.ADMIN)

    forbidden = client.post("/workflows/sop-05-publish-content/toggle", json={"active": False}, headers=operator_headers)
    assert forbidden.status_code == 403

    response = client.post("/workflows/sop-05-publish-content/toggle", json={"active": False}, headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["active"] is False
    assert engine["toggles"] == [("wf-1", False)]


def test_toggle_engine_failure_is_500(client, make_user, engine, monkeypatch):
    _, admin_headers = make_user(email="admin@publishdesk.test", role=UserRole.ADMIN)
    monkeypatch.setattr(n8n_client, "toggle_workflow", lambda workflow_id, active: None)

    response = client.post("/workflows/wf-9/toggle", json={"active": True}, headers=admin_headers)

    assert response.status_code == 500
