"""HTTP client for the n8n workflow engine.

Webhook dispatch raises ``WorkflowDispatchError`` on failure so callers can
roll back. The REST API helpers used by the dashboard degrade to empty
results instead, because the engine being unreachable must not break page
rendering.
"""

import json
import logging
from typing import Any

import httpx

from publishdesk.core.config import settings

logger = logging.getLogger(__name__)


class WorkflowDispatchError(RuntimeError):
    error_code: str = "workflow_dispatch_failed"

    def __init__(self, workflow: str, message: str) -> None:
        super().__init__(f"Workflow {workflow} failed: {message}")
        self.workflow = workflow


def _api_url(endpoint: str) -> str:
    return f"{settings.n8n_webhook_url.rstrip('/')}/api/v1{endpoint}"


def _api_headers() -> dict[str, str]:
    headers = {"Content-Type": "application/json"}
    if settings.n8n_api_key:
        headers["X-N8N-API-KEY"] = settings.n8n_api_key
    return headers


def trigger_workflow(workflow: str, payload: dict[str, Any]) -> Any | None:
    url = f"{settings.n8n_webhook_url.rstrip('/')}/webhook/{workflow}"
    try:
        with httpx.Client(timeout=settings.n8n_timeout_seconds) as client:
            response = client.post(url, json=payload)
    except httpx.HTTPError as exc:
        raise WorkflowDispatchError(workflow, str(exc)) from exc

    if response.status_code >= 400:
        raise WorkflowDispatchError(workflow, response.text or response.reason_phrase)

    if not response.text:
        return None
    try:
        return response.json()
    except json.JSONDecodeError:
        logger.warning("workflow_non_json_response workflow=%s", workflow)
        return None


def _api_request(method: str, endpoint: str, *, params: dict | None = None) -> dict:
    with httpx.Client(timeout=settings.n8n_timeout_seconds) as client:
        response = client.request(method, _api_url(endpoint), params=params, headers=_api_headers())
    response.raise_for_status()
    return response.json()


def list_workflows() -> list[dict]:
    try:
        return list(_api_request("GET", "/workflows").get("data") or [])
    except (httpx.HTTPError, ValueError):
        logger.exception("n8n_workflows_fetch_failed")
        return []


def list_executions(*, workflow_id: str | None = None, limit: int = 20, status: str | None = None) -> dict:
    params: dict[str, Any] = {"limit": limit}
    if workflow_id:
        params["workflowId"] = workflow_id
    if status:
        params["status"] = status
    try:
        data = _api_request("GET", "/executions", params=params)
    except (httpx.HTTPError, ValueError):
        logger.exception("n8n_executions_fetch_failed workflow_id=%s", workflow_id)
        return {"executions": [], "total": 0, "hasMore": False}

    executions = list(data.get("data") or [])
    return {"executions": executions, "total": len(executions), "hasMore": bool(data.get("nextCursor"))}


def toggle_workflow(n8n_workflow_id: str, active: bool) -> dict | None:
    action = "activate" if active else "deactivate"
    try:
        return _api_request("POST", f"/workflows/{n8n_workflow_id}/{action}")
    except (httpx.HTTPError, ValueError):
        logger.exception("n8n_workflow_toggle_failed workflow_id=%s action=%s", n8n_workflow_id, action)
        return None
