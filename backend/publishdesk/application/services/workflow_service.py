"""Runtime view of the automation workflows.

The registry holds the static definitions; the n8n REST API supplies which of
them are deployed, whether they are active, and their recent executions.
"""

import logging
from datetime import UTC, datetime, time

from publishdesk.core.registry import Registry, WorkflowDefinition
from publishdesk.integrations import n8n_client

logger = logging.getLogger(__name__)

RECENT_EXECUTIONS_LIMIT = 100


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def match_engine_workflow(definition_id: str, engine_workflows: list[dict]) -> dict | None:
    needle = definition_id.lower()
    for workflow in engine_workflows:
        if needle in str(workflow.get("name") or "").lower():
            return workflow
        tags = workflow.get("tags") or []
        if any(str(tag.get("name") or "").lower() == needle for tag in tags if isinstance(tag, dict)):
            return workflow
    return None


def _last_execution(execution: dict) -> dict:
    started_at = _parse_timestamp(execution.get("startedAt"))
    stopped_at = _parse_timestamp(execution.get("stoppedAt"))
    duration_ms = None
    if started_at and stopped_at:
        duration_ms = int((stopped_at - started_at).total_seconds() * 1000)
    error = (((execution.get("data") or {}).get("resultData") or {}).get("error") or {}).get("message")
    return {
        "id": execution.get("id"),
        "status": execution.get("status"),
        "startedAt": execution.get("startedAt"),
        "stoppedAt": execution.get("stoppedAt"),
        "duration": duration_ms,
        "error": error,
    }


def build_runtime_state(
    definition: WorkflowDefinition,
    engine_workflows: list[dict],
    executions: list[dict],
    *,
    now: datetime | None = None,
) -> dict:
    start_of_day = datetime.combine((now or datetime.now(UTC)).date(), time.min, tzinfo=UTC)
    matched = match_engine_workflow(definition.id, engine_workflows)
    own_executions = [item for item in executions if matched and item.get("workflowId") == matched.get("id")]

    today_count = 0
    for execution in own_executions:
        started_at = _parse_timestamp(execution.get("startedAt"))
        if started_at and started_at >= start_of_day:
            today_count += 1

    last = own_executions[0] if own_executions else None
    runtime_status = "inactive"
    if matched and matched.get("active"):
        last_started = _parse_timestamp(last.get("startedAt")) if last else None
        if last and last.get("status") == "error" and last_started and last_started >= start_of_day:
            runtime_status = "error"
        else:
            runtime_status = "active"

    return {
        "workflowId": definition.id,
        "n8nWorkflowId": matched.get("id") if matched else None,
        "status": runtime_status,
        "isConfigured": matched is not None,
        "lastExecution": _last_execution(last) if last else None,
        "executionStats": {
            "total": len(own_executions),
            "success": sum(1 for item in own_executions if item.get("status") == "success"),
            "failed": sum(1 for item in own_executions if item.get("status") == "error"),
            "todayCount": today_count,
        },
    }


def runtime_states(registry: Registry) -> dict[str, dict]:
    engine_workflows = n8n_client.list_workflows()
    executions = n8n_client.list_executions(limit=RECENT_EXECUTIONS_LIMIT)["executions"]
    return {
        definition.id: build_runtime_state(definition, engine_workflows, executions)
        for definition in registry.workflows
    }


def summarize(states: dict[str, dict], *, total: int) -> dict:
    counts = {"active": 0, "inactive": 0, "error": 0}
    today_executions = 0
    executions_total = 0
    executions_success = 0
    for state in states.values():
        counts[state["status"]] += 1
        today_executions += state["executionStats"]["todayCount"]
        executions_total += state["executionStats"]["total"]
        executions_success += state["executionStats"]["success"]
    return {
        "total": total,
        **counts,
        "todayExecutions": today_executions,
        "successRate": round(executions_success / executions_total * 100) if executions_total else 100,
    }


def list_workflow_overview(registry: Registry, *, phase: str | None = None) -> dict:
    states = runtime_states(registry)
    workflows = []
    for definition in registry.workflows:
        if phase and definition.phase != phase:
            continue
        workflows.append(
            {
                "id": definition.id,
                "sopId": definition.sop_id,
                "name": definition.name,
                "description": definition.description,
                "phase": definition.phase,
                "triggerType": definition.trigger_type,
                "triggerConfig": definition.trigger_config,
                "runtime": states[definition.id],
            }
        )
    return {"workflows": workflows, "stats": summarize(states, total=len(registry.workflows))}


def resolve_engine_workflow_id(registry: Registry, workflow_id: str) -> str | None:
    if registry.workflow(workflow_id) is None:
        return workflow_id
    matched = match_engine_workflow(workflow_id, n8n_client.list_workflows())
    return matched.get("id") if matched else None
