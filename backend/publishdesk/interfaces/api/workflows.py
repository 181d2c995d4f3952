import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel

from publishdesk.application.services.workflow_service import (
    list_workflow_overview,
    match_engine_workflow,
    resolve_engine_workflow_id,
)
from publishdesk.core.registry import Registry, get_registry
from publishdesk.domain.models.user import User, UserRole
from publishdesk.integrations import n8n_client
from publishdesk.interfaces.api.deps import get_current_user, require_roles

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/workflows", tags=["workflows"])


class WorkflowToggleRequest(BaseModel):
    active: bool


@router.get("", status_code=status.HTTP_200_OK)
def list_workflows(
    phase: str | None = Query(default=None),
    registry: Registry = Depends(get_registry),
    current_user: User = Depends(get_current_user),
) -> dict:
    if phase and phase not in registry.phases:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unknown phase {phase}")
    return list_workflow_overview(registry, phase=phase)


@router.get("/{workflow_id}/executions", status_code=status.HTTP_200_OK)
def list_workflow_executions(
    workflow_id: str,
    limit: int = Query(default=20, ge=1, le=100),
    execution_status: str | None = Query(default=None, alias="status", pattern="^(success|error|running|waiting)$"),
    registry: Registry = Depends(get_registry),
    current_user: User = Depends(get_current_user),
) -> dict:
    if registry.workflow(workflow_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Workflow not found")

    matched = match_engine_workflow(workflow_id, n8n_client.list_workflows())
    if matched is None:
        return {
            "executions": [],
            "total": 0,
            "hasMore": False,
            "message": "Workflow is not configured in n8n yet",
        }
    return n8n_client.list_executions(workflow_id=matched.get("id"), limit=limit, status=execution_status)


@router.post("/{workflow_id}/toggle", status_code=status.HTTP_200_OK)
def toggle_workflow(
    workflow_id: str,
    payload: WorkflowToggleRequest,
    registry: Registry = Depends(get_registry),
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
) -> dict:
    engine_workflow_id = resolve_engine_workflow_id(registry, workflow_id)
    if engine_workflow_id is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Workflow is not configured in n8n")

    result = n8n_client.toggle_workflow(engine_workflow_id, payload.active)
    if result is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to toggle workflow, check the n8n connection and API key",
        )
    logger.info(
        "workflow_toggled workflow_id=%s engine_workflow_id=%s active=%s user_id=%s",
        workflow_id,
        engine_workflow_id,
        payload.active,
        current_user.id,
    )
    return {
        "id": result.get("id"),
        "name": result.get("name"),
        "active": result.get("active"),
        "updatedAt": result.get("updatedAt"),
    }
