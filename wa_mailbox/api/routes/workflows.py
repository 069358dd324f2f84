"""Workflow automation endpoints."""

from datetime import datetime
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from wa_mailbox.api.deps import require_feature, require_tenant_context, require_write_access
from wa_mailbox.api.schemas import PartialUpdate
from wa_mailbox.domain.services.workflow_service import WorkflowService
from wa_mailbox.persistence.database import get_db
from wa_mailbox.persistence.models.tenant import User

router = APIRouter(dependencies=[Depends(require_feature("workflows"))])


class WorkflowCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    trigger_type: str
    trigger_conditions: dict[str, Any] = {}
    actions: list[dict[str, Any]]
    is_active: bool = True


class WorkflowUpdate(PartialUpdate):
    not_null = ("name", "trigger_type", "trigger_conditions", "actions", "is_active")

    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    trigger_type: str | None = None
    trigger_conditions: dict[str, Any] | None = None
    actions: list[dict[str, Any]] | None = None
    is_active: bool | None = None


class WorkflowResponse(BaseModel):
    id: int
    name: str
    description: str | None
    trigger_type: str
    trigger_conditions: dict[str, Any] | None
    actions: list[dict[str, Any]]
    is_active: bool
    execution_count: int
    last_executed_at: datetime | None
    created_at: datetime

    class Config:
        from_attributes = True


class RunRequest(BaseModel):
    contact_id: int
    context: dict[str, Any] = {}


class ExecutionResponse(BaseModel):
    id: int
    workflow_id: int
    contact_id: int | None
    status: str
    actions_performed: list[dict[str, Any]] | None
    error_message: str | None
    executed_at: datetime

    class Config:
        from_attributes = True


def _not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Workflow not found")


@router.get("", response_model=list[WorkflowResponse])
async def list_workflows(
    tenant_id: Annotated[int, Depends(require_tenant_context)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> list[WorkflowResponse]:
    workflows = await WorkflowService(db).list_workflows(tenant_id)
    return [WorkflowResponse.model_validate(w) for w in workflows]


@router.post("", response_model=WorkflowResponse, status_code=status.HTTP_201_CREATED)
async def create_workflow(
    body: WorkflowCreate,
    access: Annotated[tuple[User, int], Depends(require_write_access)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> WorkflowResponse:
    _, tenant_id = access
    try:
        workflow = await WorkflowService(db).create_workflow(tenant_id, **body.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return WorkflowResponse.model_validate(workflow)


@router.get("/{workflow_id}", response_model=WorkflowResponse)
async def get_workflow(
    workflow_id: int,
    tenant_id: Annotated[int, Depends(require_tenant_context)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> WorkflowResponse:
    workflow = await WorkflowService(db).get_workflow(tenant_id, workflow_id)
    if workflow is None:
        raise _not_found()
    return WorkflowResponse.model_validate(workflow)


@router.put("/{workflow_id}", response_model=WorkflowResponse)
async def update_workflow(
    workflow_id: int,
    body: WorkflowUpdate,
    access: Annotated[tuple[User, int], Depends(require_write_access)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> WorkflowResponse:
    _, tenant_id = access
    try:
        workflow = await WorkflowService(db).update_workflow(
            tenant_id, workflow_id, **body.model_dump(exclude_unset=True)
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if workflow is None:
        raise _not_found()
    return WorkflowResponse.model_validate(workflow)


@router.post("/{workflow_id}/toggle", response_model=WorkflowResponse)
async def toggle_workflow(
    workflow_id: int,
    access: Annotated[tuple[User, int], Depends(require_write_access)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> WorkflowResponse:
    _, tenant_id = access
    workflow = await WorkflowService(db).toggle_workflow(tenant_id, workflow_id)
    if workflow is None:
        raise _not_found()
    return WorkflowResponse.model_validate(workflow)


@router.delete("/{workflow_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_workflow(
    workflow_id: int,
    access: Annotated[tuple[User, int], Depends(require_write_access)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> None:
    _, tenant_id = access
    if not await WorkflowService(db).delete_workflow(tenant_id, workflow_id):
        raise _not_found()


@router.post("/{workflow_id}/run", response_model=ExecutionResponse)
async def run_workflow(
    workflow_id: int,
    body: RunRequest,
    access: Annotated[tuple[User, int], Depends(require_write_access)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ExecutionResponse:
    """Run a workflow against one contact, ignoring its trigger and conditions."""
    _, tenant_id = access
    execution = await WorkflowService(db).run_manually(tenant_id, workflow_id, body.contact_id, body.context)
    if execution is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Workflow or contact not found")
    return ExecutionResponse.model_validate(execution)


@router.get("/{workflow_id}/executions", response_model=list[ExecutionResponse])
async def list_executions(
    workflow_id: int,
    tenant_id: Annotated[int, Depends(require_tenant_context)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> list[ExecutionResponse]:
    service = WorkflowService(db)
    if await service.get_workflow(tenant_id, workflow_id) is None:
        raise _not_found()
    return [ExecutionResponse.model_validate(e) for e in await service.list_executions(tenant_id, workflow_id)]
