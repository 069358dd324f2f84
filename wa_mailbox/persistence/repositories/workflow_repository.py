"""Workflow repositories."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from wa_mailbox.persistence.models.workflow import Workflow, WorkflowExecution
from wa_mailbox.persistence.repositories.base import BaseRepository


class WorkflowRepository(BaseRepository[Workflow]):
    """Repository for Workflow entities."""

    def __init__(self, session: AsyncSession):
        super().__init__(Workflow, session)

    async def list_active_by_trigger(self, tenant_id: int, trigger_type: str) -> list[Workflow]:
        stmt = (
            select(Workflow)
            .where(
                Workflow.tenant_id == tenant_id,
                Workflow.trigger_type == trigger_type,
                Workflow.is_active.is_(True),
            )
            .order_by(Workflow.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())


class WorkflowExecutionRepository(BaseRepository[WorkflowExecution]):
    """Repository for WorkflowExecution entities."""

    def __init__(self, session: AsyncSession):
        super().__init__(WorkflowExecution, session)

    async def list_for_workflow(self, tenant_id: int, workflow_id: int, limit: int = 50) -> list[WorkflowExecution]:
        stmt = (
            select(WorkflowExecution)
            .where(
                WorkflowExecution.tenant_id == tenant_id,
                WorkflowExecution.workflow_id == workflow_id,
            )
            .order_by(WorkflowExecution.executed_at.desc(), WorkflowExecution.id.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
