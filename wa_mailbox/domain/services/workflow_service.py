"""Workflow automation: trigger matching and action execution."""

import logging
from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from wa_mailbox.persistence.models.contact import CONTACT_STAGES, Contact
from wa_mailbox.persistence.models.deal import NOTE_TYPES, Note
from wa_mailbox.persistence.models.workflow import (
    ACTION_TYPES,
    TRIGGER_TYPES,
    Workflow,
    WorkflowExecution,
)
from wa_mailbox.persistence.repositories.contact_repository import ContactRepository
from wa_mailbox.persistence.repositories.tag_repository import TagRepository
from wa_mailbox.persistence.repositories.workflow_repository import (
    WorkflowExecutionRepository,
    WorkflowRepository,
)

logger = logging.getLogger(__name__)


class WorkflowActionError(Exception):
    """Raised when a workflow action cannot be performed."""


def conditions_match(workflow: Workflow, context: dict[str, Any]) -> bool:
    """Check a workflow's trigger conditions against the event context.

    Context keys by trigger:
        new_message: ``message_body``
        stage_change: ``from_stage``, ``to_stage``
        tag_added / tag_removed: ``tag_id``
        lead_score_change: ``old_score``, ``new_score``

    Args:
        workflow: Workflow to check
        context: Event data

    Returns:
        True if every configured condition holds
    """
    conditions = workflow.trigger_conditions or {}
    trigger = workflow.trigger_type

    if trigger == "new_message":
        keyword = conditions.get("keyword")
        if keyword:
            body = (context.get("message_body") or "").lower()
            return str(keyword).lower() in body
        return True

    if trigger == "stage_change":
        for key in ("from_stage", "to_stage"):
            expected = conditions.get(key)
            if expected and str(expected).lower() != str(context.get(key) or "").lower():
                return False
        return True

    if trigger in ("tag_added", "tag_removed"):
        expected = conditions.get("tag_id")
        if expected is not None and expected != "":
            return str(expected) == str(context.get("tag_id"))
        return True

    if trigger == "lead_score_change":
        min_score = conditions.get("min_score")
        if min_score is not None and min_score != "":
            return int(context.get("new_score") or 0) >= int(min_score)
        return True

    # time_based workflows only run manually
    return False


def validate_actions(actions: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Validate an action list.

    Raises:
        ValueError: On an unknown action type or missing parameter
    """
    if not isinstance(actions, list):
        raise ValueError("actions must be a list")
    required = {
        "send_message": "message",
        "add_tag": "tag_id",
        "remove_tag": "tag_id",
        "change_stage": "stage",
        "create_note": "note",
        "update_lead_score": "delta",
    }
    for action in actions:
        action_type = action.get("type") if isinstance(action, dict) else None
        if action_type not in ACTION_TYPES:
            raise ValueError(f"Unknown action type: {action_type}")
        if action.get(required[action_type]) in (None, ""):
            raise ValueError(f"Action '{action_type}' requires '{required[action_type]}'")
    return actions


class WorkflowService:
    """Service for workflow management and execution.

    Actions change contacts directly through repositories, never through
    ContactService, so an action can never trigger another workflow.
    """

    def __init__(self, session: AsyncSession, whatsapp_service=None) -> None:
        self.session = session
        self.workflow_repo = WorkflowRepository(session)
        self.execution_repo = WorkflowExecutionRepository(session)
        self.contact_repo = ContactRepository(session)
        self.tag_repo = TagRepository(session)
        self._whatsapp_service = whatsapp_service

    async def list_workflows(self, tenant_id: int) -> list[Workflow]:
        return await self.workflow_repo.list(tenant_id, limit=500)

    async def get_workflow(self, tenant_id: int, workflow_id: int) -> Workflow | None:
        return await self.workflow_repo.get_by_id(tenant_id, workflow_id)

    async def create_workflow(
        self,
        tenant_id: int,
        name: str,
        trigger_type: str,
        actions: list[dict[str, Any]],
        trigger_conditions: dict[str, Any] | None = None,
        description: str | None = None,
        is_active: bool = True,
    ) -> Workflow:
        """Create a workflow.

        Raises:
            ValueError: On unknown trigger or invalid actions
        """
        if trigger_type not in TRIGGER_TYPES:
            raise ValueError(f"Unknown trigger type: {trigger_type}")
        return await self.workflow_repo.create(
            tenant_id,
            name=name,
            description=description,
            trigger_type=trigger_type,
            trigger_conditions=trigger_conditions or {},
            actions=validate_actions(actions),
            is_active=is_active,
        )

    async def update_workflow(self, tenant_id: int, workflow_id: int, **data) -> Workflow | None:
        if "trigger_type" in data and data["trigger_type"] not in TRIGGER_TYPES:
            raise ValueError(f"Unknown trigger type: {data['trigger_type']}")
        if "actions" in data:
            validate_actions(data["actions"])
        return await self.workflow_repo.update(tenant_id, workflow_id, **data)

    async def toggle_workflow(self, tenant_id: int, workflow_id: int) -> Workflow | None:
        workflow = await self.workflow_repo.get_by_id(tenant_id, workflow_id)
        if workflow is None:
            return None
        return await self.workflow_repo.update(tenant_id, workflow_id, is_active=not workflow.is_active)

    async def delete_workflow(self, tenant_id: int, workflow_id: int) -> bool:
        return await self.workflow_repo.delete(tenant_id, workflow_id)

    async def list_executions(self, tenant_id: int, workflow_id: int) -> list[WorkflowExecution]:
        return await self.execution_repo.list_for_workflow(tenant_id, workflow_id)

    async def trigger(
        self,
        tenant_id: int,
        trigger_type: str,
        contact: Contact,
        context: dict[str, Any] | None = None,
    ) -> list[WorkflowExecution]:
        """Run every active workflow of a trigger type whose conditions match.

        Changes are flushed; the caller commits.

        Args:
            tenant_id: Tenant ID
            trigger_type: Event that happened
            contact: Contact the event concerns
            context: Event data for condition matching

        Returns:
            Executions written
        """
        if trigger_type == "time_based":
            return []
        context = context or {}

        executions = []
        for workflow in await self.workflow_repo.list_active_by_trigger(tenant_id, trigger_type):
            if conditions_match(workflow, context):
                executions.append(await self.execute(workflow, contact, context))
        return executions

    async def run_manually(
        self,
        tenant_id: int,
        workflow_id: int,
        contact_id: int,
        context: dict[str, Any] | None = None,
    ) -> WorkflowExecution | None:
        """Execute a workflow for a contact regardless of its trigger.

        Returns:
            The execution, or None if the workflow or contact does not exist
        """
        workflow = await self.workflow_repo.get_by_id(tenant_id, workflow_id)
        contact = await self.contact_repo.get_by_id(tenant_id, contact_id)
        if workflow is None or contact is None:
            return None
        execution = await self.execute(workflow, contact, context or {})
        await self.session.commit()
        return execution

    async def execute(
        self, workflow: Workflow, contact: Contact, context: dict[str, Any] | None = None
    ) -> WorkflowExecution:
        """Run a workflow's actions in order and record the outcome.

        The first failing action stops the run; actions already performed stay.
        """
        performed: list[dict[str, Any]] = []
        error: str | None = None
        for action in workflow.actions or []:
            try:
                performed.append(await self._run_action(workflow.tenant_id, contact, action))
            except (WorkflowActionError, ValueError) as e:
                error = str(e)
                logger.warning(
                    f"Workflow action failed: {e}",
                    extra={"workflow_id": workflow.id, "contact_id": contact.id, "action": action.get("type")},
                )
                break

        now = datetime.utcnow()
        workflow.execution_count = (workflow.execution_count or 0) + 1
        workflow.last_executed_at = now
        execution = WorkflowExecution(
            tenant_id=workflow.tenant_id,
            workflow_id=workflow.id,
            contact_id=contact.id,
            status="failed" if error else "success",
            actions_performed=performed,
            error_message=error,
            executed_at=now,
        )
        self.session.add(execution)
        await self.session.flush()
        logger.info(
            "Workflow executed",
            extra={"workflow_id": workflow.id, "contact_id": contact.id, "status": execution.status},
        )
        return execution

    async def _run_action(self, tenant_id: int, contact: Contact, action: dict[str, Any]) -> dict[str, Any]:
        action_type = action.get("type")

        if action_type == "send_message":
            service = await self._get_whatsapp_service(tenant_id)
            result = await service.send_text_message(
                contact.phone_number, action["message"], contact=contact, commit=False
            )
            if not result.success:
                raise WorkflowActionError(result.error or "Failed to send message")
            return {"type": action_type, "message_id": result.message_id}

        if action_type in ("add_tag", "remove_tag"):
            tag_id = int(action["tag_id"])
            if await self.tag_repo.get_by_id(tenant_id, tag_id) is None:
                raise WorkflowActionError(f"Tag {tag_id} not found")
            if action_type == "add_tag":
                changed = await self.tag_repo.attach(contact.id, tag_id)
            else:
                changed = await self.tag_repo.detach(contact.id, tag_id)
            return {"type": action_type, "tag_id": tag_id, "changed": changed}

        if action_type == "change_stage":
            stage = str(action["stage"]).lower()
            if stage not in CONTACT_STAGES:
                raise WorkflowActionError(f"Unknown stage: {stage}")
            contact.stage = stage
            return {"type": action_type, "stage": stage}

        if action_type == "create_note":
            note_type = action.get("note_type") or "general"
            if note_type not in NOTE_TYPES:
                note_type = "general"
            self.session.add(
                Note(tenant_id=tenant_id, contact_id=contact.id, content=action["note"], note_type=note_type)
            )
            return {"type": action_type, "note_type": note_type}

        if action_type == "update_lead_score":
            contact.lead_score = max(0, (contact.lead_score or 0) + int(action["delta"]))
            return {"type": action_type, "lead_score": contact.lead_score}

        raise WorkflowActionError(f"Unknown action type: {action_type}")

    async def _get_whatsapp_service(self, tenant_id: int):
        if self._whatsapp_service is None:
            # Import here to avoid circular imports
            from wa_mailbox.domain.services.whatsapp_service import WhatsAppService

            self._whatsapp_service = await WhatsAppService.for_tenant(self.session, tenant_id)
            if self._whatsapp_service is None:
                raise WorkflowActionError("WhatsApp API credentials are not configured")
        return self._whatsapp_service
