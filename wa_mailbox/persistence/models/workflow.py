"""Workflow automation models."""

from datetime import datetime

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String, Text

from wa_mailbox.persistence.database import Base

TRIGGER_TYPES = (
    "new_message",
    "stage_change",
    "tag_added",
    "tag_removed",
    "lead_score_change",
    "time_based",
)
ACTION_TYPES = (
    "send_message",
    "add_tag",
    "remove_tag",
    "change_stage",
    "create_note",
    "update_lead_score",
)


class Workflow(Base):
    """Trigger plus an ordered list of actions."""

    __tablename__ = "workflows"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    trigger_type = Column(String(50), nullable=False, index=True)
    trigger_conditions = Column(JSON, nullable=False, default=dict)
    actions = Column(JSON, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True)
    execution_count = Column(Integer, nullable=False, default=0)
    last_executed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<Workflow(id={self.id}, tenant_id={self.tenant_id}, trigger_type={self.trigger_type})>"


class WorkflowExecution(Base):
    """Audit row written every time a workflow runs."""

    __tablename__ = "workflow_executions"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    workflow_id = Column(Integer, ForeignKey("workflows.id", ondelete="CASCADE"), nullable=False, index=True)
    contact_id = Column(Integer, ForeignKey("contacts.id", ondelete="CASCADE"), nullable=True, index=True)
    status = Column(String(20), nullable=False)  # success, failed
    actions_performed = Column(JSON, nullable=True)
    error_message = Column(Text, nullable=True)
    executed_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<WorkflowExecution(id={self.id}, workflow_id={self.workflow_id}, status={self.status})>"
