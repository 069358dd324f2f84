"""Scheduled message model."""

from datetime import datetime

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Text

from wa_mailbox.persistence.database import Base

SCHEDULED_MESSAGE_TYPES = ("text", "template")
SCHEDULED_STATUSES = ("pending", "sent", "failed", "cancelled")
RECURRENCE_PATTERNS = ("daily", "weekly", "monthly")


class ScheduledMessage(Base):
    """A message to one contact, sent by the job runner once ``scheduled_at`` passes.

    A sent recurring message leaves its row as history and schedules the next
    occurrence as a new pending row.
    """

    __tablename__ = "scheduled_messages"
    __table_args__ = (
        Index("ix_scheduled_messages_status_scheduled_at", "status", "scheduled_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    contact_id = Column(Integer, ForeignKey("contacts.id", ondelete="CASCADE"), nullable=False, index=True)
    message = Column(Text, nullable=True)
    message_type = Column(String(20), nullable=False, default="text")  # text, template
    template_id = Column(Integer, ForeignKey("message_templates.id", ondelete="SET NULL"), nullable=True)
    template_parameters = Column(JSON, nullable=True)
    scheduled_at = Column(DateTime, nullable=False)
    status = Column(String(20), nullable=False, default="pending")
    sent_at = Column(DateTime, nullable=True)
    whatsapp_message_id = Column(String(255), nullable=True)
    error_message = Column(Text, nullable=True)
    is_recurring = Column(Boolean, nullable=False, default=False)
    recurrence_pattern = Column(String(20), nullable=True)  # daily, weekly, monthly
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<ScheduledMessage(id={self.id}, tenant_id={self.tenant_id}, "
            f"contact_id={self.contact_id}, status={self.status})>"
        )
