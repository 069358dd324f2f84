"""Drip campaign models for timed multi-step message sequences."""

from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from wa_mailbox.persistence.database import Base

STEP_MESSAGE_TYPES = ("text", "template")
SUBSCRIBER_STATUSES = ("active", "completed", "paused", "unsubscribed", "failed")


class DripCampaign(Base):
    """Per-tenant sequence of messages sent to enrolled contacts."""

    __tablename__ = "drip_campaigns"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    name = Column(String(150), nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=False)
    trigger_conditions = Column(JSON, nullable=False, default=dict)  # segment_id and/or tag_id
    total_subscribers = Column(Integer, nullable=False, default=0)
    completed_count = Column(Integer, nullable=False, default=0)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<DripCampaign(id={self.id}, tenant_id={self.tenant_id}, name={self.name}, active={self.is_active})>"


class DripCampaignStep(Base):
    """Ordered step within a drip campaign, sent ``delay_minutes`` after the previous one."""

    __tablename__ = "drip_campaign_steps"
    __table_args__ = (
        UniqueConstraint("campaign_id", "step_number", name="uq_drip_step_campaign_number"),
    )

    id = Column(Integer, primary_key=True, index=True)
    campaign_id = Column(Integer, ForeignKey("drip_campaigns.id", ondelete="CASCADE"), nullable=False, index=True)
    step_number = Column(Integer, nullable=False)
    name = Column(String(150), nullable=False)
    delay_minutes = Column(Integer, nullable=False, default=0)
    message_type = Column(String(20), nullable=False, default="text")  # text, template
    message_content = Column(Text, nullable=True)
    template_id = Column(Integer, ForeignKey("message_templates.id", ondelete="SET NULL"), nullable=True)
    sent_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<DripCampaignStep(id={self.id}, campaign_id={self.campaign_id}, step={self.step_number})>"


class DripSubscriber(Base):
    """Tracks a contact's progress through a drip campaign."""

    __tablename__ = "drip_subscribers"
    __table_args__ = (
        UniqueConstraint("campaign_id", "contact_id", name="uq_drip_subscriber_campaign_contact"),
        Index("ix_drip_subscribers_status_next_send_at", "status", "next_send_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    campaign_id = Column(Integer, ForeignKey("drip_campaigns.id", ondelete="CASCADE"), nullable=False, index=True)
    contact_id = Column(Integer, ForeignKey("contacts.id", ondelete="CASCADE"), nullable=False, index=True)
    current_step = Column(Integer, nullable=False, default=0)  # 0 = nothing sent yet
    status = Column(String(20), nullable=False, default="active")
    next_send_at = Column(DateTime, nullable=True)
    last_error = Column(Text, nullable=True)
    started_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    completed_at = Column(DateTime, nullable=True)
    unsubscribed_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<DripSubscriber(id={self.id}, campaign_id={self.campaign_id}, "
            f"contact_id={self.contact_id}, status={self.status}, step={self.current_step})>"
        )
