"""Tenant subscription model and plan catalogue."""

from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from wa_mailbox.persistence.database import Base

FEATURES = (
    "mailbox",
    "auto_reply",
    "tags",
    "notes",
    "quick_replies",
    "broadcasts",
    "crm",
    "workflows",
    "message_templates",
    "scheduled_messages",
    "segments",
    "drip_campaigns",
)

PLANS: dict[str, dict] = {
    "free": {
        "message_limit": 100,
        "contact_limit": 50,
        "features": {
            "mailbox": True,
            "auto_reply": True,
            "tags": True,
            "notes": True,
            "quick_replies": False,
            "broadcasts": False,
            "crm": False,
            "workflows": False,
            "message_templates": False,
            "scheduled_messages": False,
            "segments": False,
            "drip_campaigns": False,
        },
    },
    "starter": {
        "message_limit": 1000,
        "contact_limit": 500,
        "features": {
            "mailbox": True,
            "auto_reply": True,
            "tags": True,
            "notes": True,
            "quick_replies": True,
            "broadcasts": True,
            "crm": True,
            "workflows": False,
            "message_templates": True,
            "scheduled_messages": True,
            "segments": False,
            "drip_campaigns": False,
        },
    },
    "professional": {
        "message_limit": 10000,
        "contact_limit": 5000,
        "features": {feature: True for feature in FEATURES},
    },
    "enterprise": {
        "message_limit": 999999,
        "contact_limit": 999999,
        "features": {feature: True for feature in FEATURES},
    },
}

SUBSCRIPTION_STATUSES = ("active", "suspended", "cancelled")


class TenantSubscription(Base):
    """Plan, usage counters and feature switches for a tenant."""

    __tablename__ = "tenant_subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), unique=True, nullable=False, index=True)

    plan = Column(String(50), nullable=False, default="free")
    status = Column(String(20), nullable=False, default="active")
    message_limit = Column(Integer, nullable=False, default=100)
    messages_used = Column(Integer, nullable=False, default=0)
    contact_limit = Column(Integer, nullable=False, default=50)
    features = Column(JSON, nullable=True)

    trial_ends_at = Column(DateTime, nullable=True)
    current_period_start = Column(DateTime, nullable=True)
    current_period_end = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    tenant = relationship("Tenant", back_populates="subscription")

    def can_send_message(self) -> bool:
        if self.status != "active":
            return False
        return (self.messages_used or 0) < (self.message_limit or 0)

    def remaining_messages(self) -> int:
        return max(0, (self.message_limit or 0) - (self.messages_used or 0))

    def has_feature(self, feature: str) -> bool:
        if not self.features:
            return False
        return self.features.get(feature) is True

    def enabled_features(self) -> list[str]:
        if not self.features:
            return []
        return [name for name, enabled in self.features.items() if enabled is True]

    def is_expired(self, now: datetime | None = None) -> bool:
        now = now or datetime.utcnow()
        return self.current_period_end is not None and self.current_period_end < now

    def is_on_trial(self, now: datetime | None = None) -> bool:
        now = now or datetime.utcnow()
        return self.trial_ends_at is not None and self.trial_ends_at > now

    def __repr__(self) -> str:
        return (
            f"<TenantSubscription(tenant_id={self.tenant_id}, plan={self.plan}, "
            f"status={self.status}, used={self.messages_used}/{self.message_limit})>"
        )
