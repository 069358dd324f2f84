"""Quick reply model."""

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint

from wa_mailbox.persistence.database import Base


class QuickReply(Base):
    """Canned response, sent automatically when an inbound text matches its shortcut."""

    __tablename__ = "quick_replies"
    __table_args__ = (
        UniqueConstraint("tenant_id", "shortcut", name="uq_quick_replies_tenant_shortcut"),
    )

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    shortcut = Column(String(50), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    usage_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def matches(self, text: str) -> bool:
        """Whether the inbound text is this reply's shortcut (with or without the leading slash)."""
        candidate = text.strip().lower()
        shortcut = self.shortcut.strip().lower()
        return candidate == shortcut or candidate == shortcut.lstrip("/")

    def __repr__(self) -> str:
        return f"<QuickReply(id={self.id}, tenant_id={self.tenant_id}, shortcut={self.shortcut})>"
