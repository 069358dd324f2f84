"""Tag and auto-tag rule models."""

from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from wa_mailbox.persistence.database import Base

MATCH_TYPES = ("any", "all", "exact")


class Tag(Base):
    """Label attached to contacts."""

    __tablename__ = "tags"
    __table_args__ = (UniqueConstraint("tenant_id", "name", name="uq_tags_tenant_name"),)

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    color = Column(String(20), nullable=False, default="#25D366")
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<Tag(id={self.id}, tenant_id={self.tenant_id}, name={self.name})>"


class AutoTagRule(Base):
    """Keyword rule that tags a contact when an inbound text matches."""

    __tablename__ = "auto_tag_rules"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    keywords = Column(JSON, nullable=False, default=list)
    tag_id = Column(Integer, ForeignKey("tags.id", ondelete="CASCADE"), nullable=False)
    match_type = Column(String(10), nullable=False, default="any")  # any, all, exact
    case_sensitive = Column(Boolean, nullable=False, default=False)
    priority = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    usage_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def matches(self, text: str | None) -> bool:
        """Check the message text against this rule's keywords.

        Args:
            text: Inbound message body

        Returns:
            True if the rule applies
        """
        keywords = [str(k) for k in (self.keywords or []) if str(k).strip()]
        if not text or not keywords:
            return False

        if not self.case_sensitive:
            text = text.lower()
            keywords = [k.lower() for k in keywords]

        if self.match_type == "all":
            return all(k in text for k in keywords)
        if self.match_type == "exact":
            stripped = text.strip()
            return any(stripped == k.strip() for k in keywords)
        return any(k in text for k in keywords)

    def __repr__(self) -> str:
        return f"<AutoTagRule(id={self.id}, tenant_id={self.tenant_id}, name={self.name}, tag_id={self.tag_id})>"
