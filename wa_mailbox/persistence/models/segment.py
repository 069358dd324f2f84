"""Contact segment model."""

from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint

from wa_mailbox.persistence.database import Base

SEGMENT_FIELDS = ("stage", "lead_score", "last_message_days")
SEGMENT_OPERATORS = ("=", "!=", ">", ">=", "<", "<=", "in")


class Segment(Base):
    """Saved contact filter.

    ``conditions`` maps a field to ``{"operator": ..., "value": ...}``, e.g.
    ``{"stage": {"operator": "in", "value": ["qualified", "proposal"]}}``.
    Membership is evaluated on demand; ``contact_count`` is the last count.
    """

    __tablename__ = "segments"
    __table_args__ = (
        UniqueConstraint("tenant_id", "name", name="uq_segments_tenant_name"),
    )

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    name = Column(String(150), nullable=False)
    description = Column(Text, nullable=True)
    conditions = Column(JSON, nullable=False, default=dict)
    contact_count = Column(Integer, nullable=False, default=0)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<Segment(id={self.id}, tenant_id={self.tenant_id}, name={self.name})>"
