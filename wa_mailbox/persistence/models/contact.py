"""Contact model."""

from datetime import datetime

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Table,
    UniqueConstraint,
)

from wa_mailbox.persistence.database import Base

CONTACT_STAGES = ("new", "contacted", "qualified", "proposal", "negotiation", "customer", "lost")

# Many-to-many between contacts and tags
contact_tags = Table(
    "contact_tags",
    Base.metadata,
    Column("contact_id", Integer, ForeignKey("contacts.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", Integer, ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
    Column("created_at", DateTime, default=datetime.utcnow, nullable=False),
)


class Contact(Base):
    """A WhatsApp user who has messaged, or been messaged by, the tenant."""

    __tablename__ = "contacts"
    __table_args__ = (
        UniqueConstraint("tenant_id", "phone_number", name="uq_contacts_tenant_phone"),
    )

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    phone_number = Column(String(50), nullable=False, index=True)
    name = Column(String(255), nullable=True)
    profile_picture_url = Column(String(1024), nullable=True)

    unread_count = Column(Integer, nullable=False, default=0)
    last_message_time = Column(DateTime, nullable=True, index=True)

    # CRM
    stage = Column(String(50), nullable=False, default="new")
    lead_score = Column(Integer, nullable=False, default=0)
    company_name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True)

    deleted_at = Column(DateTime, nullable=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def __repr__(self) -> str:
        return f"<Contact(id={self.id}, tenant_id={self.tenant_id}, phone_number={self.phone_number})>"
