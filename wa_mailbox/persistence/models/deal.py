"""Deal and note models."""

from datetime import datetime

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, Numeric, String, Text

from wa_mailbox.persistence.database import Base

DEAL_STATUSES = ("pending", "won", "lost")
NOTE_TYPES = ("general", "call", "meeting", "follow_up")


class Deal(Base):
    """Sales opportunity tied to a contact."""

    __tablename__ = "deals"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    contact_id = Column(Integer, ForeignKey("contacts.id", ondelete="CASCADE"), nullable=False, index=True)
    deal_name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    amount = Column(Numeric(12, 2), nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="PKR")
    status = Column(String(20), nullable=False, default="pending")
    deal_date = Column(Date, nullable=True)
    expected_close_date = Column(Date, nullable=True)
    actual_close_date = Column(Date, nullable=True)
    notes = Column(Text, nullable=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<Deal(id={self.id}, tenant_id={self.tenant_id}, contact_id={self.contact_id}, status={self.status})>"


class Note(Base):
    """Free-text note on a contact."""

    __tablename__ = "notes"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    contact_id = Column(Integer, ForeignKey("contacts.id", ondelete="CASCADE"), nullable=False, index=True)
    content = Column(Text, nullable=False)
    note_type = Column(String(20), nullable=False, default="general")
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<Note(id={self.id}, contact_id={self.contact_id}, note_type={self.note_type})>"
