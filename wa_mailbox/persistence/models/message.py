"""Message model."""

from datetime import datetime

from sqlalchemy import (
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

MESSAGE_DIRECTIONS = ("incoming", "outgoing")
MESSAGE_STATUSES = ("sent", "delivered", "read", "failed")


class Message(Base):
    """A single inbound or outbound WhatsApp message.

    ``message_id`` is the provider's id (``wamid...``); redelivered webhooks are
    matched on ``(tenant_id, message_id)`` so a message is stored once.
    """

    __tablename__ = "messages"
    __table_args__ = (
        UniqueConstraint("tenant_id", "message_id", name="uq_messages_tenant_message_id"),
        Index("ix_messages_tenant_contact_timestamp", "tenant_id", "contact_id", "timestamp"),
    )

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    message_id = Column(String(255), nullable=True)
    contact_id = Column(Integer, ForeignKey("contacts.id", ondelete="CASCADE"), nullable=False, index=True)
    phone_number = Column(String(50), nullable=False)

    message_type = Column(String(20), nullable=False, default="text")
    direction = Column(String(10), nullable=False)  # incoming, outgoing
    message_body = Column(Text, nullable=True)

    media_id = Column(String(255), nullable=True)
    media_url = Column(String(1024), nullable=True)
    media_mime_type = Column(String(100), nullable=True)
    media_caption = Column(Text, nullable=True)
    media_filename = Column(String(255), nullable=True)

    status = Column(String(20), nullable=True)  # sent, delivered, read, failed
    is_read = Column(Boolean, nullable=False, default=False)
    timestamp = Column(DateTime, nullable=False, default=datetime.utcnow)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<Message(id={self.id}, tenant_id={self.tenant_id}, message_id={self.message_id}, "
            f"direction={self.direction}, type={self.message_type})>"
        )
