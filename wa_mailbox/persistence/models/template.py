"""Message template model."""

import re
from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint

from wa_mailbox.persistence.database import Base

TEMPLATE_CATEGORIES = ("utility", "marketing", "authentication")
TEMPLATE_STATUSES = ("pending", "approved", "rejected")

_PLACEHOLDER = re.compile(r"\{\{(\d+)\}\}")


def parse_template_variables(content: str) -> list[int]:
    """Sorted, distinct ``{{n}}`` placeholder numbers in a template body."""
    return sorted({int(n) for n in _PLACEHOLDER.findall(content or "")})


class MessageTemplate(Base):
    """Local record of a Meta-approved WhatsApp template.

    ``whatsapp_template_name`` and ``language_code`` are what the Graph API
    needs; ``content`` keeps the body text so the UI can preview it.
    """

    __tablename__ = "message_templates"
    __table_args__ = (
        UniqueConstraint("tenant_id", "name", name="uq_message_templates_tenant_name"),
    )

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    name = Column(String(150), nullable=False)
    whatsapp_template_name = Column(String(100), nullable=False)
    language_code = Column(String(10), nullable=False, default="en")
    content = Column(Text, nullable=False)
    variables = Column(JSON, nullable=False, default=list)
    category = Column(String(20), nullable=True)  # utility, marketing, authentication
    status = Column(String(20), nullable=False, default="pending")
    usage_count = Column(Integer, nullable=False, default=0)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    @property
    def is_approved(self) -> bool:
        return self.status == "approved"

    def __repr__(self) -> str:
        return f"<MessageTemplate(id={self.id}, tenant_id={self.tenant_id}, name={self.name}, status={self.status})>"
