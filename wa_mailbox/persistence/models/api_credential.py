"""Per-tenant WhatsApp Cloud API credentials."""

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from wa_mailbox.persistence.database import Base
from wa_mailbox.persistence.types import EncryptedText


class TenantApiCredential(Base):
    """WhatsApp Business API configuration for a tenant.

    ``phone_number_id`` is the routing key for inbound webhooks: the Cloud API
    sends it in ``metadata.phone_number_id`` of every change.
    """

    __tablename__ = "tenant_api_credentials"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), unique=True, nullable=False, index=True)

    api_version = Column(String(20), nullable=False, default="v18.0")
    access_token = Column(EncryptedText(), nullable=True)
    phone_number_id = Column(String(100), unique=True, nullable=True, index=True)
    business_account_id = Column(String(100), nullable=True)
    # Queried directly during the verification handshake, so stored as plain text
    webhook_verify_token = Column(String(255), nullable=True, index=True)

    business_name = Column(String(255), nullable=True)
    business_phone_number = Column(String(50), nullable=True)

    is_active = Column(Boolean, default=False, nullable=False)
    last_webhook_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    tenant = relationship("Tenant", back_populates="api_credential")

    @property
    def is_configured(self) -> bool:
        return bool(self.access_token and self.phone_number_id)

    def __repr__(self) -> str:
        return (
            f"<TenantApiCredential(id={self.id}, tenant_id={self.tenant_id}, "
            f"phone_number_id={self.phone_number_id}, is_active={self.is_active})>"
        )
