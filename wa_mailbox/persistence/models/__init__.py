"""Database models."""

from wa_mailbox.persistence.models.api_credential import TenantApiCredential
from wa_mailbox.persistence.models.broadcast import Broadcast, BroadcastRecipient
from wa_mailbox.persistence.models.contact import Contact, contact_tags
from wa_mailbox.persistence.models.deal import Deal, Note
from wa_mailbox.persistence.models.drip_campaign import DripCampaign, DripCampaignStep, DripSubscriber
from wa_mailbox.persistence.models.message import Message
from wa_mailbox.persistence.models.quick_reply import QuickReply
from wa_mailbox.persistence.models.scheduled_message import ScheduledMessage
from wa_mailbox.persistence.models.segment import Segment
from wa_mailbox.persistence.models.subscription import TenantSubscription
from wa_mailbox.persistence.models.tag import AutoTagRule, Tag
from wa_mailbox.persistence.models.template import MessageTemplate
from wa_mailbox.persistence.models.tenant import Tenant, User
from wa_mailbox.persistence.models.workflow import Workflow, WorkflowExecution

__all__ = [
    "AutoTagRule",
    "Broadcast",
    "BroadcastRecipient",
    "Contact",
    "Deal",
    "DripCampaign",
    "DripCampaignStep",
    "DripSubscriber",
    "Message",
    "MessageTemplate",
    "Note",
    "QuickReply",
    "ScheduledMessage",
    "Segment",
    "Tag",
    "Tenant",
    "TenantApiCredential",
    "TenantSubscription",
    "User",
    "Workflow",
    "WorkflowExecution",
    "contact_tags",
]
