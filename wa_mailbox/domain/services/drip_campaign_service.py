"""Drip campaigns: multi-step message sequences sent on a timer."""

import logging
import re
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from wa_mailbox.domain.services.segment_service import SegmentService
from wa_mailbox.domain.services.template_service import TemplateNotApprovedError, TemplateService
from wa_mailbox.infrastructure.whatsapp_client import SendResult
from wa_mailbox.persistence.models.contact import Contact
from wa_mailbox.persistence.models.drip_campaign import (
    STEP_MESSAGE_TYPES,
    DripCampaign,
    DripCampaignStep,
    DripSubscriber,
)
from wa_mailbox.persistence.repositories.contact_repository import ContactRepository
from wa_mailbox.persistence.repositories.drip_repository import DripCampaignRepository
from wa_mailbox.persistence.repositories.segment_repository import SegmentRepository
from wa_mailbox.persistence.repositories.tag_repository import TagRepository
from wa_mailbox.persistence.repositories.template_repository import TemplateRepository

logger = logging.getLogger(__name__)

_STEP_VAR_PATTERN = re.compile(r"\{\{\s*([a-zA-Z_ ]+?)\s*\}\}")


class DripStateError(Exception):
    """Raised when a campaign or subscriber is not in a state that allows the operation."""


def render_step_message(template: str, contact: Contact) -> str:
    """Fill ``{{name}}``, ``{{first_name}}``, ``{{phone}}``, ``{{company}}`` from the contact.

    Unknown or empty variables are dropped and the spacing around them cleaned up.
    """
    values = {
        "name": contact.name or "",
        "first_name": (contact.name or "").split(" ")[0],
        "phone": contact.phone_number or "",
        "company": contact.company_name or "",
    }

    def replace_var(match: re.Match) -> str:
        return values.get(match.group(1).strip().lower().replace(" ", "_"), "")

    rendered = _STEP_VAR_PATTERN.sub(replace_var, template or "")
    rendered = re.sub(r"  +", " ", rendered)
    rendered = re.sub(r" +([.,!?])", r"\1", rendered)
    return rendered.strip()


class DripCampaignService:
    """Campaign and step management, enrollment and step delivery."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.campaign_repo = DripCampaignRepository(session)
        self.contact_repo = ContactRepository(session)
        self.template_repo = TemplateRepository(session)
        self.segment_repo = SegmentRepository(session)
        self.tag_repo = TagRepository(session)

    # ── Campaigns ────────────────────────────────────────────────────────

    async def list_campaigns(self, tenant_id: int) -> list[DripCampaign]:
        return await self.campaign_repo.list(tenant_id, limit=500)

    async def get_campaign(self, tenant_id: int, campaign_id: int) -> DripCampaign | None:
        return await self.campaign_repo.get_by_id(tenant_id, campaign_id)

    async def list_steps(self, campaign_id: int) -> list[DripCampaignStep]:
        return await self.campaign_repo.list_steps(campaign_id)

    async def create_campaign(
        self,
        tenant_id: int,
        name: str,
        steps: list[dict[str, Any]],
        description: str | None = None,
        is_active: bool = False,
        trigger_conditions: dict[str, Any] | None = None,
        created_by: int | None = None,
    ) -> DripCampaign:
        """Create a campaign with its ordered steps in one transaction.

        Raises:
            ValueError: If there are no steps, a step is invalid, or a trigger
                references an unknown segment or tag
        """
        steps = await self._validate_steps(tenant_id, steps)
        trigger_conditions = await self._validate_trigger(tenant_id, trigger_conditions or {})
        campaign = await self.campaign_repo.create(
            tenant_id,
            commit=False,
            name=name,
            description=description,
            is_active=is_active,
            trigger_conditions=trigger_conditions,
            created_by=created_by,
        )
        await self.campaign_repo.replace_steps(campaign.id, steps)
        await self.session.commit()
        await self.session.refresh(campaign)
        return campaign

    async def update_campaign(
        self, tenant_id: int, campaign_id: int, steps: list[dict[str, Any]] | None = None, **data
    ) -> DripCampaign | None:
        """Update campaign fields; given ``steps`` replace the existing ones.

        Subscribers keep their step number, so a shortened campaign completes
        them on their next run.
        """
        campaign = await self.campaign_repo.get_by_id(tenant_id, campaign_id)
        if campaign is None:
            return None
        if steps is not None:
            steps = await self._validate_steps(tenant_id, steps)
        if "trigger_conditions" in data:
            data["trigger_conditions"] = await self._validate_trigger(tenant_id, data["trigger_conditions"] or {})

        for key, value in data.items():
            setattr(campaign, key, value)
        if steps is not None:
            await self.campaign_repo.replace_steps(campaign.id, steps)
        await self.session.commit()
        await self.session.refresh(campaign)
        return campaign

    async def delete_campaign(self, tenant_id: int, campaign_id: int) -> bool:
        return await self.campaign_repo.delete(tenant_id, campaign_id)

    async def _validate_steps(self, tenant_id: int, steps: list[dict[str, Any]]) -> list[dict[str, Any]]:
        if not steps:
            raise ValueError("At least one step is required")
        cleaned = []
        for number, step in enumerate(steps, start=1):
            message_type = step.get("message_type") or "text"
            if message_type not in STEP_MESSAGE_TYPES:
                raise ValueError(f"Step {number}: unknown message type '{message_type}'")
            delay = int(step.get("delay_minutes") or 0)
            if delay < 0:
                raise ValueError(f"Step {number}: delay cannot be negative")
            content = step.get("message_content")
            template_id = step.get("template_id")
            if message_type == "text" and not (content and content.strip()):
                raise ValueError(f"Step {number}: message content is required")
            if message_type == "template":
                if template_id is None or await self.template_repo.get_by_id(tenant_id, template_id) is None:
                    raise ValueError(f"Step {number}: template not found")
            cleaned.append(
                {
                    "name": step.get("name") or f"Step {number}",
                    "delay_minutes": delay,
                    "message_type": message_type,
                    "message_content": content,
                    "template_id": template_id if message_type == "template" else None,
                }
            )
        return cleaned

    async def _validate_trigger(self, tenant_id: int, conditions: dict[str, Any]) -> dict[str, Any]:
        unknown = set(conditions) - {"segment_id", "tag_id"}
        if unknown:
            raise ValueError(f"Unknown trigger condition '{sorted(unknown)[0]}'")
        segment_id = conditions.get("segment_id")
        if segment_id is not None and await self.segment_repo.get_by_id(tenant_id, segment_id) is None:
            raise ValueError("Segment not found")
        tag_id = conditions.get("tag_id")
        if tag_id is not None and await self.tag_repo.get_by_id(tenant_id, tag_id) is None:
            raise ValueError("Tag not found")
        return {k: v for k, v in conditions.items() if v is not None}

    # ── Enrollment ───────────────────────────────────────────────────────

    async def enroll(
        self, tenant_id: int, campaign_id: int, contact_ids: list[int], now: datetime | None = None
    ) -> dict[str, int] | None:
        """Subscribe contacts to an active campaign.

        The first step is due ``delay_minutes`` after enrollment. Contacts that
        are unknown or already subscribed (in any status) are skipped.

        Returns:
            ``{"enrolled": n, "skipped": m}``, or None if the campaign does not exist

        Raises:
            DripStateError: If the campaign is inactive or has no steps
        """
        now = now or datetime.utcnow()
        campaign = await self.campaign_repo.get_by_id(tenant_id, campaign_id)
        if campaign is None:
            return None
        if not campaign.is_active:
            raise DripStateError("Campaign is not active")
        first_step = await self.campaign_repo.get_step(campaign.id, 1)
        if first_step is None:
            raise DripStateError("Campaign has no steps")

        requested = list(dict.fromkeys(contact_ids))
        contacts = await self.contact_repo.get_many(tenant_id, requested)
        enrolled = 0
        for contact in contacts:
            if await self.campaign_repo.get_subscriber(campaign.id, contact.id) is not None:
                continue
            self.session.add(
                DripSubscriber(
                    tenant_id=tenant_id,
                    campaign_id=campaign.id,
                    contact_id=contact.id,
                    current_step=0,
                    status="active",
                    next_send_at=now + timedelta(minutes=first_step.delay_minutes),
                    started_at=now,
                )
            )
            enrolled += 1

        campaign.total_subscribers = (campaign.total_subscribers or 0) + enrolled
        await self.session.commit()
        logger.info(
            "Contacts enrolled in drip campaign",
            extra={"campaign_id": campaign.id, "enrolled": enrolled},
        )
        return {"enrolled": enrolled, "skipped": len(requested) - enrolled}

    async def matching_contact_ids(self, tenant_id: int, campaign: DripCampaign) -> list[int]:
        """Contacts meeting every trigger condition (segment membership, tag).

        Raises:
            ValueError: If the campaign has no trigger conditions
        """
        conditions = campaign.trigger_conditions or {}
        if not conditions:
            raise ValueError("Campaign has no trigger conditions")
        matched: set[int] | None = None
        if conditions.get("segment_id") is not None:
            matched = set(
                await SegmentService(self.session).contact_ids_for_segments(tenant_id, [conditions["segment_id"]])
            )
        if conditions.get("tag_id") is not None:
            tagged = set(await self.tag_repo.contact_ids_for_tags(tenant_id, [conditions["tag_id"]]))
            matched = tagged if matched is None else matched & tagged
        return sorted(matched or [])

    async def list_subscribers(self, campaign_id: int, status: str | None = None) -> list[DripSubscriber]:
        return await self.campaign_repo.list_subscribers(campaign_id, status=status)

    async def get_subscriber(self, tenant_id: int, subscriber_id: int) -> DripSubscriber | None:
        return await self.campaign_repo.get_subscriber_by_id(tenant_id, subscriber_id)

    async def unsubscribe(self, tenant_id: int, subscriber_id: int, now: datetime | None = None) -> DripSubscriber | None:
        subscriber = await self.campaign_repo.get_subscriber_by_id(tenant_id, subscriber_id)
        if subscriber is None:
            return None
        if subscriber.status in ("completed", "unsubscribed"):
            raise DripStateError(f"Subscriber is already {subscriber.status}")
        subscriber.status = "unsubscribed"
        subscriber.unsubscribed_at = now or datetime.utcnow()
        subscriber.next_send_at = None
        await self.session.commit()
        await self.session.refresh(subscriber)
        return subscriber

    async def resume(self, tenant_id: int, subscriber_id: int, now: datetime | None = None) -> DripSubscriber | None:
        """Reactivate a paused or failed subscriber; its next step is due immediately."""
        subscriber = await self.campaign_repo.get_subscriber_by_id(tenant_id, subscriber_id)
        if subscriber is None:
            return None
        if subscriber.status not in ("paused", "failed"):
            raise DripStateError(f"Only paused or failed subscribers can resume, not {subscriber.status}")
        subscriber.status = "active"
        subscriber.last_error = None
        subscriber.next_send_at = now or datetime.utcnow()
        await self.session.commit()
        await self.session.refresh(subscriber)
        return subscriber

    async def pause_on_reply(self, tenant_id: int, contact_id: int) -> int:
        """Pause the contact's active sequences once they write back.

        Flushes only; the caller commits.

        Returns:
            Number of subscriptions paused
        """
        subscriptions = await self.campaign_repo.list_active_subscriptions_for_contact(tenant_id, contact_id)
        for subscriber in subscriptions:
            subscriber.status = "paused"
            subscriber.next_send_at = None
        if subscriptions:
            await self.session.flush()
            logger.info(
                "Drip sequences paused on reply",
                extra={"contact_id": contact_id, "paused": len(subscriptions)},
            )
        return len(subscriptions)

    # ── Delivery ─────────────────────────────────────────────────────────

    async def advance_subscriber(
        self, subscriber: DripSubscriber, whatsapp_service, now: datetime | None = None
    ) -> dict[str, Any]:
        """Send the subscriber's next step and schedule the one after.

        Returns a dict with ``status`` (sent, completed, failed or skipped)
        and details.
        """
        now = now or datetime.utcnow()
        if subscriber.status != "active":
            return {"status": "skipped", "reason": f"status_{subscriber.status}"}

        campaign = await self.campaign_repo.get_by_id(subscriber.tenant_id, subscriber.campaign_id)
        next_step_num = subscriber.current_step + 1
        step = await self.campaign_repo.get_step(subscriber.campaign_id, next_step_num)
        if step is None:
            self._complete(subscriber, campaign, now)
            await self.session.commit()
            return {"status": "completed"}

        result = await self._send_step(subscriber, step, whatsapp_service)
        if not result.success:
            subscriber.status = "failed"
            subscriber.last_error = result.error
            subscriber.next_send_at = None
            await self.session.commit()
            logger.warning(
                "Drip step failed",
                extra={"subscriber_id": subscriber.id, "step": next_step_num, "error": result.error},
            )
            return {"status": "failed", "step": next_step_num, "error": result.error}

        step.sent_count = (step.sent_count or 0) + 1
        subscriber.current_step = next_step_num
        following = await self.campaign_repo.get_step(subscriber.campaign_id, next_step_num + 1)
        if following is not None:
            subscriber.next_send_at = now + timedelta(minutes=following.delay_minutes)
        else:
            self._complete(subscriber, campaign, now)
        await self.session.commit()

        logger.info(
            f"Drip step {next_step_num} sent for subscriber {subscriber.id}",
            extra={"message_id": result.message_id},
        )
        return {
            "status": "completed" if following is None else "sent",
            "step": next_step_num,
            "message_id": result.message_id,
        }

    def _complete(self, subscriber: DripSubscriber, campaign: DripCampaign | None, now: datetime) -> None:
        subscriber.status = "completed"
        subscriber.completed_at = now
        subscriber.next_send_at = None
        if campaign is not None:
            campaign.completed_count = (campaign.completed_count or 0) + 1

    async def _send_step(self, subscriber: DripSubscriber, step: DripCampaignStep, whatsapp_service) -> SendResult:
        if whatsapp_service is None:
            return SendResult(success=False, error="WhatsApp API credentials are not configured")
        contact = await self.contact_repo.get_by_id(subscriber.tenant_id, subscriber.contact_id)
        if contact is None:
            return SendResult(success=False, error="Contact not found")

        if step.message_type == "template":
            template = (
                await self.template_repo.get_by_id(subscriber.tenant_id, step.template_id)
                if step.template_id is not None
                else None
            )
            if template is None:
                return SendResult(success=False, error="Template not found")
            try:
                return await TemplateService(self.session).send_template(
                    template, contact, whatsapp_service, commit=False
                )
            except (TemplateNotApprovedError, ValueError) as e:
                return SendResult(success=False, error=str(e))

        message = render_step_message(step.message_content, contact)
        if not message:
            return SendResult(success=False, error="Step message is empty")
        return await whatsapp_service.send_text_message(contact.phone_number, message, contact=contact, commit=False)

    async def process_due(self, now: datetime | None = None, limit: int = 50) -> dict[str, int]:
        """Advance every due subscriber of every tenant's active campaigns.

        Returns:
            Counts per outcome (sent, completed, failed, skipped)
        """
        from wa_mailbox.domain.services.whatsapp_service import WhatsAppService

        now = now or datetime.utcnow()
        due = await self.campaign_repo.list_due_subscribers(now, limit=limit)
        counts = {"sent": 0, "completed": 0, "failed": 0, "skipped": 0}
        if not due:
            logger.info("No drip campaign steps due")
            return counts

        logger.info("Processing drip campaign steps", extra={"due_count": len(due)})
        services: dict[int, Any] = {}
        for subscriber_id in [s.id for s in due]:
            # A rollback below expires loaded rows; get() reloads them
            subscriber = await self.session.get(DripSubscriber, subscriber_id)
            if subscriber.tenant_id not in services:
                services[subscriber.tenant_id] = await WhatsAppService.for_tenant(self.session, subscriber.tenant_id)
            try:
                outcome = await self.advance_subscriber(subscriber, services[subscriber.tenant_id], now)
            except Exception as e:
                logger.error(f"Drip subscriber {subscriber_id} raised: {e}", exc_info=True)
                await self.session.rollback()
                services.clear()
                await self.session.refresh(subscriber)
                subscriber.status = "failed"
                subscriber.last_error = str(e)
                subscriber.next_send_at = None
                await self.session.commit()
                outcome = {"status": "failed"}
            counts[outcome["status"]] += 1

        logger.info("Drip campaign steps processed", extra=counts)
        return counts
