"""Message template service: local template records and template sends."""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from wa_mailbox.infrastructure.whatsapp_client import SendResult
from wa_mailbox.persistence.models.contact import Contact
from wa_mailbox.persistence.models.template import (
    TEMPLATE_CATEGORIES,
    TEMPLATE_STATUSES,
    MessageTemplate,
    parse_template_variables,
)
from wa_mailbox.persistence.repositories.template_repository import TemplateRepository

logger = logging.getLogger(__name__)


class TemplateNotApprovedError(Exception):
    """Raised when sending a template Meta has not approved."""


class TemplateService:
    """Service for message templates."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.template_repo = TemplateRepository(session)

    async def list_templates(self, tenant_id: int, status: str | None = None) -> list[MessageTemplate]:
        return await self.template_repo.list_recent(tenant_id, status=status)

    async def get_template(self, tenant_id: int, template_id: int) -> MessageTemplate | None:
        return await self.template_repo.get_by_id(tenant_id, template_id)

    async def create_template(
        self,
        tenant_id: int,
        name: str,
        whatsapp_template_name: str,
        content: str,
        language_code: str = "en",
        category: str | None = None,
        status: str = "pending",
        created_by: int | None = None,
    ) -> MessageTemplate:
        """Create a template; ``{{n}}`` placeholders in the content become its variables.

        Raises:
            ValueError: On an unknown category or status, or a duplicate name
        """
        self._validate(category=category, status=status)
        if await self.template_repo.get_by_name(tenant_id, name):
            raise ValueError(f"Template '{name}' already exists")
        return await self.template_repo.create(
            tenant_id,
            name=name,
            whatsapp_template_name=whatsapp_template_name,
            language_code=language_code,
            content=content,
            variables=parse_template_variables(content),
            category=category,
            status=status,
            created_by=created_by,
        )

    async def update_template(self, tenant_id: int, template_id: int, **data) -> MessageTemplate | None:
        self._validate(category=data.get("category"), status=data.get("status"))
        name = data.get("name")
        if name is not None:
            existing = await self.template_repo.get_by_name(tenant_id, name)
            if existing is not None and existing.id != template_id:
                raise ValueError(f"Template '{name}' already exists")
        if data.get("content") is not None:
            data["variables"] = parse_template_variables(data["content"])
        return await self.template_repo.update(tenant_id, template_id, **data)

    async def delete_template(self, tenant_id: int, template_id: int) -> bool:
        return await self.template_repo.delete(tenant_id, template_id)

    def _validate(self, category: str | None = None, status: str | None = None) -> None:
        if category is not None and category not in TEMPLATE_CATEGORIES:
            raise ValueError(f"Unknown category '{category}'")
        if status is not None and status not in TEMPLATE_STATUSES:
            raise ValueError(f"Unknown status '{status}'")

    async def send_template(
        self,
        template: MessageTemplate,
        contact: Contact,
        whatsapp_service,
        parameters: list[str] | None = None,
        commit: bool = True,
    ) -> SendResult:
        """Send an approved template to a contact and count the use.

        Args:
            template: Template to send
            contact: Recipient; the send is stored in its thread
            whatsapp_service: The tenant's WhatsAppService
            parameters: Values for ``{{1}}``, ``{{2}}``... in order
            commit: Commit, or only flush

        Raises:
            TemplateNotApprovedError: If the template is not approved
            ValueError: If the parameter count does not match the template
        """
        if not template.is_approved:
            raise TemplateNotApprovedError(f"Template '{template.name}' is not approved")
        parameters = list(parameters or [])
        expected = len(template.variables or [])
        if len(parameters) != expected:
            raise ValueError(f"Template '{template.name}' expects {expected} parameter(s), got {len(parameters)}")

        result = await whatsapp_service.send_template_message(
            contact.phone_number,
            template.whatsapp_template_name,
            language=template.language_code,
            parameters=parameters,
            contact=contact,
            commit=False,
        )
        if result.success:
            template.usage_count = (template.usage_count or 0) + 1
            logger.info(
                "Template sent",
                extra={"template_id": template.id, "contact_id": contact.id},
            )
        if commit:
            await self.session.commit()
        return result
