"""API schemas package."""

from wa_mailbox.api.schemas.common import PartialUpdate

__all__ = [
    "PartialUpdate",
]
