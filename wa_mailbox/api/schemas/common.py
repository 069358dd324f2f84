"""Shared request schema behaviour."""

from typing import ClassVar

from pydantic import BaseModel, model_validator


class PartialUpdate(BaseModel):
    """Base for PUT bodies where omitted fields stay unchanged.

    Fields named in ``not_null`` map to NOT NULL columns. They may be left out,
    but an explicit ``null`` is rejected with a 422 instead of reaching the
    database.
    """

    not_null: ClassVar[tuple[str, ...]] = ()

    @model_validator(mode="after")
    def _reject_explicit_nulls(self) -> "PartialUpdate":
        nulls = [
            name for name in self.not_null if name in self.model_fields_set and getattr(self, name) is None
        ]
        if nulls:
            raise ValueError(f"{', '.join(nulls)} cannot be null")
        return self
