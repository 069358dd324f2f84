"""Base repository with tenant-scoped queries."""

from typing import Any, Generic, Type, TypeVar

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from wa_mailbox.persistence.database import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """CRUD for one model, every query filtered by ``tenant_id``.

    A ``tenant_id`` of None drops the tenant filter (global admin and webhook
    routing lookups). Write methods commit by default; ``commit=False`` only
    flushes so the caller can group several writes in one transaction.
    """

    def __init__(self, model: Type[ModelType], session: AsyncSession):
        self.model = model
        self.session = session

    def _scoped(self, stmt: Select, tenant_id: int | None, filters: dict[str, Any] | None = None) -> Select:
        if tenant_id is not None:
            stmt = stmt.where(self.model.tenant_id == tenant_id)
        for key, value in (filters or {}).items():
            if hasattr(self.model, key):
                stmt = stmt.where(getattr(self.model, key) == value)
        return stmt

    async def get_by_id(self, tenant_id: int | None, id: int) -> ModelType | None:
        stmt = self._scoped(select(self.model).where(self.model.id == id), tenant_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list(
        self,
        tenant_id: int | None,
        skip: int = 0,
        limit: int = 100,
        **filters,
    ) -> list[ModelType]:
        """List rows in id order, optionally filtered by column equality."""
        stmt = self._scoped(select(self.model), tenant_id, filters)
        result = await self.session.execute(stmt.order_by(self.model.id).offset(skip).limit(limit))
        return list(result.scalars().all())

    async def create(self, tenant_id: int | None, commit: bool = True, **data) -> ModelType:
        if tenant_id is not None:
            data["tenant_id"] = tenant_id
        instance = self.model(**data)
        self.session.add(instance)
        await self._save(instance, commit)
        return instance

    async def update(self, tenant_id: int | None, id: int, commit: bool = True, **data) -> ModelType | None:
        """Set the given attributes on a row of this tenant, or return None if absent."""
        instance = await self.get_by_id(tenant_id, id)
        if instance is None:
            return None
        for key, value in data.items():
            setattr(instance, key, value)
        await self._save(instance, commit)
        return instance

    async def delete(self, tenant_id: int | None, id: int) -> bool:
        """Hard delete. Contacts are soft deleted by ContactService instead."""
        instance = await self.get_by_id(tenant_id, id)
        if instance is None:
            return False
        await self.session.delete(instance)
        await self.session.commit()
        return True

    async def _save(self, instance: ModelType, commit: bool) -> None:
        if commit:
            await self.session.commit()
            await self.session.refresh(instance)
        else:
            await self.session.flush()
