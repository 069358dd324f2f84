"""FastAPI dependencies for auth, tenant resolution and plan features."""

from typing import Annotated, Callable

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from wa_mailbox.core.auth import decode_access_token
from wa_mailbox.core.tenant_context import set_tenant_context
from wa_mailbox.domain.services.subscription_service import SubscriptionService
from wa_mailbox.persistence.database import get_db
from wa_mailbox.persistence.models.tenant import User
from wa_mailbox.persistence.repositories.tenant_repository import UserRepository

security = HTTPBearer()


def is_global_admin(user: User) -> bool:
    """Check if user is a global admin (no tenant_id and admin role)."""
    return user.tenant_id is None and user.role == "admin"


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """Get current authenticated user from JWT token.

    Args:
        credentials: HTTP bearer credentials
        db: Database session

    Returns:
        Current user

    Raises:
        HTTPException: If authentication fails
    """
    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        user_id = int(payload.get("sub"))
    except (ValueError, TypeError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )

    user = await UserRepository(db).get_by_id(None, user_id)
    if user is None or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )
    return user


async def get_current_tenant(
    current_user: Annotated[User, Depends(get_current_user)],
    x_tenant_id: Annotated[str | None, Header(alias="X-Tenant-Id")] = None,
) -> int | None:
    """Get current tenant from user context or header override.

    Global admins can pass X-Tenant-Id header to impersonate a tenant.

    Raises:
        HTTPException: If the header value is not an integer
    """
    if is_global_admin(current_user) and x_tenant_id:
        try:
            tenant_id = int(x_tenant_id)
        except (ValueError, TypeError):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid X-Tenant-Id header value",
            )
    else:
        tenant_id = current_user.tenant_id

    set_tenant_context(tenant_id)
    return tenant_id


async def require_global_admin(
    current_user: Annotated[User, Depends(get_current_user)],
) -> User:
    if not is_global_admin(current_user):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Global admin access required",
        )
    return current_user


async def require_tenant_context(
    tenant_id: Annotated[int | None, Depends(get_current_tenant)],
) -> int:
    """Require a tenant context to be present.

    Returns:
        Tenant ID (guaranteed non-None)

    Raises:
        HTTPException: If no tenant context is present
    """
    if tenant_id is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Tenant context required",
        )
    return tenant_id


async def require_tenant_admin(
    current_user: Annotated[User, Depends(get_current_user)],
    tenant_id: Annotated[int, Depends(require_tenant_context)],
) -> tuple[User, int]:
    """Require the tenant's admin (or an impersonating global admin).

    Returns:
        Tuple of (user, tenant_id)
    """
    if is_global_admin(current_user):
        return current_user, tenant_id
    if current_user.tenant_id != tenant_id or current_user.role != "tenant_admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Tenant admin access required",
        )
    return current_user, tenant_id


async def require_write_access(
    current_user: Annotated[User, Depends(get_current_user)],
    tenant_id: Annotated[int, Depends(require_tenant_context)],
) -> tuple[User, int]:
    """Viewers are read-only."""
    if current_user.role == "viewer":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Read-only access",
        )
    return current_user, tenant_id


def require_feature(feature: str) -> Callable:
    """Build a dependency that rejects tenants whose plan lacks a feature.

    Usage:
        @router.get("", dependencies=[Depends(require_feature("broadcasts"))])
    """

    async def _check_feature(
        tenant_id: Annotated[int, Depends(require_tenant_context)],
        db: Annotated[AsyncSession, Depends(get_db)],
    ) -> int:
        if not await SubscriptionService(db).has_feature(tenant_id, feature):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Your plan does not include '{feature}'. Please upgrade your plan.",
            )
        return tenant_id

    return _check_feature
