"""Authentication and registration routes."""

import logging
from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from wa_mailbox.api.deps import get_current_user, is_global_admin
from wa_mailbox.core.auth import create_user_token
from wa_mailbox.domain.services.tenant_service import TenantService
from wa_mailbox.infrastructure.ip_logger import log_ip
from wa_mailbox.persistence.database import get_db
from wa_mailbox.persistence.models.tenant import User

logger = logging.getLogger(__name__)

router = APIRouter()


class LoginRequest(BaseModel):
    """Login request."""

    email: str
    password: str


class RegisterRequest(BaseModel):
    """Self-service signup."""

    business_name: str = Field(..., min_length=1, max_length=255)
    email: str
    password: str
    subdomain: str | None = None


class LoginResponse(BaseModel):
    """Login response."""

    access_token: str
    token_type: str = "bearer"
    tenant_id: int | None = None
    role: str
    email: str
    is_global_admin: bool = False


class UserInfoResponse(BaseModel):
    """Current user info response."""

    id: int
    email: str
    role: str
    tenant_id: int | None = None
    is_global_admin: bool = False


def _client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def _login_response(user: User) -> LoginResponse:
    token = create_user_token(user.id, user.tenant_id, user.role)
    return LoginResponse(
        access_token=token,
        tenant_id=user.tenant_id,
        role=user.role,
        email=user.email,
        is_global_admin=is_global_admin(user),
    )


@router.post("/register", response_model=LoginResponse, status_code=status.HTTP_201_CREATED)
async def register(
    request: Request,
    background_tasks: BackgroundTasks,
    register_data: RegisterRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> LoginResponse:
    """Create a tenant, its admin user, placeholder credentials and a free plan."""
    try:
        tenant, user = await TenantService(db).register(
            business_name=register_data.business_name,
            email=register_data.email,
            password=register_data.password,
            subdomain=register_data.subdomain,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    background_tasks.add_task(log_ip, _client_ip(request), "register", tenant_id=tenant.id, user_id=user.id)
    return _login_response(user)


@router.post("/login", response_model=LoginResponse)
async def login(
    request: Request,
    background_tasks: BackgroundTasks,
    login_data: LoginRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> LoginResponse:
    """Exchange email and password for a bearer token."""
    user = await TenantService(db).authenticate(login_data.email, login_data.password)
    if user is None:
        logger.warning("Failed login attempt", extra={"email": login_data.email})
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
        )

    background_tasks.add_task(log_ip, _client_ip(request), "login", tenant_id=user.tenant_id, user_id=user.id)
    return _login_response(user)


@router.get("/me", response_model=UserInfoResponse)
async def get_me(
    current_user: Annotated[User, Depends(get_current_user)],
) -> UserInfoResponse:
    return UserInfoResponse(
        id=current_user.id,
        email=current_user.email,
        role=current_user.role,
        tenant_id=current_user.tenant_id,
        is_global_admin=is_global_admin(current_user),
    )
