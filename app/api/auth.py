"""Authentication and tenant access dependencies

Tokens are issued by the identity provider; this service only verifies them.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import ValidationError as PayloadError

from app.config import settings
from app.schemas.auth import TokenPayload, UserRole
from app.services.audit import Actor
from app.services.context import TenantContext

bearer_scheme = HTTPBearer(auto_error=False)


def create_access_token(
    subject: str,
    role: UserRole,
    tenant_id: Optional[UUID] = None,
    store_id: Optional[UUID] = None,
    name: Optional[str] = None,
    expires_minutes: Optional[int] = None,
) -> str:
    """Create JWT access token"""
    minutes = expires_minutes if expires_minutes is not None else settings.access_token_expire_minutes
    expire = datetime.now(timezone.utc) + timedelta(minutes=minutes)
    payload = {
        "sub": subject,
        "role": role.value,
        "tenant_id": str(tenant_id) if tenant_id else None,
        "store_id": str(store_id) if store_id else None,
        "name": name,
        "exp": expire,
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> TokenPayload:
    """Get current caller from the bearer token"""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None:
        raise credentials_exception

    try:
        payload = jwt.decode(
            credentials.credentials, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm]
        )
        return TokenPayload(**payload)
    except (JWTError, PayloadError):
        raise credentials_exception


def require_role(required_role: UserRole):
    """Dependency factory for role-based access control"""
    async def role_checker(current_user: TokenPayload = Depends(get_current_user)) -> TokenPayload:
        if not current_user.has_permission(required_role):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return current_user
    return role_checker


async def verify_tenant_access(
    tenant_id: UUID,
    current_user: TokenPayload = Depends(get_current_user),
) -> TokenPayload:
    """Verify caller has access to the specified tenant"""
    if current_user.role == UserRole.SUPER_ADMIN:
        return current_user

    if current_user.tenant_id != tenant_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied to this tenant",
        )

    return current_user


async def get_tenant_context(
    tenant_id: UUID,
    current_user: TokenPayload = Depends(verify_tenant_access),
) -> TenantContext:
    """Per-request tenant scope passed to every service call"""
    store_id = current_user.store_id if current_user.role != UserRole.SUPER_ADMIN else None
    return TenantContext(tenant_id=tenant_id, store_id=store_id)


async def get_current_customer(
    current_user: TokenPayload = Depends(verify_tenant_access),
) -> TokenPayload:
    """Customer-only endpoints; ``sub`` is the customer id"""
    if not current_user.is_customer:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Customer token required",
        )
    try:
        UUID(current_user.sub)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        )
    return current_user


def actor_from(request: Request, user: TokenPayload) -> Actor:
    """Audit actor for the current request"""
    return Actor(
        actor_type="customer" if user.is_customer else "admin",
        actor_id=user.sub,
        name=user.name,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
