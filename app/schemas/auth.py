"""Authentication schemas"""

import enum
from datetime import datetime
from typing import Optional
from uuid import UUID
from pydantic import BaseModel


class UserRole(str, enum.Enum):
    """Roles carried in identity-provider tokens"""
    SUPER_ADMIN = "super_admin"
    OWNER = "owner"
    MANAGER = "manager"
    STAFF = "staff"
    CUSTOMER = "customer"


ROLE_HIERARCHY = {
    UserRole.CUSTOMER: 0,
    UserRole.STAFF: 1,
    UserRole.MANAGER: 2,
    UserRole.OWNER: 3,
    UserRole.SUPER_ADMIN: 4,
}


class TokenPayload(BaseModel):
    """JWT token payload"""
    sub: str  # Staff user id, or customer id for customer tokens
    role: UserRole
    tenant_id: Optional[UUID] = None
    store_id: Optional[UUID] = None
    name: Optional[str] = None
    exp: datetime

    def has_permission(self, required_role: UserRole) -> bool:
        """Check if the caller has at least the required role level"""
        return ROLE_HIERARCHY.get(self.role, -1) >= ROLE_HIERARCHY.get(required_role, 0)

    @property
    def is_customer(self) -> bool:
        return self.role == UserRole.CUSTOMER
