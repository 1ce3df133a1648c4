"""Booking link schemas"""

from datetime import datetime
from typing import Optional
from uuid import UUID
from pydantic import BaseModel


class BookingLinkCreate(BaseModel):
    """Issue booking link request"""
    practitioner_id: UUID
    store_id: Optional[UUID] = None
    expires_at: Optional[datetime] = None
    reissue: bool = True
    allow_multiple: bool = False


class BookingLinkResponse(BaseModel):
    id: UUID
    tenant_id: UUID
    store_id: Optional[UUID]
    practitioner_id: UUID
    token: str
    url: Optional[str] = None
    status: str
    created_by: str
    created_at: datetime
    last_used_at: Optional[datetime]
    expires_at: Optional[datetime]

    class Config:
        from_attributes = True


class ResolvedBookingLinkResponse(BaseModel):
    """Public resolution of a booking link"""
    tenant_id: UUID
    tenant_key: str
    store_id: Optional[UUID] = None
    practitioner_id: UUID
    line_mode: str
    line_config_source: str

    class Config:
        from_attributes = True
