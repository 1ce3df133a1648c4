"""Booking link token model"""

import enum
import uuid
from sqlalchemy import Column, String, DateTime, ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID

from app.database import Base, utcnow


class BookingLinkStatus(str, enum.Enum):
    ACTIVE = "active"
    REVOKED = "revoked"


class BookingLinkToken(Base):
    """Shareable capability binding a URL to one practitioner"""
    __tablename__ = "booking_link_tokens"
    __table_args__ = (
        Index("ix_booking_link_tokens_practitioner", "tenant_id", "practitioner_id", "created_at"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("tenants.id"), nullable=False)
    store_id = Column(UUID(as_uuid=True), ForeignKey("stores.id"))
    practitioner_id = Column(UUID(as_uuid=True), ForeignKey("practitioners.id"), nullable=False)
    token = Column(String(128), unique=True, nullable=False)
    status = Column(String(20), nullable=False, default=BookingLinkStatus.ACTIVE.value)
    created_by = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=utcnow)
    last_used_at = Column(DateTime)
    expires_at = Column(DateTime)
