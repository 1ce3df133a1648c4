"""Tenant-related models"""

import uuid
from sqlalchemy import Column, String, Integer, Boolean, DateTime, ForeignKey, JSON
from sqlalchemy.dialects.postgresql import UUID

from app.database import Base, utcnow


class Tenant(Base):
    """Salon business owning stores, staff and reservations"""
    __tablename__ = "tenants"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    slug = Column(String(100), unique=True, nullable=False)  # Public tenant key used in booking URLs
    status = Column(String(20), default="active")  # active, trial, suspended, canceled

    # LINE messaging configuration
    # {"mode": "tenant|store|practitioner", "liff_id": ..., "channel_id": ..., ...}
    line_config = Column(JSON, default=dict)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class Store(Base):
    """Physical store with its own booking policy"""
    __tablename__ = "stores"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("tenants.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    status = Column(String(20), default="active")  # active, inactive

    # Reservation policy; NULL falls back to the service defaults
    timezone = Column(String(50))
    slot_duration = Column(Integer)
    advance_booking_days = Column(Integer)
    cancel_deadline_hours = Column(Integer)

    line_config = Column(JSON, default=dict)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class Practitioner(Base):
    """Staff member owning an independent booking calendar"""
    __tablename__ = "practitioners"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("tenants.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    is_active = Column(Boolean, default=True)
    nomination_fee = Column(Integer, default=0)
    store_ids = Column(JSON, default=list)  # Empty list: works at every store
    line_config = Column(JSON, default=dict)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def works_at(self, store_id) -> bool:
        """Check store assignment; unassigned practitioners work everywhere"""
        assigned = [str(s) for s in (self.store_ids or [])]
        return not assigned or str(store_id) in assigned


class Customer(Base):
    """Customer record (owned by the CRM side, read here for denormalization)"""
    __tablename__ = "customers"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("tenants.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    phone = Column(String(20))
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
