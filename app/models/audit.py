"""Audit log model"""

import uuid
from sqlalchemy import Column, String, DateTime, ForeignKey, JSON, Text
from sqlalchemy.dialects.postgresql import UUID

from app.database import Base, utcnow


class AuditLog(Base):
    """Audit trail for reservation and booking-link changes"""
    __tablename__ = "audit_logs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("tenants.id"), nullable=False, index=True)

    # Actor information
    actor_id = Column(String(255))  # Identity-provider subject or null for system
    actor_type = Column(String(50))  # admin, customer, system
    actor_name = Column(String(255))

    # Action details
    action = Column(String(100), nullable=False)  # create, update, status_change, revoke, ...
    resource_type = Column(String(50))  # reservation, booking_link
    resource_id = Column(UUID(as_uuid=True))

    # Change data
    data_json = Column(JSON)  # {"before": {...}, "after": {...}}

    # Request context
    ip_address = Column(String(50))
    user_agent = Column(Text)

    created_at = Column(DateTime, default=utcnow)
