"""Reservation models"""

import enum
import uuid
from sqlalchemy import (
    Column,
    String,
    Integer,
    Boolean,
    Date,
    Time,
    DateTime,
    ForeignKey,
    Text,
    Index,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from app.database import Base, utcnow


class ReservationStatus(str, enum.Enum):
    """Reservation lifecycle states"""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELED = "canceled"
    NO_SHOW = "no_show"


class ReservationSource(str, enum.Enum):
    """Where a booking came from"""
    LINE = "line"
    WEB = "web"
    PHONE = "phone"
    WALK_IN = "walk_in"
    ADMIN = "admin"
    GOOGLE_CALENDAR = "google_calendar"
    SALONBOARD = "salonboard"
    HOTPEPPER = "hotpepper"


# Statuses that release the practitioner's time
INACTIVE_STATUSES = (ReservationStatus.CANCELED.value, ReservationStatus.NO_SHOW.value)


class Reservation(Base):
    """Appointment with one practitioner"""
    __tablename__ = "reservations"
    __table_args__ = (
        UniqueConstraint("tenant_id", "idempotency_key", name="uq_reservations_idempotency_key"),
        Index("ix_reservations_tenant_date", "tenant_id", "date"),
        Index("ix_reservations_practitioner_period", "tenant_id", "practitioner_id", "period_start"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("tenants.id"), nullable=False)
    store_id = Column(UUID(as_uuid=True), ForeignKey("stores.id"))

    # Parties (names are snapshots taken at booking time)
    customer_id = Column(UUID(as_uuid=True), ForeignKey("customers.id"), nullable=False)
    customer_name = Column(String(100))
    customer_phone = Column(String(20))
    practitioner_id = Column(UUID(as_uuid=True), ForeignKey("practitioners.id"), nullable=False)
    practitioner_name = Column(String(100))

    # Local wall-clock in the store calendar
    date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)

    # Absolute period [period_start, period_end) in naive UTC; unit of conflict detection
    period_start = Column(DateTime, nullable=False)
    period_end = Column(DateTime, nullable=False)
    timezone = Column(String(50), nullable=False)

    # Pricing (whole yen) and duration (minutes)
    subtotal = Column(Integer, default=0)
    option_total = Column(Integer, default=0)
    nomination_fee = Column(Integer, default=0)
    discount = Column(Integer, default=0)
    total_price = Column(Integer, default=0)
    duration = Column(Integer, default=0)

    # Status: pending, confirmed, completed, canceled, no_show
    status = Column(String(20), nullable=False, default=ReservationStatus.PENDING.value)
    source = Column(String(20), default=ReservationSource.LINE.value)

    # Notes
    customer_note = Column(Text)
    staff_note = Column(Text)

    # Cancellation
    canceled_at = Column(DateTime)
    cancel_reason = Column(Text)

    reminder_sent_at = Column(DateTime)

    # Integration references (opaque, owned by calendar/external sync)
    google_calendar_id = Column(String(255))
    google_calendar_event_id = Column(String(255))
    external_reservation_id = Column(String(255))

    idempotency_key = Column(String(128))

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    menu_items = relationship(
        "ReservationMenu",
        order_by="ReservationMenu.sort_order",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    option_items = relationship(
        "ReservationOption",
        order_by="ReservationOption.sort_order",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def is_active(self) -> bool:
        return self.status not in INACTIVE_STATUSES


class ReservationMenu(Base):
    """Menu snapshot line frozen at booking time"""
    __tablename__ = "reservation_menus"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("tenants.id"), nullable=False)
    reservation_id = Column(
        UUID(as_uuid=True), ForeignKey("reservations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    menu_id = Column(UUID(as_uuid=True), nullable=False)
    menu_name = Column(String(100), nullable=False)
    menu_price = Column(Integer, nullable=False)
    menu_duration = Column(Integer, nullable=False)
    sort_order = Column(Integer, default=0)
    is_main = Column(Boolean, default=False)
    created_at = Column(DateTime, default=utcnow)


class ReservationOption(Base):
    """Option snapshot line frozen at booking time"""
    __tablename__ = "reservation_options"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("tenants.id"), nullable=False)
    reservation_id = Column(
        UUID(as_uuid=True), ForeignKey("reservations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    option_id = Column(UUID(as_uuid=True), nullable=False)
    option_name = Column(String(100), nullable=False)
    option_price = Column(Integer, nullable=False)
    option_duration = Column(Integer, default=0)
    sort_order = Column(Integer, default=0)
    created_at = Column(DateTime, default=utcnow)
