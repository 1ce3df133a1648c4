"""Database models"""

from app.models.tenant import Tenant, Store, Practitioner, Customer
from app.models.menu import Menu, MenuOption
from app.models.reservation import (
    Reservation,
    ReservationMenu,
    ReservationOption,
    ReservationStatus,
    ReservationSource,
)
from app.models.booking_link import BookingLinkToken, BookingLinkStatus
from app.models.audit import AuditLog

__all__ = [
    "Tenant",
    "Store",
    "Practitioner",
    "Customer",
    "Menu",
    "MenuOption",
    "Reservation",
    "ReservationMenu",
    "ReservationOption",
    "ReservationStatus",
    "ReservationSource",
    "BookingLinkToken",
    "BookingLinkStatus",
    "AuditLog",
]
