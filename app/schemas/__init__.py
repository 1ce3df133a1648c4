"""Pydantic schemas for request/response validation"""

from app.schemas.auth import TokenPayload
from app.schemas.reservation import (
    ReservationCreate,
    ReservationUpdate,
    CustomerReservationCreate,
    CustomerReservationUpdate,
    StatusUpdate,
    CancelRequest,
    ReservationResponse,
    ReservationListResponse,
    ReservationStatsResponse,
    ConflictCheckResponse,
    BookedSlotsResponse,
)
from app.schemas.booking_link import (
    BookingLinkCreate,
    BookingLinkResponse,
    ResolvedBookingLinkResponse,
)

__all__ = [
    "TokenPayload",
    "ReservationCreate",
    "ReservationUpdate",
    "CustomerReservationCreate",
    "CustomerReservationUpdate",
    "StatusUpdate",
    "CancelRequest",
    "ReservationResponse",
    "ReservationListResponse",
    "ReservationStatsResponse",
    "ConflictCheckResponse",
    "BookedSlotsResponse",
    "BookingLinkCreate",
    "BookingLinkResponse",
    "ResolvedBookingLinkResponse",
]
