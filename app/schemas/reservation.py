"""Reservation schemas"""

from datetime import date, datetime, time
from typing import Optional, List, Dict
from uuid import UUID
from pydantic import BaseModel, Field, field_serializer

from app.models.reservation import ReservationSource, ReservationStatus


class ReservationCreate(BaseModel):
    """Admin create reservation request"""
    practitioner_id: UUID
    customer_id: UUID
    menu_ids: List[UUID] = Field(..., min_length=1)
    option_ids: List[UUID] = []
    date: date
    start_time: time
    store_id: Optional[UUID] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    is_nomination: bool = False
    discount: int = Field(0, ge=0)
    total_price: Optional[int] = None
    status: ReservationStatus = ReservationStatus.CONFIRMED
    source: ReservationSource = ReservationSource.ADMIN
    customer_note: Optional[str] = Field(None, max_length=500)
    staff_note: Optional[str] = None
    google_calendar_id: Optional[str] = None
    google_calendar_event_id: Optional[str] = None
    external_reservation_id: Optional[str] = None


class ReservationUpdate(BaseModel):
    """Admin full update (items are re-snapshotted)"""
    date: date
    start_time: time
    practitioner_id: Optional[UUID] = None
    customer_id: Optional[UUID] = None
    menu_ids: List[UUID] = []
    option_ids: Optional[List[UUID]] = None
    store_id: Optional[UUID] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    is_nomination: Optional[bool] = None
    discount: int = Field(0, ge=0)
    total_price: Optional[int] = None
    customer_note: Optional[str] = Field(None, max_length=500)
    staff_note: Optional[str] = None
    google_calendar_id: Optional[str] = None
    google_calendar_event_id: Optional[str] = None
    external_reservation_id: Optional[str] = None


class CustomerReservationCreate(BaseModel):
    """Customer self-serve booking"""
    practitioner_id: UUID
    menu_ids: List[UUID] = Field(..., min_length=1)
    option_ids: List[UUID] = []
    date: date
    start_time: time
    store_id: Optional[UUID] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    is_nomination: bool = False
    customer_note: Optional[str] = Field(None, max_length=500)


class CustomerReservationUpdate(BaseModel):
    """Customer reschedule"""
    date: date
    start_time: time
    practitioner_id: Optional[UUID] = None
    menu_ids: List[UUID] = []
    option_ids: Optional[List[UUID]] = None
    store_id: Optional[UUID] = None
    is_nomination: Optional[bool] = None
    customer_note: Optional[str] = Field(None, max_length=500)


class StatusUpdate(BaseModel):
    status: ReservationStatus
    reason: Optional[str] = Field(None, max_length=500)


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class ReservationMenuResponse(BaseModel):
    menu_id: UUID
    menu_name: str
    menu_price: int
    menu_duration: int
    sort_order: int
    is_main: bool

    class Config:
        from_attributes = True


class ReservationOptionResponse(BaseModel):
    option_id: UUID
    option_name: str
    option_price: int
    option_duration: int

    class Config:
        from_attributes = True


class ReservationResponse(BaseModel):
    """Reservation response"""
    id: UUID
    tenant_id: UUID
    store_id: Optional[UUID]
    customer_id: UUID
    customer_name: Optional[str]
    customer_phone: Optional[str]
    practitioner_id: UUID
    practitioner_name: Optional[str]
    date: date
    start_time: time
    end_time: time
    timezone: str
    menu_items: List[ReservationMenuResponse] = []
    option_items: List[ReservationOptionResponse] = []
    subtotal: int
    option_total: int
    nomination_fee: int
    discount: int
    total_price: int
    duration: int
    status: str
    source: Optional[str]
    customer_note: Optional[str]
    staff_note: Optional[str]
    canceled_at: Optional[datetime]
    cancel_reason: Optional[str]
    reminder_sent_at: Optional[datetime]
    google_calendar_id: Optional[str]
    google_calendar_event_id: Optional[str]
    external_reservation_id: Optional[str]
    created_at: datetime
    updated_at: datetime

    @field_serializer("start_time", "end_time")
    def serialize_wall_clock(self, value: time) -> str:
        return value.strftime("%H:%M")

    class Config:
        from_attributes = True


class ReservationListResponse(BaseModel):
    """Paginated reservation list"""
    data: List[ReservationResponse]
    page: int
    limit: int
    total: int
    has_more: bool


class ReservationStatsResponse(BaseModel):
    start_date: date
    end_date: date
    total: int
    by_status: Dict[str, int]
    total_revenue: int


class ConflictCheckResponse(BaseModel):
    has_conflict: bool


class BookedSlotResponse(BaseModel):
    start_time: str
    end_time: str


class BookedSlotsResponse(BaseModel):
    practitioner_id: UUID
    date: date
    slots: List[BookedSlotResponse] = []
