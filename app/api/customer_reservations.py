"""Customer self-serve reservation endpoints"""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.auth import actor_from, get_current_customer, get_tenant_context
from app.database import get_db
from app.models.reservation import ReservationSource, ReservationStatus
from app.schemas.auth import TokenPayload
from app.schemas.reservation import (
    CustomerReservationCreate,
    CustomerReservationUpdate,
    CancelRequest,
    ReservationResponse,
)
from app.services import booking
from app.services.context import TenantContext
from app.services.reservation_store import ReservationFilters, ReservationStore

router = APIRouter()


@router.get("", response_model=List[ReservationResponse])
async def list_my_reservations(
    ctx: TenantContext = Depends(get_tenant_context),
    customer: TokenPayload = Depends(get_current_customer),
    db: AsyncSession = Depends(get_db),
):
    """Caller's own reservations"""
    return await ReservationStore(db).list(ctx, ReservationFilters(customer_id=UUID(customer.sub)))


@router.post("", response_model=ReservationResponse, status_code=201)
async def create_my_reservation(
    request: Request,
    reservation_data: CustomerReservationCreate,
    ctx: TenantContext = Depends(get_tenant_context),
    customer: TokenPayload = Depends(get_current_customer),
    db: AsyncSession = Depends(get_db),
):
    """Book a slot; the store's advance-booking window applies"""
    booking_request = booking.BookingRequest(
        practitioner_id=reservation_data.practitioner_id,
        customer_id=UUID(customer.sub),
        menu_ids=reservation_data.menu_ids,
        option_ids=reservation_data.option_ids,
        date=reservation_data.date,
        start_time=reservation_data.start_time,
        store_id=reservation_data.store_id,
        customer_name=reservation_data.customer_name,
        customer_phone=reservation_data.customer_phone,
        is_nomination=reservation_data.is_nomination,
        status=ReservationStatus.PENDING,
        source=ReservationSource.LINE.value,
        customer_note=reservation_data.customer_note,
    )
    return await booking.book(db, ctx, booking_request, actor=actor_from(request, customer))


@router.put("/{reservation_id}", response_model=ReservationResponse)
async def reschedule_my_reservation(
    request: Request,
    reservation_id: UUID,
    reservation_data: CustomerReservationUpdate,
    ctx: TenantContext = Depends(get_tenant_context),
    customer: TokenPayload = Depends(get_current_customer),
    db: AsyncSession = Depends(get_db),
):
    """Move a reservation; allowed only before the cancellation deadline"""
    booking_request = booking.BookingRequest(
        date=reservation_data.date,
        start_time=reservation_data.start_time,
        practitioner_id=reservation_data.practitioner_id,
        menu_ids=reservation_data.menu_ids,
        option_ids=reservation_data.option_ids,
        store_id=reservation_data.store_id,
        is_nomination=reservation_data.is_nomination,
        customer_note=reservation_data.customer_note,
    )
    return await booking.reschedule(
        db, ctx, reservation_id, booking_request,
        actor=actor_from(request, customer),
        customer_id=UUID(customer.sub),
    )


@router.post("/{reservation_id}/cancel", response_model=ReservationResponse)
async def cancel_my_reservation(
    request: Request,
    reservation_id: UUID,
    cancel_data: CancelRequest,
    ctx: TenantContext = Depends(get_tenant_context),
    customer: TokenPayload = Depends(get_current_customer),
    db: AsyncSession = Depends(get_db),
):
    """Cancel before the store's cancellation deadline"""
    return await booking.cancel(
        db, ctx, reservation_id,
        actor=actor_from(request, customer),
        reason=cancel_data.reason,
        enforce_policy=True,
        customer_id=UUID(customer.sub),
    )
