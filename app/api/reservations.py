"""Reservation management API endpoints (admin console)"""

from datetime import date, time
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.auth import actor_from, get_tenant_context, require_role
from app.database import get_db
from app.models.reservation import ReservationStatus
from app.schemas.auth import TokenPayload, UserRole
from app.schemas.reservation import (
    ReservationCreate,
    ReservationUpdate,
    StatusUpdate,
    ReservationResponse,
    ReservationListResponse,
    ReservationStatsResponse,
    ConflictCheckResponse,
)
from app.services import booking
from app.services.context import TenantContext
from app.services.reservation_store import ReservationFilters, ReservationStore

router = APIRouter()


@router.get("", response_model=ReservationListResponse)
async def list_reservations(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[List[ReservationStatus]] = Query(None),
    practitioner_id: Optional[UUID] = None,
    customer_id: Optional[UUID] = None,
    date: Optional[date] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    sort_by: str = Query("date", pattern="^(date|created_at)$"),
    sort_order: str = Query("asc", pattern="^(asc|desc)$"),
    ctx: TenantContext = Depends(get_tenant_context),
    current_user: TokenPayload = Depends(require_role(UserRole.STAFF)),
    db: AsyncSession = Depends(get_db),
):
    """List reservations for a tenant with pagination"""
    filters = ReservationFilters(
        status=[s.value for s in status] if status else None,
        practitioner_id=practitioner_id,
        customer_id=customer_id,
        date=date,
        date_from=date_from,
        date_to=date_to,
    )
    result = await ReservationStore(db).list_paginated(
        ctx, filters, page=page, limit=limit, sort_by=sort_by, sort_order=sort_order
    )
    return ReservationListResponse(
        data=result.data,
        page=result.page,
        limit=result.limit,
        total=result.total,
        has_more=result.has_more,
    )


@router.post("", response_model=ReservationResponse, status_code=201)
async def create_reservation(
    request: Request,
    reservation_data: ReservationCreate,
    idempotency_key: Optional[str] = Header(None, max_length=255),
    ctx: TenantContext = Depends(get_tenant_context),
    current_user: TokenPayload = Depends(require_role(UserRole.STAFF)),
    db: AsyncSession = Depends(get_db),
):
    """Create a reservation on behalf of a customer"""
    booking_request = booking.BookingRequest(
        practitioner_id=reservation_data.practitioner_id,
        customer_id=reservation_data.customer_id,
        menu_ids=reservation_data.menu_ids,
        option_ids=reservation_data.option_ids,
        date=reservation_data.date,
        start_time=reservation_data.start_time,
        store_id=reservation_data.store_id,
        customer_name=reservation_data.customer_name,
        customer_phone=reservation_data.customer_phone,
        is_nomination=reservation_data.is_nomination,
        discount=reservation_data.discount,
        total_price=reservation_data.total_price,
        status=reservation_data.status,
        source=reservation_data.source.value,
        customer_note=reservation_data.customer_note,
        staff_note=reservation_data.staff_note,
        google_calendar_id=reservation_data.google_calendar_id,
        google_calendar_event_id=reservation_data.google_calendar_event_id,
        external_reservation_id=reservation_data.external_reservation_id,
        idempotency_key=idempotency_key,
    )
    # Staff may book outside the customer-facing advance window
    return await booking.book(
        db, ctx, booking_request,
        actor=actor_from(request, current_user),
        enforce_policy=False,
        include_inactive=True,
    )


@router.get("/conflicts", response_model=ConflictCheckResponse)
async def check_conflict(
    practitioner_id: UUID,
    date: date,
    start_time: time,
    end_time: time,
    exclude_id: Optional[UUID] = None,
    store_id: Optional[UUID] = None,
    ctx: TenantContext = Depends(get_tenant_context),
    current_user: TokenPayload = Depends(require_role(UserRole.STAFF)),
    db: AsyncSession = Depends(get_db),
):
    """Advisory overlap check for the booking UI"""
    _, policy = await booking.resolve_store_policy(db, ctx, store_id)
    has_conflict = await ReservationStore(db).has_conflict(
        ctx, practitioner_id, date, start_time, end_time,
        exclude_id=exclude_id, timezone=policy.timezone,
    )
    return ConflictCheckResponse(has_conflict=has_conflict)


@router.get("/stats", response_model=ReservationStatsResponse)
async def get_stats(
    start_date: date,
    end_date: date,
    ctx: TenantContext = Depends(get_tenant_context),
    current_user: TokenPayload = Depends(require_role(UserRole.MANAGER)),
    db: AsyncSession = Depends(get_db),
):
    """Reservation counts and completed revenue for a date range"""
    stats = await ReservationStore(db).get_stats(ctx, start_date, end_date)
    return ReservationStatsResponse(
        start_date=start_date,
        end_date=end_date,
        total=stats.total,
        by_status=stats.by_status,
        total_revenue=stats.total_revenue,
    )


@router.get("/reminders/due", response_model=List[ReservationResponse])
async def list_due_reminders(
    date: date,
    ctx: TenantContext = Depends(get_tenant_context),
    current_user: TokenPayload = Depends(require_role(UserRole.STAFF)),
    db: AsyncSession = Depends(get_db),
):
    """Reservations on a date still waiting for their reminder"""
    return await ReservationStore(db).list_due_reminders(ctx, date)


@router.get("/{reservation_id}", response_model=ReservationResponse)
async def get_reservation(
    reservation_id: UUID,
    ctx: TenantContext = Depends(get_tenant_context),
    current_user: TokenPayload = Depends(require_role(UserRole.STAFF)),
    db: AsyncSession = Depends(get_db),
):
    """Get reservation details"""
    return await ReservationStore(db).get_or_fail(ctx, reservation_id)


@router.put("/{reservation_id}", response_model=ReservationResponse)
async def update_reservation(
    request: Request,
    reservation_id: UUID,
    reservation_data: ReservationUpdate,
    ctx: TenantContext = Depends(get_tenant_context),
    current_user: TokenPayload = Depends(require_role(UserRole.STAFF)),
    db: AsyncSession = Depends(get_db),
):
    """Update reservation time, practitioner and items"""
    booking_request = booking.BookingRequest(
        date=reservation_data.date,
        start_time=reservation_data.start_time,
        practitioner_id=reservation_data.practitioner_id,
        customer_id=reservation_data.customer_id,
        menu_ids=reservation_data.menu_ids,
        option_ids=reservation_data.option_ids,
        store_id=reservation_data.store_id,
        customer_name=reservation_data.customer_name,
        customer_phone=reservation_data.customer_phone,
        is_nomination=reservation_data.is_nomination,
        discount=reservation_data.discount,
        total_price=reservation_data.total_price,
        customer_note=reservation_data.customer_note,
        staff_note=reservation_data.staff_note,
        google_calendar_id=reservation_data.google_calendar_id,
        google_calendar_event_id=reservation_data.google_calendar_event_id,
        external_reservation_id=reservation_data.external_reservation_id,
    )
    return await booking.reschedule(
        db, ctx, reservation_id, booking_request,
        actor=actor_from(request, current_user),
        enforce_policy=False,
        include_inactive=True,
    )


@router.patch("/{reservation_id}/status", response_model=ReservationResponse)
async def update_reservation_status(
    request: Request,
    reservation_id: UUID,
    status_data: StatusUpdate,
    ctx: TenantContext = Depends(get_tenant_context),
    current_user: TokenPayload = Depends(require_role(UserRole.STAFF)),
    db: AsyncSession = Depends(get_db),
):
    """Apply a lifecycle transition"""
    return await booking.change_status(
        db, ctx, reservation_id, status_data.status,
        actor=actor_from(request, current_user),
        reason=status_data.reason,
    )


@router.post("/{reservation_id}/reminder-sent", response_model=ReservationResponse)
async def mark_reminder_sent(
    reservation_id: UUID,
    ctx: TenantContext = Depends(get_tenant_context),
    current_user: TokenPayload = Depends(require_role(UserRole.STAFF)),
    db: AsyncSession = Depends(get_db),
):
    """Record reminder delivery"""
    return await ReservationStore(db).mark_reminder_sent(ctx, reservation_id)


@router.delete("/{reservation_id}", response_model=ReservationResponse)
async def cancel_reservation(
    request: Request,
    reservation_id: UUID,
    reason: Optional[str] = Query(None, max_length=500),
    ctx: TenantContext = Depends(get_tenant_context),
    current_user: TokenPayload = Depends(require_role(UserRole.STAFF)),
    db: AsyncSession = Depends(get_db),
):
    """Cancel reservation (kept for history, never deleted)"""
    return await booking.cancel(
        db, ctx, reservation_id,
        actor=actor_from(request, current_user),
        reason=reason,
    )
