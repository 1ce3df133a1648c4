"""
Booking orchestration.

Composes store policy, practitioner and customer lookups, item snapshots and
the reservation store into the flows used by the admin console and the
customer app.
"""

from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Any, Dict, Optional, Sequence, Tuple
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.errors import NotFoundError, TerminalStateError, ValidationError
from app.models.reservation import Reservation, ReservationSource, ReservationStatus
from app.models.tenant import Customer, Practitioner, Store
from app.services.audit import Actor, write_audit_log
from app.services.context import TenantContext
from app.services.policy import StorePolicy, validate_advance_booking, validate_cancel_deadline
from app.services.reservation_store import TERMINAL_STATUSES, ReservationDraft, ReservationStore
from app.services.snapshots import resolve_selection

logger = structlog.get_logger()

MINUTES_PER_DAY = 24 * 60


@dataclass
class BookingRequest:
    """Booking input shared by create and reschedule flows"""
    date: date
    start_time: time
    practitioner_id: Optional[UUID] = None
    menu_ids: Sequence[UUID] = ()
    option_ids: Optional[Sequence[UUID]] = None
    store_id: Optional[UUID] = None
    customer_id: Optional[UUID] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    is_nomination: Optional[bool] = None
    discount: int = 0
    total_price: Optional[int] = None
    status: ReservationStatus = ReservationStatus.PENDING
    source: str = ReservationSource.LINE.value
    customer_note: Optional[str] = None
    staff_note: Optional[str] = None
    google_calendar_id: Optional[str] = None
    google_calendar_event_id: Optional[str] = None
    external_reservation_id: Optional[str] = None
    idempotency_key: Optional[str] = None


def store_policy(store: Store) -> StorePolicy:
    """Store policy with NULL fields filled from the service defaults"""
    def pick(value, default):
        return default if value is None else value

    return StorePolicy(
        timezone=store.timezone or settings.default_timezone,
        slot_duration=pick(store.slot_duration, settings.default_slot_duration),
        advance_booking_days=pick(store.advance_booking_days, settings.default_advance_booking_days),
        cancel_deadline_hours=pick(store.cancel_deadline_hours, settings.default_cancel_deadline_hours),
    )


async def resolve_store_policy(
    db: AsyncSession,
    ctx: TenantContext,
    store_id: Optional[UUID] = None,
) -> Tuple[Store, StorePolicy]:
    """Load the requested, context or first store of the tenant with its policy"""
    store_id = store_id or ctx.store_id
    stmt = select(Store).where(Store.tenant_id == ctx.tenant_id)
    if store_id:
        stmt = stmt.where(Store.id == store_id)
    else:
        stmt = stmt.order_by(Store.created_at.asc()).limit(1)

    store = (await db.execute(stmt)).scalars().first()
    if store is None:
        if store_id:
            raise NotFoundError("Store", store_id)
        raise ValidationError("Tenant has no store configured", {"tenant_id": str(ctx.tenant_id)})
    return store, store_policy(store)


def compute_end_time(start: time, duration_minutes: int) -> time:
    """Local end time of a slot; reservations may not run past midnight"""
    if duration_minutes <= 0:
        raise ValidationError("Reservation duration must be positive", {"duration": duration_minutes})
    end_minutes = start.hour * 60 + start.minute + duration_minutes
    if end_minutes >= MINUTES_PER_DAY:
        raise ValidationError(
            "Reservation must end on the same day",
            {"start_time": start.strftime("%H:%M"), "duration": duration_minutes},
        )
    return time(end_minutes // 60, end_minutes % 60)


def reservation_summary(reservation: Reservation) -> Dict[str, Any]:
    """Small JSON-safe view used for audit before/after data"""
    return {
        "status": reservation.status,
        "date": reservation.date.isoformat() if reservation.date else None,
        "start_time": reservation.start_time.strftime("%H:%M") if reservation.start_time else None,
        "end_time": reservation.end_time.strftime("%H:%M") if reservation.end_time else None,
        "practitioner_id": str(reservation.practitioner_id) if reservation.practitioner_id else None,
        "store_id": str(reservation.store_id) if reservation.store_id else None,
        "total_price": reservation.total_price,
        "menu_ids": [str(m.menu_id) for m in reservation.menu_items],
    }


async def _load_practitioner(
    db: AsyncSession, ctx: TenantContext, practitioner_id: UUID, store: Store
) -> Practitioner:
    result = await db.execute(
        select(Practitioner).where(
            Practitioner.tenant_id == ctx.tenant_id,
            Practitioner.id == practitioner_id,
        )
    )
    practitioner = result.scalar_one_or_none()
    if practitioner is None or not practitioner.is_active:
        raise NotFoundError("Practitioner", practitioner_id)
    if not practitioner.works_at(store.id):
        raise ValidationError(
            "Practitioner is not assigned to this store",
            {"practitioner_id": str(practitioner_id), "store_id": str(store.id)},
        )
    return practitioner


async def _load_customer(db: AsyncSession, ctx: TenantContext, customer_id: Optional[UUID]) -> Customer:
    if customer_id is None:
        raise ValidationError("customer_id is required", {"field": "customer_id"})
    result = await db.execute(
        select(Customer).where(Customer.tenant_id == ctx.tenant_id, Customer.id == customer_id)
    )
    customer = result.scalar_one_or_none()
    if customer is None:
        raise NotFoundError("Customer", customer_id)
    return customer


def _owned_by(reservation: Reservation, customer_id: Optional[UUID]) -> None:
    # Another customer's reservation is reported exactly like a missing one
    if customer_id is not None and reservation.customer_id != customer_id:
        raise NotFoundError("Reservation", reservation.id)


async def book(
    db: AsyncSession,
    ctx: TenantContext,
    request: BookingRequest,
    *,
    actor: Actor,
    enforce_policy: bool = True,
    include_inactive: bool = False,
    now: Optional[datetime] = None,
) -> Reservation:
    """Create a reservation from a booking request"""
    if request.practitioner_id is None:
        raise ValidationError("practitioner_id is required", {"field": "practitioner_id"})
    if not request.menu_ids:
        raise ValidationError("At least one menu is required", {"field": "menu_ids"})

    store, policy = await resolve_store_policy(db, ctx, request.store_id)
    if enforce_policy:
        validate_advance_booking(request.date, policy, now)

    practitioner = await _load_practitioner(db, ctx, request.practitioner_id, store)
    customer = await _load_customer(db, ctx, request.customer_id)
    items = await resolve_selection(
        db, ctx, request.menu_ids, request.option_ids or (), include_inactive
    )

    draft = ReservationDraft(
        practitioner_id=practitioner.id,
        practitioner_name=practitioner.name,
        customer_id=customer.id,
        customer_name=request.customer_name or customer.name,
        customer_phone=request.customer_phone or customer.phone,
        store_id=store.id,
        date=request.date,
        start_time=request.start_time,
        end_time=compute_end_time(request.start_time, items.duration),
        items=items,
        nomination_fee=(practitioner.nomination_fee or 0) if request.is_nomination else 0,
        discount=request.discount,
        total_price=request.total_price,
        status=request.status,
        source=request.source,
        customer_note=request.customer_note,
        staff_note=request.staff_note,
        google_calendar_id=request.google_calendar_id,
        google_calendar_event_id=request.google_calendar_event_id,
        external_reservation_id=request.external_reservation_id,
        idempotency_key=request.idempotency_key,
    )

    reservation, created = await ReservationStore(db).insert_or_replay(
        ctx.with_store(store.id), draft, timezone=policy.timezone
    )
    if created:
        await write_audit_log(
            db, ctx, actor, "create", "reservation", reservation.id,
            after=reservation_summary(reservation),
        )
    return reservation


async def reschedule(
    db: AsyncSession,
    ctx: TenantContext,
    reservation_id: UUID,
    request: BookingRequest,
    *,
    actor: Actor,
    enforce_policy: bool = True,
    customer_id: Optional[UUID] = None,
    include_inactive: bool = False,
    now: Optional[datetime] = None,
) -> Reservation:
    """Move or re-price an existing reservation, replacing its item snapshots"""
    store_repo = ReservationStore(db)
    existing = await store_repo.get_or_fail(ctx, reservation_id)
    _owned_by(existing, customer_id)
    if existing.status in {s.value for s in TERMINAL_STATUSES}:
        raise TerminalStateError(existing.status)

    if enforce_policy:
        # Moving a booking gives up the old slot, so the cancellation deadline applies
        _, existing_policy = await resolve_store_policy(db, ctx, existing.store_id)
        validate_cancel_deadline(existing.date, existing.start_time, existing_policy, now)

    store, policy = await resolve_store_policy(db, ctx, request.store_id or existing.store_id)
    if enforce_policy:
        validate_advance_booking(request.date, policy, now)

    practitioner = await _load_practitioner(
        db, ctx, request.practitioner_id or existing.practitioner_id, store
    )
    customer = await _load_customer(db, ctx, request.customer_id or existing.customer_id)

    menu_ids = list(request.menu_ids) or [m.menu_id for m in existing.menu_items]
    if request.option_ids is None:
        option_ids = [o.option_id for o in existing.option_items]
    else:
        option_ids = list(request.option_ids)
    items = await resolve_selection(db, ctx, menu_ids, option_ids, include_inactive)

    apply_nomination = request.is_nomination
    if apply_nomination is None:
        apply_nomination = (existing.nomination_fee or 0) > 0

    before = reservation_summary(existing)
    draft = ReservationDraft(
        practitioner_id=practitioner.id,
        practitioner_name=practitioner.name,
        customer_id=customer.id,
        customer_name=request.customer_name or existing.customer_name or customer.name,
        customer_phone=request.customer_phone or existing.customer_phone or customer.phone,
        store_id=store.id,
        date=request.date,
        start_time=request.start_time,
        end_time=compute_end_time(request.start_time, items.duration),
        items=items,
        nomination_fee=(practitioner.nomination_fee or 0) if apply_nomination else 0,
        discount=request.discount,
        total_price=request.total_price,
        source=existing.source,
        customer_note=request.customer_note if request.customer_note is not None else existing.customer_note,
        staff_note=request.staff_note if request.staff_note is not None else existing.staff_note,
        google_calendar_id=request.google_calendar_id or existing.google_calendar_id,
        google_calendar_event_id=request.google_calendar_event_id or existing.google_calendar_event_id,
        external_reservation_id=request.external_reservation_id or existing.external_reservation_id,
    )

    reservation = await store_repo.update_with_items(
        ctx.with_store(store.id), reservation_id, draft, timezone=policy.timezone
    )
    await write_audit_log(
        db, ctx, actor, "update", "reservation", reservation.id,
        before=before, after=reservation_summary(reservation),
    )
    return reservation


async def change_status(
    db: AsyncSession,
    ctx: TenantContext,
    reservation_id: UUID,
    status: ReservationStatus,
    *,
    actor: Actor,
    reason: Optional[str] = None,
) -> Reservation:
    """Staff-driven lifecycle transition"""
    store_repo = ReservationStore(db)
    existing = await store_repo.get_or_fail(ctx, reservation_id)
    before_status = existing.status

    reservation = await store_repo.update_status(ctx, reservation_id, status, reason)
    await write_audit_log(
        db, ctx, actor, "status_change", "reservation", reservation.id,
        before={"status": before_status}, after={"status": reservation.status},
    )
    return reservation


async def cancel(
    db: AsyncSession,
    ctx: TenantContext,
    reservation_id: UUID,
    *,
    actor: Actor,
    reason: Optional[str] = None,
    enforce_policy: bool = False,
    customer_id: Optional[UUID] = None,
    now: Optional[datetime] = None,
) -> Reservation:
    """Cancel a reservation; customer cancellations respect the store deadline"""
    store_repo = ReservationStore(db)
    existing = await store_repo.get_or_fail(ctx, reservation_id)
    _owned_by(existing, customer_id)

    if enforce_policy:
        if existing.status in {s.value for s in TERMINAL_STATUSES}:
            raise TerminalStateError(existing.status, ReservationStatus.CANCELED.value)
        _, policy = await resolve_store_policy(db, ctx, existing.store_id)
        validate_cancel_deadline(existing.date, existing.start_time, policy, now)

    before_status = existing.status
    reservation = await store_repo.cancel(ctx, reservation_id, reason)
    await write_audit_log(
        db, ctx, actor, "cancel", "reservation", reservation.id,
        before={"status": before_status},
        after={"status": reservation.status, "cancel_reason": reason},
    )
    logger.info(
        "reservation.canceled",
        tenant_id=str(ctx.tenant_id),
        reservation_id=str(reservation.id),
        actor_type=actor.actor_type,
    )
    return reservation
