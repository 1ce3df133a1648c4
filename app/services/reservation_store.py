"""
Reservation store.

Transactional create/update/status operations for reservations. The
no-overlap rule (no two active reservations of one practitioner may share
any instant) is enforced inside the same transaction as the write:

* every mutating path takes a practitioner-scoped lock before checking for
  overlaps (``pg_advisory_xact_lock`` on PostgreSQL, a process-local
  ``asyncio.Lock`` elsewhere), and
* on PostgreSQL the ``ex_reservations_no_overlap`` exclusion constraint
  rejects any overlapping row that reaches the table; the resulting
  ``IntegrityError`` surfaces as ``ConflictError``.

``has_conflict`` is a read-only pre-flight check for UIs and gives no
guarantee on its own.
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass, field, replace
from datetime import date, datetime, time
from typing import Dict, List, Optional, Sequence, Tuple, Union
from uuid import UUID

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import utcnow
from app.errors import ConflictError, NotFoundError, TerminalStateError, ValidationError
from app.models.reservation import (
    INACTIVE_STATUSES,
    Reservation,
    ReservationMenu,
    ReservationOption,
    ReservationSource,
    ReservationStatus,
)
from app.services.context import TenantContext
from app.services.locks import KeyedLocks, advisory_xact_lock, is_postgresql
from app.services.policy import local_period
from app.services.snapshots import ItemSelection

logger = structlog.get_logger()

EXCLUSION_CONSTRAINT = "ex_reservations_no_overlap"
IDEMPOTENCY_CONSTRAINT = "uq_reservations_idempotency_key"
EXCLUSION_VIOLATION = "23P01"

TERMINAL_STATUSES = frozenset(
    {ReservationStatus.COMPLETED, ReservationStatus.CANCELED, ReservationStatus.NO_SHOW}
)

ALLOWED_TRANSITIONS = {
    ReservationStatus.PENDING: frozenset(
        {ReservationStatus.CONFIRMED, ReservationStatus.CANCELED, ReservationStatus.NO_SHOW}
    ),
    ReservationStatus.CONFIRMED: frozenset(
        {ReservationStatus.COMPLETED, ReservationStatus.CANCELED, ReservationStatus.NO_SHOW}
    ),
    ReservationStatus.COMPLETED: frozenset(),
    ReservationStatus.CANCELED: frozenset(),
    ReservationStatus.NO_SHOW: frozenset(),
}

INITIAL_STATUSES = frozenset({ReservationStatus.PENDING, ReservationStatus.CONFIRMED})

# Process-local fallback for dialects without advisory locks
_practitioner_locks = KeyedLocks()


def compute_total(subtotal: int, option_total: int, nomination_fee: int, discount: int) -> int:
    """Canonical reservation total"""
    return subtotal + option_total + nomination_fee - discount


def price_breakdown(
    subtotal: int,
    option_total: int,
    nomination_fee: int = 0,
    discount: int = 0,
    total_price: Optional[int] = None,
) -> Dict[str, int]:
    """Validate pricing components and reconcile a caller-supplied total"""
    components = {
        "subtotal": subtotal,
        "option_total": option_total,
        "nomination_fee": nomination_fee,
        "discount": discount,
    }
    negative = [name for name, value in components.items() if value < 0]
    if negative:
        raise ValidationError("Price components must not be negative", {"fields": negative})

    expected = compute_total(subtotal, option_total, nomination_fee, discount)
    if expected < 0:
        raise ValidationError("Discount exceeds the reservation price", components)
    if total_price is not None and total_price != expected:
        raise ValidationError(
            "Total price does not match subtotal + option_total + nomination_fee - discount",
            {**components, "total_price": total_price, "expected_total": expected},
        )
    return {**components, "total_price": expected}


@dataclass
class ReservationDraft:
    """Caller-supplied values for a reservation write"""
    practitioner_id: UUID
    customer_id: UUID
    date: date
    start_time: time
    end_time: time
    items: Optional[ItemSelection] = None
    store_id: Optional[UUID] = None
    practitioner_name: Optional[str] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    nomination_fee: int = 0
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


@dataclass
class ReservationFilters:
    status: Union[None, str, Sequence[str]] = None
    practitioner_id: Optional[UUID] = None
    customer_id: Optional[UUID] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    date: Optional[date] = None


@dataclass
class ReservationPage:
    data: List[Reservation]
    page: int
    limit: int
    total: int
    has_more: bool


@dataclass
class ReservationStats:
    total: int
    by_status: Dict[str, int] = field(default_factory=dict)
    total_revenue: int = 0


@dataclass(frozen=True)
class BookedSlot:
    start_time: time
    end_time: time


def _status_value(status: Union[str, ReservationStatus]) -> ReservationStatus:
    try:
        return ReservationStatus(status)
    except ValueError:
        raise ValidationError(f"Unknown reservation status: {status}", {"status": str(status)})


def _violated_constraint(exc: IntegrityError) -> Optional[str]:
    orig = exc.orig
    message = str(orig)
    if getattr(orig, "sqlstate", None) == EXCLUSION_VIOLATION or EXCLUSION_CONSTRAINT in message:
        return EXCLUSION_CONSTRAINT
    if IDEMPOTENCY_CONSTRAINT in message or "idempotency_key" in message:
        return IDEMPOTENCY_CONSTRAINT
    return None


class ReservationStore:
    """Tenant-scoped reservation persistence"""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ------------------------------------------------------------------
    # Transactions and locking
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _transaction(self):
        """Commit on success, roll back on any error"""
        try:
            yield
            await self.db.commit()
        except IntegrityError as exc:
            await self.db.rollback()
            if _violated_constraint(exc) == EXCLUSION_CONSTRAINT:
                raise ConflictError(
                    "The selected time overlaps an existing reservation",
                    {"constraint": EXCLUSION_CONSTRAINT},
                ) from exc
            raise
        except BaseException:
            await self.db.rollback()
            raise

    @asynccontextmanager
    async def _practitioner_transaction(self, ctx: TenantContext, practitioner_id: UUID):
        """Transaction holding the practitioner's booking lock until commit"""
        if is_postgresql(self.db):
            async with self._transaction():
                await advisory_xact_lock(self.db, f"reservation:{ctx.tenant_id}:{practitioner_id}")
                yield
        else:
            async with _practitioner_locks.hold((ctx.tenant_id, practitioner_id)):
                async with self._transaction():
                    yield

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _scoped(self, ctx: TenantContext):
        return select(Reservation).where(Reservation.tenant_id == ctx.tenant_id)

    def _apply_filters(self, stmt, filters: ReservationFilters):
        if filters.status:
            if isinstance(filters.status, (str, ReservationStatus)):
                stmt = stmt.where(Reservation.status == _status_value(filters.status).value)
            else:
                values = [_status_value(s).value for s in filters.status]
                stmt = stmt.where(Reservation.status.in_(values))
        if filters.practitioner_id:
            stmt = stmt.where(Reservation.practitioner_id == filters.practitioner_id)
        if filters.customer_id:
            stmt = stmt.where(Reservation.customer_id == filters.customer_id)
        if filters.date:
            stmt = stmt.where(Reservation.date == filters.date)
        if filters.date_from:
            stmt = stmt.where(Reservation.date >= filters.date_from)
        if filters.date_to:
            stmt = stmt.where(Reservation.date <= filters.date_to)
        return stmt

    async def get(self, ctx: TenantContext, reservation_id: UUID) -> Optional[Reservation]:
        result = await self.db.execute(
            self._scoped(ctx)
            .where(Reservation.id == reservation_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_or_fail(self, ctx: TenantContext, reservation_id: UUID) -> Reservation:
        reservation = await self.get(ctx, reservation_id)
        if reservation is None:
            raise NotFoundError("Reservation", reservation_id)
        return reservation

    async def _get_for_update(self, ctx: TenantContext, reservation_id: UUID) -> Reservation:
        result = await self.db.execute(
            self._scoped(ctx)
            .where(Reservation.id == reservation_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        reservation = result.scalar_one_or_none()
        if reservation is None:
            raise NotFoundError("Reservation", reservation_id)
        return reservation

    async def list(
        self, ctx: TenantContext, filters: Optional[ReservationFilters] = None
    ) -> List[Reservation]:
        """Filtered reservations ordered by date, then start time"""
        stmt = self._apply_filters(self._scoped(ctx), filters or ReservationFilters())
        stmt = stmt.order_by(
            Reservation.date.asc(), Reservation.start_time.asc(), Reservation.created_at.asc()
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def list_paginated(
        self,
        ctx: TenantContext,
        filters: Optional[ReservationFilters] = None,
        page: int = 1,
        limit: int = 20,
        sort_by: str = "date",
        sort_order: str = "asc",
    ) -> ReservationPage:
        filters = filters or ReservationFilters()
        page = max(page, 1)
        limit = max(limit, 1)
        offset = (page - 1) * limit

        count_stmt = self._apply_filters(
            select(func.count(Reservation.id)).where(Reservation.tenant_id == ctx.tenant_id),
            filters,
        )
        total = (await self.db.execute(count_stmt)).scalar() or 0

        descending = sort_order.lower() == "desc"
        if sort_by == "created_at":
            columns = [Reservation.created_at, Reservation.id]
        elif sort_by == "date":
            columns = [Reservation.date, Reservation.start_time, Reservation.id]
        else:
            raise ValidationError(f"Unsupported sort field: {sort_by}", {"sort_by": sort_by})
        ordering = [c.desc() if descending else c.asc() for c in columns]

        stmt = self._apply_filters(self._scoped(ctx), filters)
        stmt = stmt.order_by(*ordering).offset(offset).limit(limit)
        rows = list((await self.db.execute(stmt)).scalars().all())

        return ReservationPage(
            data=rows,
            page=page,
            limit=limit,
            total=total,
            has_more=offset + len(rows) < total,
        )

    async def find_by_idempotency_key(self, ctx: TenantContext, key: str) -> Optional[Reservation]:
        result = await self.db.execute(
            self._scoped(ctx).where(Reservation.idempotency_key == key)
        )
        return result.scalar_one_or_none()

    async def _find_overlap(
        self,
        ctx: TenantContext,
        practitioner_id: UUID,
        period_start: datetime,
        period_end: datetime,
        exclude_id: Optional[UUID] = None,
    ) -> Optional[UUID]:
        stmt = select(Reservation.id).where(
            Reservation.tenant_id == ctx.tenant_id,
            Reservation.practitioner_id == practitioner_id,
            Reservation.status.notin_(INACTIVE_STATUSES),
            Reservation.period_start < period_end,
            Reservation.period_end > period_start,
        )
        if exclude_id is not None:
            stmt = stmt.where(Reservation.id != exclude_id)
        result = await self.db.execute(stmt.limit(1))
        return result.scalar_one_or_none()

    async def has_conflict(
        self,
        ctx: TenantContext,
        practitioner_id: UUID,
        day: date,
        start_time: time,
        end_time: time,
        exclude_id: Optional[UUID] = None,
        timezone: Optional[str] = None,
    ) -> bool:
        """Advisory overlap check; writes re-check under the practitioner lock"""
        period_start, period_end = local_period(
            day, start_time, end_time, timezone or settings.default_timezone
        )
        overlapping = await self._find_overlap(
            ctx, practitioner_id, period_start, period_end, exclude_id
        )
        return overlapping is not None

    async def _ensure_no_overlap(
        self,
        ctx: TenantContext,
        practitioner_id: UUID,
        period: Tuple[datetime, datetime],
        exclude_id: Optional[UUID] = None,
    ) -> None:
        overlapping = await self._find_overlap(ctx, practitioner_id, period[0], period[1], exclude_id)
        if overlapping is not None:
            logger.info(
                "reservation.conflict",
                tenant_id=str(ctx.tenant_id),
                practitioner_id=str(practitioner_id),
                conflicting_reservation_id=str(overlapping),
            )
            raise ConflictError(
                "The selected time overlaps an existing reservation",
                {"practitioner_id": str(practitioner_id)},
            )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _snapshot_rows(self, ctx: TenantContext, items: ItemSelection):
        menus = [
            ReservationMenu(
                tenant_id=ctx.tenant_id,
                menu_id=m.menu_id,
                menu_name=m.name,
                menu_price=m.price,
                menu_duration=m.duration,
                sort_order=m.sort_order,
                is_main=m.is_main,
            )
            for m in items.menus
        ]
        options = [
            ReservationOption(
                tenant_id=ctx.tenant_id,
                option_id=o.option_id,
                option_name=o.name,
                option_price=o.price,
                option_duration=o.duration,
                sort_order=index,
            )
            for index, o in enumerate(items.options)
        ]
        return menus, options

    def _apply_draft(
        self,
        reservation: Reservation,
        draft: ReservationDraft,
        timezone: str,
        period: Tuple[datetime, datetime],
    ) -> None:
        if draft.items is not None:
            subtotal, option_total, duration = (
                draft.items.subtotal,
                draft.items.option_total,
                draft.items.duration,
            )
        else:
            subtotal, option_total, duration = (
                reservation.subtotal or 0,
                reservation.option_total or 0,
                reservation.duration or 0,
            )
        pricing = price_breakdown(
            subtotal, option_total, draft.nomination_fee, draft.discount, draft.total_price
        )

        reservation.store_id = draft.store_id
        reservation.customer_id = draft.customer_id
        reservation.customer_name = draft.customer_name
        reservation.customer_phone = draft.customer_phone
        reservation.practitioner_id = draft.practitioner_id
        reservation.practitioner_name = draft.practitioner_name
        reservation.date = draft.date
        reservation.start_time = draft.start_time
        reservation.end_time = draft.end_time
        reservation.period_start, reservation.period_end = period
        reservation.timezone = timezone
        reservation.subtotal = pricing["subtotal"]
        reservation.option_total = pricing["option_total"]
        reservation.nomination_fee = pricing["nomination_fee"]
        reservation.discount = pricing["discount"]
        reservation.total_price = pricing["total_price"]
        reservation.duration = duration
        reservation.source = draft.source
        reservation.customer_note = draft.customer_note
        reservation.staff_note = draft.staff_note
        reservation.google_calendar_id = draft.google_calendar_id
        reservation.google_calendar_event_id = draft.google_calendar_event_id
        reservation.external_reservation_id = draft.external_reservation_id

    async def create(
        self,
        ctx: TenantContext,
        draft: ReservationDraft,
        timezone: Optional[str] = None,
    ) -> Reservation:
        """Insert a reservation and its item snapshots atomically"""
        reservation, _ = await self.insert_or_replay(ctx, draft, timezone)
        return reservation

    async def insert_or_replay(
        self,
        ctx: TenantContext,
        draft: ReservationDraft,
        timezone: Optional[str] = None,
    ) -> Tuple[Reservation, bool]:
        """Like ``create``; the flag is False when an idempotency key matched an earlier reservation"""
        tz = timezone or settings.default_timezone
        if draft.items is None or not draft.items.menus:
            raise ValidationError("At least one menu is required", {"field": "menu_ids"})
        status = _status_value(draft.status)
        if status not in INITIAL_STATUSES:
            raise ValidationError(
                f"A reservation cannot be created as {status.value}", {"status": status.value}
            )
        period = local_period(draft.date, draft.start_time, draft.end_time, tz)

        if draft.idempotency_key:
            existing = await self.find_by_idempotency_key(ctx, draft.idempotency_key)
            if existing is not None:
                return existing, False

        reservation = Reservation(
            tenant_id=ctx.tenant_id,
            status=status.value,
            idempotency_key=draft.idempotency_key,
        )
        self._apply_draft(reservation, draft, tz, period)
        reservation.menu_items, reservation.option_items = self._snapshot_rows(ctx, draft.items)

        try:
            async with self._practitioner_transaction(ctx, draft.practitioner_id):
                if draft.idempotency_key:
                    existing = await self.find_by_idempotency_key(ctx, draft.idempotency_key)
                    if existing is not None:
                        return existing, False
                await self._ensure_no_overlap(ctx, draft.practitioner_id, period)
                self.db.add(reservation)
        except IntegrityError as exc:
            if draft.idempotency_key and _violated_constraint(exc) == IDEMPOTENCY_CONSTRAINT:
                existing = await self.find_by_idempotency_key(ctx, draft.idempotency_key)
                if existing is not None:
                    return existing, False
            raise

        logger.info(
            "reservation.created",
            tenant_id=str(ctx.tenant_id),
            reservation_id=str(reservation.id),
            practitioner_id=str(reservation.practitioner_id),
            date=reservation.date.isoformat(),
        )
        return reservation, True

    async def _replace(
        self,
        ctx: TenantContext,
        reservation_id: UUID,
        draft: ReservationDraft,
        timezone: Optional[str],
        replace_items: bool,
    ) -> Reservation:
        if replace_items and (draft.items is None or not draft.items.menus):
            raise ValidationError("At least one menu is required", {"field": "menu_ids"})

        async with self._practitioner_transaction(ctx, draft.practitioner_id):
            reservation = await self._get_for_update(ctx, reservation_id)
            current = ReservationStatus(reservation.status)
            if current in TERMINAL_STATUSES:
                raise TerminalStateError(current.value)

            tz = timezone or reservation.timezone or settings.default_timezone
            period = local_period(draft.date, draft.start_time, draft.end_time, tz)
            await self._ensure_no_overlap(
                ctx, draft.practitioner_id, period, exclude_id=reservation.id
            )

            if not replace_items:
                draft = replace(draft, items=None)
            self._apply_draft(reservation, draft, tz, period)
            if replace_items:
                reservation.menu_items, reservation.option_items = self._snapshot_rows(
                    ctx, draft.items
                )

        logger.info(
            "reservation.updated",
            tenant_id=str(ctx.tenant_id),
            reservation_id=str(reservation.id),
            items_replaced=replace_items,
        )
        return reservation

    async def update(
        self,
        ctx: TenantContext,
        reservation_id: UUID,
        draft: ReservationDraft,
        timezone: Optional[str] = None,
    ) -> Reservation:
        """Replace mutable fields, keeping the existing item snapshots"""
        return await self._replace(ctx, reservation_id, draft, timezone, replace_items=False)

    async def update_with_items(
        self,
        ctx: TenantContext,
        reservation_id: UUID,
        draft: ReservationDraft,
        timezone: Optional[str] = None,
    ) -> Reservation:
        """Replace mutable fields and item snapshots in one transaction"""
        return await self._replace(ctx, reservation_id, draft, timezone, replace_items=True)

    async def update_status(
        self,
        ctx: TenantContext,
        reservation_id: UUID,
        status: Union[str, ReservationStatus],
        reason: Optional[str] = None,
    ) -> Reservation:
        """Apply one lifecycle transition"""
        target = _status_value(status)

        async with self._transaction():
            reservation = await self._get_for_update(ctx, reservation_id)
            current = ReservationStatus(reservation.status)
            if current in TERMINAL_STATUSES:
                raise TerminalStateError(current.value, target.value)
            if target not in ALLOWED_TRANSITIONS[current]:
                raise ValidationError(
                    f"Cannot change a {current.value} reservation to {target.value}",
                    {"current_status": current.value, "requested_status": target.value},
                )

            reservation.status = target.value
            if target == ReservationStatus.CANCELED:
                reservation.canceled_at = utcnow()
                reservation.cancel_reason = reason

        logger.info(
            "reservation.status_changed",
            tenant_id=str(ctx.tenant_id),
            reservation_id=str(reservation_id),
            from_status=current.value,
            to_status=target.value,
        )
        return reservation

    async def confirm(self, ctx: TenantContext, reservation_id: UUID) -> Reservation:
        return await self.update_status(ctx, reservation_id, ReservationStatus.CONFIRMED)

    async def cancel(
        self, ctx: TenantContext, reservation_id: UUID, reason: Optional[str] = None
    ) -> Reservation:
        return await self.update_status(ctx, reservation_id, ReservationStatus.CANCELED, reason)

    async def complete(self, ctx: TenantContext, reservation_id: UUID) -> Reservation:
        return await self.update_status(ctx, reservation_id, ReservationStatus.COMPLETED)

    async def mark_no_show(self, ctx: TenantContext, reservation_id: UUID) -> Reservation:
        return await self.update_status(ctx, reservation_id, ReservationStatus.NO_SHOW)

    async def mark_reminder_sent(self, ctx: TenantContext, reservation_id: UUID) -> Reservation:
        async with self._transaction():
            reservation = await self._get_for_update(ctx, reservation_id)
            reservation.reminder_sent_at = utcnow()
        return reservation

    # ------------------------------------------------------------------
    # Reporting and slot views
    # ------------------------------------------------------------------

    async def get_stats(self, ctx: TenantContext, start_date: date, end_date: date) -> ReservationStats:
        """Counts by status and completed revenue for a date range (inclusive)"""
        result = await self.db.execute(
            select(
                Reservation.status,
                func.count(Reservation.id),
                func.coalesce(func.sum(Reservation.total_price), 0),
            )
            .where(
                Reservation.tenant_id == ctx.tenant_id,
                Reservation.date >= start_date,
                Reservation.date <= end_date,
            )
            .group_by(Reservation.status)
        )

        by_status = {s.value: 0 for s in ReservationStatus}
        revenue = 0
        for status, count, amount in result.all():
            by_status[status] = count
            if status == ReservationStatus.COMPLETED.value:
                revenue = int(amount or 0)

        return ReservationStats(
            total=sum(by_status.values()),
            by_status=by_status,
            total_revenue=revenue,
        )

    async def get_booked_slots(
        self, ctx: TenantContext, practitioner_id: UUID, day: date
    ) -> List[BookedSlot]:
        """Occupied [start, end) pairs of a practitioner's day"""
        result = await self.db.execute(
            select(Reservation.start_time, Reservation.end_time)
            .where(
                Reservation.tenant_id == ctx.tenant_id,
                Reservation.practitioner_id == practitioner_id,
                Reservation.date == day,
                Reservation.status.notin_(INACTIVE_STATUSES),
            )
            .order_by(Reservation.start_time.asc())
        )
        return [BookedSlot(start_time=start, end_time=end) for start, end in result.all()]

    async def list_due_reminders(self, ctx: TenantContext, day: date) -> List[Reservation]:
        """Pending/confirmed reservations on ``day`` that have not been reminded"""
        result = await self.db.execute(
            self._scoped(ctx)
            .where(
                Reservation.date == day,
                Reservation.status.in_(
                    [ReservationStatus.PENDING.value, ReservationStatus.CONFIRMED.value]
                ),
                Reservation.reminder_sent_at.is_(None),
            )
            .order_by(Reservation.start_time.asc())
        )
        return list(result.scalars().all())
