"""Tests for the reservation store"""

from datetime import date, datetime, time, timedelta
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from app.errors import ConflictError, NotFoundError, TerminalStateError, ValidationError
from app.models.menu import Menu
from app.models.reservation import Reservation, ReservationMenu, ReservationStatus
from app.models.tenant import Tenant
from app.services.context import TenantContext
from app.services.reservation_store import ReservationFilters, ReservationStore, price_breakdown


@pytest.fixture
def store(test_db):
    return ReservationStore(test_db)


class TestCreate:
    async def test_end_to_end_overlap_and_adjacency(self, store, ctx, make_draft):
        first = await store.create(ctx, make_draft("10:00", "11:00"), timezone="Asia/Tokyo")

        assert first.status == "pending"
        assert first.subtotal == 5500
        assert first.total_price == 5500
        assert first.duration == 60
        assert first.period_start == datetime(2026, 2, 10, 1, 0)
        assert [m.menu_name for m in first.menu_items] == ["Cut"]

        with pytest.raises(ConflictError):
            await store.create(ctx, make_draft("10:30", "11:30"), timezone="Asia/Tokyo")

        adjacent = await store.create(ctx, make_draft("11:00", "12:00"), timezone="Asia/Tokyo")
        assert adjacent.start_time == time(11, 0)

    async def test_other_practitioner_same_time(self, store, ctx, make_draft, other_practitioner):
        await store.create(ctx, make_draft("10:00", "11:00"))
        other = await store.create(
            ctx, make_draft("10:00", "11:00", practitioner_id=other_practitioner.id)
        )
        assert other.practitioner_id == other_practitioner.id

    @pytest.mark.parametrize("release", ["cancel", "mark_no_show"])
    async def test_inactive_reservation_frees_the_slot(self, store, ctx, make_draft, release):
        first = await store.create(ctx, make_draft("10:00", "11:00"))
        await getattr(store, release)(ctx, first.id)

        second = await store.create(ctx, make_draft("10:00", "11:00"))
        assert second.id != first.id

    async def test_containing_interval_conflicts(self, store, ctx, make_draft):
        await store.create(ctx, make_draft("10:00", "11:00"))
        with pytest.raises(ConflictError):
            await store.create(ctx, make_draft("09:00", "12:00"))
        with pytest.raises(ConflictError):
            await store.create(ctx, make_draft("10:15", "10:45"))

    async def test_failed_create_leaves_no_rows(self, test_db, store, ctx, make_draft):
        await store.create(ctx, make_draft("10:00", "11:00"))
        with pytest.raises(ConflictError):
            await store.create(ctx, make_draft("10:30", "11:30"))

        count = (await test_db.execute(select(func.count(Reservation.id)))).scalar()
        menus = (await test_db.execute(select(func.count(ReservationMenu.id)))).scalar()
        assert count == 1
        assert menus == 1

    async def test_end_before_start_is_rejected(self, store, ctx, make_draft):
        with pytest.raises(ValidationError):
            await store.create(ctx, make_draft("11:00", "10:00"))

    async def test_dst_gap_cannot_hide_an_overlap(self, test_db, store, ctx, make_draft):
        spring_forward = date(2026, 3, 8)

        with pytest.raises(ValidationError):
            await store.create(ctx, make_draft("02:00", "03:00", day=spring_forward), timezone="America/New_York")

        first = await store.create(
            ctx, make_draft("01:30", "03:30", day=spring_forward), timezone="America/New_York"
        )
        assert first.period_end - first.period_start == timedelta(hours=1)

        with pytest.raises(ConflictError):
            await store.create(ctx, make_draft("03:00", "04:00", day=spring_forward), timezone="America/New_York")

        count = (await test_db.execute(select(func.count(Reservation.id)))).scalar()
        assert count == 1

    async def test_cannot_create_in_terminal_status(self, store, ctx, make_draft):
        with pytest.raises(ValidationError):
            await store.create(ctx, make_draft(status=ReservationStatus.COMPLETED))

    async def test_pricing_components(self, store, ctx, make_draft):
        reservation = await store.create(ctx, make_draft(nomination_fee=550, discount=500))
        assert reservation.total_price == 5500 + 550 - 500

    async def test_mismatched_total_is_rejected(self, store, ctx, make_draft):
        with pytest.raises(ValidationError):
            await store.create(ctx, make_draft(total_price=1000))

    async def test_matching_total_is_accepted(self, store, ctx, make_draft):
        reservation = await store.create(ctx, make_draft(discount=500, total_price=5000))
        assert reservation.total_price == 5000

    async def test_idempotency_key_returns_original(self, test_db, store, ctx, make_draft):
        first = await store.create(ctx, make_draft(idempotency_key="req-1"))
        again = await store.create(ctx, make_draft(idempotency_key="req-1"))

        assert again.id == first.id
        count = (await test_db.execute(select(func.count(Reservation.id)))).scalar()
        assert count == 1

    async def test_insert_or_replay_reports_replays(self, store, ctx, make_draft):
        first, created = await store.insert_or_replay(ctx, make_draft(idempotency_key="req-2"))
        assert created

        again, created = await store.insert_or_replay(ctx, make_draft(idempotency_key="req-2"))
        assert not created
        assert again.id == first.id


def test_price_breakdown_rejects_negative_total():
    with pytest.raises(ValidationError):
        price_breakdown(1000, 0, 0, 2000)
    with pytest.raises(ValidationError):
        price_breakdown(1000, -1, 0, 0)


class TestTenantIsolation:
    async def test_other_tenant_cannot_read_or_mutate(self, test_db, store, ctx, make_draft):
        reservation = await store.create(ctx, make_draft())
        reservation_id = reservation.id
        other = Tenant(id=uuid4(), name="Other Salon", slug="other-salon")
        test_db.add(other)
        await test_db.commit()
        other_ctx = TenantContext(tenant_id=other.id)

        assert await store.get(other_ctx, reservation_id) is None
        assert await store.list(other_ctx) == []
        with pytest.raises(NotFoundError):
            await store.get_or_fail(other_ctx, reservation_id)
        with pytest.raises(NotFoundError):
            await store.cancel(other_ctx, reservation_id)
        with pytest.raises(NotFoundError):
            await store.update(other_ctx, reservation_id, make_draft("12:00", "13:00"))

        unchanged = await store.get(ctx, reservation_id)
        assert unchanged.status == "pending"

    async def test_conflicts_are_scoped_per_tenant(self, test_db, store, ctx, make_draft):
        await store.create(ctx, make_draft("10:00", "11:00"))
        other = Tenant(id=uuid4(), name="Other Salon", slug="other-salon")
        test_db.add(other)
        await test_db.commit()

        # Same practitioner id under another tenant is a different calendar
        foreign = await store.create(TenantContext(tenant_id=other.id), make_draft("10:00", "11:00"))
        assert foreign.tenant_id == other.id


class TestStatusLifecycle:
    async def test_happy_path(self, store, ctx, make_draft):
        reservation = await store.create(ctx, make_draft())
        reservation = await store.confirm(ctx, reservation.id)
        assert reservation.status == "confirmed"
        reservation = await store.complete(ctx, reservation.id)
        assert reservation.status == "completed"

    async def test_cancel_records_reason(self, store, ctx, make_draft):
        reservation = await store.create(ctx, make_draft())
        canceled = await store.cancel(ctx, reservation.id, "Customer called")

        assert canceled.status == "canceled"
        assert canceled.cancel_reason == "Customer called"
        assert canceled.canceled_at is not None

    @pytest.mark.parametrize("terminal", ["cancel", "mark_no_show"])
    @pytest.mark.parametrize("target", list(ReservationStatus))
    async def test_terminal_states_reject_every_transition(self, store, ctx, make_draft, terminal, target):
        reservation = await store.create(ctx, make_draft())
        await getattr(store, terminal)(ctx, reservation.id)

        with pytest.raises(TerminalStateError):
            await store.update_status(ctx, reservation.id, target)

    async def test_completed_is_terminal(self, store, ctx, make_draft):
        reservation = await store.create(ctx, make_draft(status=ReservationStatus.CONFIRMED))
        await store.complete(ctx, reservation.id)
        with pytest.raises(TerminalStateError):
            await store.cancel(ctx, reservation.id)

    async def test_invalid_forward_transitions(self, store, ctx, make_draft):
        reservation_id = (await store.create(ctx, make_draft())).id
        with pytest.raises(ValidationError):
            await store.complete(ctx, reservation_id)

        await store.confirm(ctx, reservation_id)
        with pytest.raises(ValidationError):
            await store.update_status(ctx, reservation_id, ReservationStatus.PENDING)

    async def test_unknown_status_is_rejected(self, store, ctx, make_draft):
        reservation = await store.create(ctx, make_draft())
        with pytest.raises(ValidationError):
            await store.update_status(ctx, reservation.id, "archived")


class TestUpdate:
    async def test_reschedule_overlapping_its_own_slot(self, store, ctx, make_draft):
        reservation = await store.create(ctx, make_draft("10:00", "11:00"))
        moved = await store.update(ctx, reservation.id, make_draft("10:30", "11:30"))

        assert moved.start_time == time(10, 30)
        assert moved.period_start == datetime(2026, 2, 10, 1, 30)

    async def test_update_into_another_reservation_conflicts(self, store, ctx, make_draft):
        await store.create(ctx, make_draft("10:00", "11:00"))
        second_id = (await store.create(ctx, make_draft("12:00", "13:00"))).id

        with pytest.raises(ConflictError):
            await store.update(ctx, second_id, make_draft("10:30", "11:30"))

        unchanged = await store.get(ctx, second_id)
        assert unchanged.start_time == time(12, 0)

    async def test_update_never_changes_status(self, store, ctx, make_draft):
        reservation = await store.create(ctx, make_draft())
        updated = await store.update(
            ctx, reservation.id, make_draft("13:00", "14:00", status=ReservationStatus.CONFIRMED)
        )
        assert updated.status == "pending"

    async def test_terminal_reservation_cannot_be_updated(self, store, ctx, make_draft):
        reservation_id = (await store.create(ctx, make_draft())).id
        await store.cancel(ctx, reservation_id)

        with pytest.raises(TerminalStateError):
            await store.update(ctx, reservation_id, make_draft("13:00", "14:00"))
        with pytest.raises(TerminalStateError):
            await store.update_with_items(ctx, reservation_id, make_draft("13:00", "14:00"))

    async def test_update_keeps_snapshots(self, store, ctx, make_draft, test_menus, selection):
        reservation = await store.create(ctx, make_draft())
        updated = await store.update(
            ctx, reservation.id, make_draft("13:00", "14:30", items=selection(test_menus[1]))
        )

        assert [m.menu_name for m in updated.menu_items] == ["Cut"]
        assert updated.subtotal == 5500

    async def test_update_with_items_replaces_snapshots(
        self, test_db, store, ctx, make_draft, test_menus, test_option, selection
    ):
        reservation = await store.create(ctx, make_draft())
        updated = await store.update_with_items(
            ctx,
            reservation.id,
            make_draft("13:00", "14:45", items=selection(test_menus[1], test_option)),
        )

        assert [m.menu_name for m in updated.menu_items] == ["Color"]
        assert [o.option_name for o in updated.option_items] == ["Treatment"]
        assert updated.subtotal == 8800
        assert updated.option_total == 2200
        assert updated.total_price == 11000
        assert updated.duration == 105

        rows = (await test_db.execute(select(func.count(ReservationMenu.id)))).scalar()
        assert rows == 1


async def test_snapshot_survives_catalog_price_change(test_db, ctx, make_draft, test_menus):
    store = ReservationStore(test_db)
    reservation = await store.create(ctx, make_draft())

    cut = await test_db.get(Menu, test_menus[0].id)
    cut.price = 7700
    cut.duration = 75
    await test_db.commit()

    reloaded = await store.get(ctx, reservation.id)
    assert reloaded.menu_items[0].menu_price == 5500
    assert reloaded.menu_items[0].menu_duration == 60
    assert reloaded.subtotal == 5500


class TestQueries:
    async def test_list_paginated(self, store, ctx, make_draft):
        for start, end in [("10:00", "11:00"), ("11:00", "12:00"), ("13:00", "14:00")]:
            await store.create(ctx, make_draft(start, end))

        first = await store.list_paginated(ctx, page=1, limit=2)
        assert first.total == 3
        assert [r.start_time for r in first.data] == [time(10, 0), time(11, 0)]
        assert first.has_more is True

        second = await store.list_paginated(ctx, page=2, limit=2)
        assert [r.start_time for r in second.data] == [time(13, 0)]
        assert second.has_more is False

        newest = await store.list_paginated(ctx, sort_by="date", sort_order="desc", limit=1)
        assert newest.data[0].start_time == time(13, 0)

    async def test_list_filters(self, store, ctx, make_draft):
        kept = await store.create(ctx, make_draft("10:00", "11:00"))
        canceled = await store.create(ctx, make_draft("11:00", "12:00"))
        await store.cancel(ctx, canceled.id)
        await store.create(ctx, make_draft("10:00", "11:00", day=date(2026, 2, 20)))

        pending = await store.list(ctx, ReservationFilters(status="pending", date=date(2026, 2, 10)))
        assert [r.id for r in pending] == [kept.id]

        ranged = await store.list(
            ctx, ReservationFilters(date_from=date(2026, 2, 11), date_to=date(2026, 2, 28))
        )
        assert [r.date for r in ranged] == [date(2026, 2, 20)]

        both = await store.list(ctx, ReservationFilters(status=["pending", "canceled"]))
        assert len(both) == 3

    async def test_unsupported_sort_field(self, store, ctx):
        with pytest.raises(ValidationError):
            await store.list_paginated(ctx, sort_by="total_price")

    async def test_stats(self, store, ctx, make_draft):
        done = await store.create(ctx, make_draft("10:00", "11:00", status=ReservationStatus.CONFIRMED))
        await store.complete(ctx, done.id)
        dropped = await store.create(ctx, make_draft("11:00", "12:00"))
        await store.cancel(ctx, dropped.id)
        await store.create(ctx, make_draft("12:00", "13:00"))
        await store.create(ctx, make_draft("12:00", "13:00", day=date(2026, 3, 1)))

        stats = await store.get_stats(ctx, date(2026, 2, 1), date(2026, 2, 28))

        assert stats.total == 3
        assert stats.by_status["completed"] == 1
        assert stats.by_status["canceled"] == 1
        assert stats.by_status["pending"] == 1
        assert stats.by_status["no_show"] == 0
        assert stats.total_revenue == 5500

    async def test_booked_slots(self, store, ctx, make_draft, test_practitioner):
        await store.create(ctx, make_draft("13:00", "14:00"))
        await store.create(ctx, make_draft("10:00", "11:00"))
        canceled = await store.create(ctx, make_draft("15:00", "16:00"))
        await store.cancel(ctx, canceled.id)

        slots = await store.get_booked_slots(ctx, test_practitioner.id, date(2026, 2, 10))

        assert [(s.start_time, s.end_time) for s in slots] == [
            (time(10, 0), time(11, 0)),
            (time(13, 0), time(14, 0)),
        ]

    async def test_has_conflict(self, store, ctx, make_draft, test_practitioner):
        reservation = await store.create(ctx, make_draft("10:00", "11:00"))
        day = date(2026, 2, 10)

        assert await store.has_conflict(ctx, test_practitioner.id, day, time(10, 30), time(11, 30))
        assert not await store.has_conflict(ctx, test_practitioner.id, day, time(11, 0), time(12, 0))
        assert not await store.has_conflict(
            ctx, test_practitioner.id, day, time(10, 30), time(11, 30), exclude_id=reservation.id
        )

    async def test_due_reminders(self, store, ctx, make_draft):
        first = await store.create(ctx, make_draft("10:00", "11:00"))
        second = await store.create(ctx, make_draft("12:00", "13:00"))
        canceled = await store.create(ctx, make_draft("14:00", "15:00"))
        await store.cancel(ctx, canceled.id)

        due = await store.list_due_reminders(ctx, date(2026, 2, 10))
        assert [r.id for r in due] == [first.id, second.id]

        reminded = await store.mark_reminder_sent(ctx, first.id)
        assert reminded.reminder_sent_at is not None

        due = await store.list_due_reminders(ctx, date(2026, 2, 10))
        assert [r.id for r in due] == [second.id]
