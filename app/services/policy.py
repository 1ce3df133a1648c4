"""
Reservation policy checks.

Pure functions evaluating a booking date or a cancellation request against a
store's policy. All wall-clock values are interpreted in the store's IANA
timezone, so the checks stay correct near UTC day boundaries and across DST
transitions.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.errors import ValidationError


@dataclass(frozen=True)
class StorePolicy:
    """Booking policy of one store"""
    timezone: str
    slot_duration: int
    advance_booking_days: int
    cancel_deadline_hours: int


def get_zone(name: str) -> ZoneInfo:
    """Load an IANA timezone, rejecting unknown names"""
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValidationError(f"Unknown timezone: {name}", {"timezone": name})


def _aware(now: Optional[datetime]) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now


def local_to_utc(day: date, wall_clock: time, tz_name: str) -> datetime:
    """Convert a local date and wall-clock time to a naive UTC datetime

    Wall-clock times skipped by a DST transition do not exist in the zone and
    are rejected. Ambiguous times resolve to their first occurrence.
    """
    zone = get_zone(tz_name)
    local = datetime.combine(day, wall_clock).replace(tzinfo=zone)
    instant = local.astimezone(timezone.utc)
    if instant.astimezone(zone).replace(tzinfo=None) != local.replace(tzinfo=None):
        hhmm = wall_clock.strftime("%H:%M")
        raise ValidationError(
            f"{hhmm} does not exist on {day.isoformat()} in {tz_name}",
            {"date": day.isoformat(), "time": hhmm, "timezone": tz_name},
        )
    return instant.replace(tzinfo=None)


def local_period(day: date, start: time, end: time, tz_name: str) -> Tuple[datetime, datetime]:
    """Half-open absolute period [start, end) for a local slot"""
    bounds = {"start_time": start.strftime("%H:%M"), "end_time": end.strftime("%H:%M")}
    if end <= start:
        raise ValidationError("End time must be after start time", bounds)

    period_start = local_to_utc(day, start, tz_name)
    period_end = local_to_utc(day, end, tz_name)
    if period_end <= period_start:
        raise ValidationError("End time must be after start time", bounds)
    return period_start, period_end


def local_today(policy: StorePolicy, now: Optional[datetime] = None) -> date:
    """Current calendar date in the store's timezone"""
    return _aware(now).astimezone(get_zone(policy.timezone)).date()


def validate_advance_booking(
    target_date: date,
    policy: StorePolicy,
    now: Optional[datetime] = None,
) -> None:
    """Reject dates beyond the advance-booking window; 0 days disables the check"""
    if policy.advance_booking_days <= 0:
        return

    limit = local_today(policy, now) + timedelta(days=policy.advance_booking_days)
    if target_date > limit:
        raise ValidationError(
            f"Reservations are accepted up to {policy.advance_booking_days} days in advance",
            {"date": target_date.isoformat(), "last_bookable_date": limit.isoformat()},
        )


def validate_cancel_deadline(
    reservation_date: date,
    start_time: time,
    policy: StorePolicy,
    now: Optional[datetime] = None,
) -> None:
    """Reject cancellation at or after ``start - cancel_deadline_hours``"""
    if policy.cancel_deadline_hours <= 0:
        return

    start_instant = (
        datetime.combine(reservation_date, start_time)
        .replace(tzinfo=get_zone(policy.timezone))
        .astimezone(timezone.utc)
    )
    # Absolute-time arithmetic; wall-clock subtraction would drift across DST
    cutoff = start_instant - timedelta(hours=policy.cancel_deadline_hours)
    if _aware(now) >= cutoff:
        raise ValidationError(
            f"Reservations can be canceled up to {policy.cancel_deadline_hours} hours before the start time",
            {"cutoff": cutoff.isoformat()},
        )
