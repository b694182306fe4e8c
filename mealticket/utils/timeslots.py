from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from mealticket.models.time_slot import TimeSlot


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Normalize a datetime to aware UTC.

    SQLite drops tzinfo on the way back out; every timestamp is written in
    UTC, so a naive value is read as UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _parse_hhmm(value: str) -> time:
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


def daily_slot_windows(
    day: date,
    start: str,
    end: str,
    length_minutes: int,
    tz_name: str,
) -> list[tuple[datetime, datetime]]:
    """
    Cut the service window [start, end) of `day` into consecutive slots.

    Times are local to `tz_name`; the returned windows are UTC. A trailing
    window that would run past `end` is dropped.
    """
    if length_minutes <= 0:
        raise ValueError("Slot length must be positive")

    tz = ZoneInfo(tz_name)
    current = datetime.combine(day, _parse_hhmm(start), tzinfo=tz)
    closing = datetime.combine(day, _parse_hhmm(end), tzinfo=tz)
    step = timedelta(minutes=length_minutes)

    windows = []
    while current + step <= closing:
        windows.append((current.astimezone(timezone.utc), (current + step).astimezone(timezone.utc)))
        current += step
    return windows


def generate_daily_slots(
    db: Session,
    day: date,
    *,
    start: str,
    end: str,
    length_minutes: int,
    capacity: int,
    price: Decimal,
    tz_name: str,
    meal_type: str = "lunch",
) -> tuple[list[TimeSlot], int]:
    """
    Create the day's slots that do not exist yet (matched on start time).

    Returns (created slots, number skipped). The caller commits.
    """
    windows = daily_slot_windows(day, start, end, length_minutes, tz_name)
    if not windows:
        return [], 0

    existing = {
        as_utc(s.start_time)
        for s in db.query(TimeSlot).filter(
            TimeSlot.start_time >= windows[0][0],
            TimeSlot.start_time <= windows[-1][0],
        )
    }

    created = []
    skipped = 0
    for slot_start, slot_end in windows:
        if slot_start in existing:
            skipped += 1
            continue
        slot = TimeSlot(
            start_time=slot_start,
            end_time=slot_end,
            meal_type=meal_type,
            price=price,
            max_capacity=capacity,
            current_reservations=0,
            is_active=True,
        )
        db.add(slot)
        created.append(slot)
    db.flush()
    return created, skipped


def list_upcoming_slots(db: Session, now: datetime, limit: int = 100) -> list[TimeSlot]:
    """Active slots that have not started yet, soonest first."""
    return (
        db.query(TimeSlot)
        .filter(TimeSlot.is_active == True, TimeSlot.start_time > now)  # noqa: E712
        .order_by(TimeSlot.start_time)
        .limit(limit)
        .all()
    )
