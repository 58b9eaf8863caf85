# jmplan/scheduling.py
"""Booking conflicts and calendar windows."""
from __future__ import annotations

from datetime import date, datetime, time, timedelta
from typing import Dict, Iterable, List, Optional, Tuple
from zoneinfo import ZoneInfo

from . import config
from .models import ApiAppointment

WORKDAY_HOURS = list(range(8, 20))
CALENDAR_VIEWS = ("month", "week", "day")


class SlotUnavailable(Exception):
    def __init__(self, conflict: ApiAppointment):
        super().__init__(f"slot unavailable - conflicts with appointment {conflict.id}")
        self.conflict = conflict


def local_tz() -> ZoneInfo:
    return ZoneInfo(config.TIMEZONE)


def as_aware(value: datetime) -> datetime:
    """Naive datetimes are wall-clock times in the business timezone."""
    if value.tzinfo is None:
        return value.replace(tzinfo=local_tz())
    return value


def overlaps(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    # half-open intervals: back-to-back bookings do not collide
    return as_aware(start_a) < as_aware(end_b) and as_aware(start_b) < as_aware(end_a)


def find_conflict(
    existing: Iterable[ApiAppointment],
    start: datetime,
    duration: int,
    employee_id: Optional[int],
    room_id: Optional[int],
    ignore_id: Optional[int] = None,
) -> Optional[ApiAppointment]:
    """First non-cancelled appointment sharing the employee or the room during the slot."""
    if employee_id is None and room_id is None:
        return None
    end = start + timedelta(minutes=duration)
    for appt in existing:
        if appt.id == ignore_id or appt.status == "cancelled":
            continue
        same_employee = employee_id is not None and appt.employee_id == employee_id
        same_room = room_id is not None and appt.room_id == room_id
        if not (same_employee or same_room):
            continue
        if overlaps(start, end, appt.start, appt.end):
            return appt
    return None


def ensure_available(existing: Iterable[ApiAppointment], start: datetime, duration: int,
                     employee_id: Optional[int], room_id: Optional[int],
                     ignore_id: Optional[int] = None) -> None:
    conflict = find_conflict(existing, start, duration, employee_id, room_id, ignore_id)
    if conflict:
        raise SlotUnavailable(conflict)


def view_range(view: str, day: date) -> Tuple[str, date, date]:
    """Inclusive first/last day shown by a calendar view; unknown views fall back to week."""
    if view not in CALENDAR_VIEWS:
        view = "week"
    if view == "day":
        return view, day, day
    if view == "month":
        first = day.replace(day=1)
        next_month = (first + timedelta(days=32)).replace(day=1)
        return view, first, next_month - timedelta(days=1)
    monday = day - timedelta(days=day.weekday())
    return view, monday, monday + timedelta(days=6)


def day_bounds(first: date, last: date) -> Tuple[datetime, datetime]:
    tz = local_tz()
    return (
        datetime.combine(first, time.min, tzinfo=tz),
        datetime.combine(last + timedelta(days=1), time.min, tzinfo=tz),
    )


def group_by_day(appointments: Iterable[ApiAppointment], first: date, last: date) -> Dict[date, List[ApiAppointment]]:
    tz = local_tz()
    days: Dict[date, List[ApiAppointment]] = {}
    current = first
    while current <= last:
        days[current] = []
        current += timedelta(days=1)
    for appt in sorted(appointments, key=lambda a: as_aware(a.start)):
        key = as_aware(appt.start).astimezone(tz).date()
        if key in days:
            days[key].append(appt)
    return days
