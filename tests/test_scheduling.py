"""
Tests for booking conflicts and calendar windows.
"""
from datetime import date, datetime, timedelta, timezone

import pytest

from jmplan.models import ApiAppointment
from jmplan.scheduling import (
    SlotUnavailable,
    ensure_available,
    find_conflict,
    group_by_day,
    overlaps,
    view_range,
)

EST = timezone(timedelta(hours=-5))


def appt(id, hour, minute=0, duration=60, employee_id=None, room_id=None, status="pending", day=15):
    return ApiAppointment(
        id=id,
        client_id=1,
        service_id=1,
        employee_id=employee_id,
        room_id=room_id,
        start=datetime(2024, 1, day, hour, minute, tzinfo=EST),
        duration=duration,
        status=status,
    )


def at(hour, minute=0, day=15):
    return datetime(2024, 1, day, hour, minute, tzinfo=EST)


def test_overlaps_partial_and_contained():
    assert overlaps(at(9), at(10), at(9, 30), at(11))
    assert overlaps(at(9), at(12), at(10), at(11))
    assert overlaps(at(10), at(11), at(9), at(12))


def test_back_to_back_slots_do_not_overlap():
    assert not overlaps(at(9), at(10), at(10), at(11))
    assert not overlaps(at(10), at(11), at(9), at(10))


def test_naive_times_are_business_local():
    assert overlaps(datetime(2024, 1, 15, 9), datetime(2024, 1, 15, 10), at(9, 30), at(10, 30))


def test_conflict_same_employee():
    existing = [appt(1, 9, employee_id=7)]
    conflict = find_conflict(existing, at(9, 30), 30, employee_id=7, room_id=None)
    assert conflict.id == 1


def test_no_conflict_for_other_employee_or_room():
    existing = [appt(1, 9, employee_id=7, room_id=1)]
    assert find_conflict(existing, at(9, 30), 30, employee_id=8, room_id=2) is None


def test_conflict_same_room():
    existing = [appt(1, 9, employee_id=7, room_id=3)]
    assert find_conflict(existing, at(9, 15), 30, employee_id=None, room_id=3).id == 1


def test_cancelled_and_ignored_appointments_do_not_block():
    existing = [appt(1, 9, employee_id=7, status="cancelled"), appt(2, 9, employee_id=7)]
    assert find_conflict(existing, at(9), 60, employee_id=7, room_id=None, ignore_id=2) is None


def test_no_resources_never_conflicts():
    existing = [appt(1, 9)]
    assert find_conflict(existing, at(9), 60, employee_id=None, room_id=None) is None


def test_ensure_available_raises():
    with pytest.raises(SlotUnavailable) as exc:
        ensure_available([appt(4, 9, duration=90, employee_id=1)], at(10), 30, 1, None)
    assert exc.value.conflict.id == 4


def test_week_view_starts_monday():
    assert view_range("week", date(2024, 1, 17)) == ("week", date(2024, 1, 15), date(2024, 1, 21))
    # Sunday belongs to the week that started the Monday before
    assert view_range("week", date(2024, 1, 21)) == ("week", date(2024, 1, 15), date(2024, 1, 21))


def test_month_and_day_views():
    assert view_range("month", date(2024, 2, 10)) == ("month", date(2024, 2, 1), date(2024, 2, 29))
    assert view_range("month", date(2023, 12, 31)) == ("month", date(2023, 12, 1), date(2023, 12, 31))
    assert view_range("day", date(2024, 1, 17)) == ("day", date(2024, 1, 17), date(2024, 1, 17))


def test_unknown_view_falls_back_to_week():
    assert view_range("year", date(2024, 1, 17))[0] == "week"


def test_group_by_day_uses_local_dates():
    late = ApiAppointment(
        id=9, client_id=1, service_id=1, duration=30,
        # 22:00 in Montreal on the 16th
        start=datetime(2024, 1, 17, 3, 0, tzinfo=timezone.utc),
    )
    days = group_by_day([appt(2, 14, day=16), late, appt(1, 9, day=16)], date(2024, 1, 15), date(2024, 1, 21))
    assert len(days) == 7
    assert [a.id for a in days[date(2024, 1, 16)]] == [1, 2, 9]
    assert days[date(2024, 1, 17)] == []
