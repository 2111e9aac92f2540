"""Attendance days, statuses, visibility and CSV export."""

from datetime import date, datetime, timezone

import pytest

from conftest import make_entry, make_profile, utc
from timeflow.models import EmployeeManager
from timeflow.services.attendance import (
    attendance_period,
    attendance_status,
    export_attendance_csv,
    load_attendance,
    search_records,
)

NOW = datetime(2025, 3, 12, 12, 0, tzinfo=timezone.utc)


def test_attendance_period_starts_at_reset_hour():
    start, end = attendance_period(date(2025, 3, 10), "Asia/Kolkata", 6)
    assert start == utc(2025, 3, 10, 0, 30)
    assert end == utc(2025, 3, 11, 0, 30)


@pytest.mark.parametrize(
    "hours, expected",
    [(8, "present"), (9.5, "present"), (7.9, "half_day"), (4, "half_day"), (3.99, "absent"), (0, "absent")],
)
def test_status_thresholds(hours, expected):
    assert attendance_status(int(hours * 3600)) == expected


def test_entries_before_reset_hour_count_for_previous_day(db_session):
    employee = make_profile(db_session, full_name="Night Owl")
    make_entry(db_session, employee, utc(2025, 3, 10, 22, 0), hours=5)
    # 03:00 on the 11th is still the 10th's attendance day with a 06:00 reset.
    make_entry(db_session, employee, utc(2025, 3, 11, 3, 0), hours=2)
    make_entry(db_session, employee, utc(2025, 3, 11, 7, 0), hours=1)

    records = load_attendance(
        db_session, employee, date(2025, 3, 10), date(2025, 3, 11), tz="UTC", reset_hour=6, now=NOW
    )

    by_day = {record.date: record for record in records}
    assert [record.date for record in records] == [date(2025, 3, 11), date(2025, 3, 10)]
    assert by_day[date(2025, 3, 10)].duration == 7 * 3600
    assert by_day[date(2025, 3, 10)].status == "half_day"
    assert by_day[date(2025, 3, 10)].clock_in == utc(2025, 3, 10, 22, 0)
    assert by_day[date(2025, 3, 10)].clock_out == utc(2025, 3, 11, 5, 0)
    assert by_day[date(2025, 3, 11)].status == "absent"
    assert by_day[date(2025, 3, 11)].hours == 1


def test_days_without_entries_are_absent(db_session):
    employee = make_profile(db_session)
    make_entry(db_session, employee, utc(2025, 3, 10, 9, 0), hours=8)

    records = load_attendance(
        db_session, employee, date(2025, 3, 9), date(2025, 3, 10), tz="UTC", reset_hour=6, now=NOW
    )

    assert [(r.date, r.status) for r in records] == [(date(2025, 3, 10), "present"), (date(2025, 3, 9), "absent")]
    assert records[1].clock_in is None


def test_end_before_start_is_rejected(db_session):
    employee = make_profile(db_session)
    with pytest.raises(ValueError):
        load_attendance(db_session, employee, date(2025, 3, 10), date(2025, 3, 9), tz="UTC", reset_hour=6)


def test_employee_only_sees_own_records_even_when_selecting_others(db_session):
    employee = make_profile(db_session, full_name="Alice")
    other = make_profile(db_session, full_name="Bob")
    make_entry(db_session, other, utc(2025, 3, 10, 9, 0), hours=8)

    records = load_attendance(
        db_session,
        employee,
        date(2025, 3, 10),
        date(2025, 3, 10),
        tz="UTC",
        reset_hour=6,
        selected_user_ids=[other.id],
        now=NOW,
    )

    assert {record.user_id for record in records} == {employee.id}


def test_manager_sees_linked_employees_only(db_session):
    manager = make_profile(db_session, role="manager", full_name="Mona")
    report = make_profile(db_session, full_name="Rita")
    stranger = make_profile(db_session, full_name="Sam")
    db_session.add(EmployeeManager(employee_id=report.id, manager_id=manager.id))
    db_session.commit()
    make_entry(db_session, report, utc(2025, 3, 10, 9, 0), hours=4)
    make_entry(db_session, stranger, utc(2025, 3, 10, 9, 0), hours=4)

    records = load_attendance(
        db_session, manager, date(2025, 3, 10), date(2025, 3, 10), tz="UTC", reset_hour=6, now=NOW
    )
    assert [record.user_id for record in records] == [report.id]

    selected = load_attendance(
        db_session,
        manager,
        date(2025, 3, 10),
        date(2025, 3, 10),
        tz="UTC",
        reset_hour=6,
        selected_user_ids=[report.id, stranger.id],
        now=NOW,
    )
    assert [record.user_id for record in selected] == [report.id]


def test_search_matches_name_or_department(db_session):
    alice = make_profile(db_session, full_name="Alice", team="Design")
    make_entry(db_session, alice, utc(2025, 3, 10, 9, 0), hours=8)
    records = load_attendance(db_session, alice, date(2025, 3, 10), date(2025, 3, 10), tz="UTC", reset_hour=6, now=NOW)

    assert search_records(records, "desi") == records
    assert search_records(records, "ALI") == records
    assert search_records(records, "bob") == []
    assert search_records(records, "  ") == records


def test_csv_export_uses_labels_and_hours(db_session):
    alice = make_profile(db_session, full_name="Alice", team="Design")
    make_entry(db_session, alice, utc(2025, 3, 10, 9, 0), hours=4.5)
    records = load_attendance(db_session, alice, date(2025, 3, 10), date(2025, 3, 10), tz="UTC", reset_hour=6, now=NOW)

    lines = export_attendance_csv(records, "UTC").strip().split("\n")

    assert lines[0] == '"Employee Name","Department","Date","Clock In Time","Status","Hours Worked"'
    assert lines[1] == '"Alice","Design","Mar 10, 2025","09:00 AM","Half day","4.50h"'
