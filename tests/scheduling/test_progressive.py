import pytest
from datetime import date, timedelta

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from app.db.models.shift_requests import ShiftRequests
from app.db.models.shifts import Shifts, ShiftStatus as ShiftStatusColumn
from app.db.models.staff import Staff
from app.services.scheduling.progressive import (
    available_dates,
    assign_staff_progressively,
    auto_assign_for_staff,
)
from app.services.scheduling.types import RequestType

from conftest import (
    get_test_month_start,
    add_duty_code,
    NIGHT_CODE,
    make_staff,
    make_requirement,
    make_request,
    build_shift,
)


def _add_requests(db, staff_id, days, request_type=RequestType.AVAILABLE):
    for day in days:
        db.add(ShiftRequests(
            staff_id=staff_id,
            date=day,
            request_type=request_type.value,
            year_month=f"{day.year:04d}-{day.month:02d}",
        ))
    db.commit()


class TestAvailableDates:

    def test_only_available_requests(self):
        start = get_test_month_start()
        requests = [
            make_request("s1", start + timedelta(days=2), RequestType.AVAILABLE),
            make_request("s1", start, RequestType.AVAILABLE),
            make_request("s1", start + timedelta(days=1), RequestType.REST),
            make_request("s2", start + timedelta(days=3), RequestType.AVAILABLE),
        ]
        assert available_dates("s1", requests) == [start, start + timedelta(days=2)]


class TestAssignStaffProgressively:

    def test_places_on_open_positions(self):
        start = get_test_month_start()
        days = [start, start + timedelta(days=1)]
        reqs = [make_requirement(d) for d in days]

        created, skipped = assign_staff_progressively(make_staff("s1"), days, reqs, [])

        assert [s.date for s in created] == days
        assert skipped == 0

    def test_date_with_existing_shift_is_skipped(self):
        day = date(2025, 12, 5)
        existing = [build_shift("s1", day, location_id="loc-2")]

        created, skipped = assign_staff_progressively(
            make_staff("s1"), [day], [make_requirement(day)], [], existing_shifts=existing
        )

        assert created == []
        assert skipped == 1

    def test_full_position_is_skipped(self):
        day = get_test_month_start()
        existing = [build_shift("s2", day)]

        created, skipped = assign_staff_progressively(
            make_staff("s1"), [day], [make_requirement(day)], [], existing_shifts=existing
        )

        assert created == []
        assert skipped == 1

    def test_date_without_positions_is_skipped(self):
        start = get_test_month_start()
        created, skipped = assign_staff_progressively(
            make_staff("s1"), [start + timedelta(days=3)], [make_requirement(start)], []
        )
        assert created == []
        assert skipped == 1

    def test_picks_best_scoring_position(self, early_duty, late_duty):
        day = get_test_month_start()
        reqs = [
            make_requirement(day, early_duty, location_id="loc-a"),
            make_requirement(day, late_duty, location_id="loc-b"),
        ]
        requests = [make_request("s1", day, RequestType.LATE)]

        created, _ = assign_staff_progressively(make_staff("s1"), [day], reqs, requests)

        assert created[0].location_id == "loc-b"

    def test_tie_goes_to_first_location(self, early_duty):
        day = get_test_month_start()
        reqs = [
            make_requirement(day, early_duty, location_id="loc-b"),
            make_requirement(day, early_duty, location_id="loc-a"),
        ]
        created, _ = assign_staff_progressively(make_staff("s1"), [day], reqs, [])
        assert created[0].location_id == "loc-a"

    def test_leader_prefers_responsible_position(self, early_duty):
        day = get_test_month_start()
        reqs = [
            make_requirement(day, early_duty, location_id="loc-a"),
            make_requirement(day, early_duty, location_id="loc-b", responsible=True),
        ]
        created, _ = assign_staff_progressively(make_staff("s1", responsible=True), [day], reqs, [])
        assert created[0].location_id == "loc-b"

    def test_earlier_placements_constrain_later_dates(self):
        start = get_test_month_start()
        days = [start + timedelta(days=i) for i in range(8)]
        reqs = [make_requirement(d) for d in days]

        created, skipped = assign_staff_progressively(make_staff("s1"), days, reqs, [])

        # 6 consecutive days allowed, the 7th is refused, the 8th follows a break
        assert [s.date for s in created] == days[:6] + [days[7]]
        assert skipped == 1

    def test_counts_add_up(self):
        start = get_test_month_start()
        days = [start + timedelta(days=i) for i in (0, 2, 4, 9)]
        reqs = [make_requirement(d) for d in days[:3]]

        created, skipped = assign_staff_progressively(make_staff("s1"), days, reqs, [])

        assert len(created) + skipped == len(days)

    def test_note_and_status(self):
        day = get_test_month_start()
        created, _ = assign_staff_progressively(make_staff("s1"), [day], [make_requirement(day)], [], note="auto")
        assert created[0].note == "auto"
        assert created[0].status.value == "予定"


class TestAutoAssignForStaff:

    def test_assigns_and_persists(self, seeded_db):
        days = [date(2025, 12, 1), date(2025, 12, 3)]
        _add_requests(seeded_db, "s2", days)

        outcome = auto_assign_for_staff(seeded_db, "s2", "2025-12")

        assert outcome.ok
        assert (outcome.assigned_count, outcome.skipped_count) == (2, 0)
        rows = seeded_db.execute(select(Shifts).where(Shifts.staff_id == "s2")).scalars().all()
        assert sorted(r.date for r in rows) == days
        assert all(r.status == ShiftStatusColumn.PLANNED for r in rows)
        assert all(r.note == "AI自動配置" for r in rows)

    def test_existing_shift_date_is_skipped(self, seeded_db):
        day = date(2025, 12, 5)
        seeded_db.add(Shifts(staff_id="s2", location_id="loc-1", duty_code_id="duty-early", date=day))
        seeded_db.commit()
        _add_requests(seeded_db, "s2", [day, date(2025, 12, 6)])

        outcome = auto_assign_for_staff(seeded_db, "s2", "2025-12")

        assert outcome.assigned_count == 1
        assert outcome.skipped_count == 1

    def test_cancelled_shift_does_not_block(self, seeded_db):
        day = date(2025, 12, 5)
        seeded_db.add(Shifts(
            staff_id="s2", location_id="loc-1", duty_code_id="duty-early", date=day,
            status=ShiftStatusColumn.CANCELLED,
        ))
        seeded_db.commit()
        _add_requests(seeded_db, "s2", [day])

        outcome = auto_assign_for_staff(seeded_db, "s2", "2025-12")

        assert outcome.assigned_count == 1

    def test_no_available_dates(self, seeded_db):
        _add_requests(seeded_db, "s2", [date(2025, 12, 1)], RequestType.REST)
        outcome = auto_assign_for_staff(seeded_db, "s2", "2025-12")
        assert outcome.ok
        assert (outcome.assigned_count, outcome.skipped_count) == (0, 0)

    def test_inactive_staff_reports_error(self, seeded_db):
        seeded_db.get(Staff, "s2").is_active = False
        seeded_db.commit()
        _add_requests(seeded_db, "s2", [date(2025, 12, 1)])

        outcome = auto_assign_for_staff(seeded_db, "s2", "2025-12")

        assert not outcome.ok
        assert outcome.assigned_count == 0

    def test_bad_month_never_raises(self, seeded_db):
        outcome = auto_assign_for_staff(seeded_db, "s2", "2025-13")
        assert not outcome.ok
        assert (outcome.assigned_count, outcome.skipped_count) == (0, 0)

    def test_load_failure_never_raises(self, seeded_db, monkeypatch):
        def broken(*args, **kwargs):
            raise SQLAlchemyError("connection lost")

        monkeypatch.setattr("app.services.scheduling.progressive.load_month_context", broken)
        outcome = auto_assign_for_staff(seeded_db, "s2", "2025-12")

        assert "connection lost" in outcome.error
        assert (outcome.assigned_count, outcome.skipped_count) == (0, 0)

    def test_insert_failure_reports_all_dates_skipped(self, seeded_db, monkeypatch):
        days = [date(2025, 12, 1), date(2025, 12, 2)]
        _add_requests(seeded_db, "s2", days)

        def broken(*args, **kwargs):
            raise SQLAlchemyError("insert failed")

        monkeypatch.setattr("app.services.scheduling.progressive.insert_shifts", broken)
        outcome = auto_assign_for_staff(seeded_db, "s2", "2025-12")

        assert not outcome.ok
        assert (outcome.assigned_count, outcome.skipped_count) == (0, 2)
        assert seeded_db.execute(select(Shifts)).scalars().all() == []

    def test_night_shift_before_month_blocks_first_day(self, seeded_db):
        add_duty_code(seeded_db, "duty-night", NIGHT_CODE, "night")
        seeded_db.add(Shifts(staff_id="s2", location_id="loc-1", duty_code_id="duty-night", date=date(2025, 11, 30)))
        seeded_db.commit()
        _add_requests(seeded_db, "s2", [date(2025, 12, 1), date(2025, 12, 2)])

        outcome = auto_assign_for_staff(seeded_db, "s2", "2025-12")

        assert (outcome.assigned_count, outcome.skipped_count) == (1, 1)
        rows = seeded_db.execute(
            select(Shifts).where(Shifts.staff_id == "s2", Shifts.date >= date(2025, 12, 1))
        ).scalars().all()
        assert [r.date for r in rows] == [date(2025, 12, 2)]

    def test_run_before_month_counts_towards_limit(self, seeded_db):
        for day in range(25, 31):
            seeded_db.add(Shifts(staff_id="s2", location_id="loc-1", duty_code_id="duty-early", date=date(2025, 11, day)))
        seeded_db.commit()
        _add_requests(seeded_db, "s2", [date(2025, 12, 1), date(2025, 12, 2)])

        outcome = auto_assign_for_staff(seeded_db, "s2", "2025-12")

        assert (outcome.assigned_count, outcome.skipped_count) == (1, 1)

    def test_unexpected_error_never_raises(self, seeded_db, monkeypatch):
        _add_requests(seeded_db, "s2", [date(2025, 12, 1)])

        def broken(*args, **kwargs):
            raise TypeError("bad row")

        monkeypatch.setattr("app.services.scheduling.progressive.assign_staff_progressively", broken)
        outcome = auto_assign_for_staff(seeded_db, "s2", "2025-12")

        assert not outcome.ok
        assert "bad row" in outcome.error
        assert (outcome.assigned_count, outcome.skipped_count) == (0, 0)

    def test_consistency_with_many_dates(self, seeded_db):
        days = [date(2025, 12, d) for d in range(1, 11)]
        _add_requests(seeded_db, "s3", days)

        outcome = auto_assign_for_staff(seeded_db, "s3", "2025-12")

        assert outcome.assigned_count + outcome.skipped_count == len(days)
        assert outcome.skipped_count >= 1  # consecutive-day limit
