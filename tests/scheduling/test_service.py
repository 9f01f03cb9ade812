import pytest
from datetime import date

from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError

from app.db.models.location_requirements import LocationRequirements
from app.db.models.shift_requests import ShiftRequests
from app.db.models.shifts import Shifts
from app.db.models.staff import Staff
from app.services.scheduling.errors import (
    NoLocationsError,
    NoRequirementsError,
    ShiftConflictError,
    ConstraintViolationError,
    StaffNotFoundError,
)
from app.services.scheduling.service import (
    find_conflicts,
    build_warnings,
    preview_assignments,
    commit_assignments,
    submit_shift_requests,
)
from app.services.scheduling.types import AssignmentStats, RequestType, ShiftRequest

from conftest import build_shift, add_duty_code, NIGHT_CODE


def _shift_count(db) -> int:
    return db.execute(select(func.count()).select_from(Shifts)).scalar_one()


def _keys(assignments):
    return [(s.staff_id, s.date, s.location_id, s.duty_code_id) for s in assignments]


def _stats(fulfillment_rate=100, std_dev=0.0) -> AssignmentStats:
    return AssignmentStats(
        total_assignments=0,
        fulfillment_rate=fulfillment_rate,
        request_fulfillment_rate=0.0,
        avg_work_days_per_staff=0.0,
        work_days_std_dev=std_dev,
        night_shift_after_count=0,
        consecutive_over_limit_count=0,
        under_filled_slots=0,
    )


class TestFindConflicts:

    def test_same_position(self):
        day = date(2025, 12, 1)
        conflicts = find_conflicts([build_shift("s2", day)], [build_shift("s1", day, shift_id="old")])
        assert len(conflicts) == 1
        assert conflicts[0].existing_shift_id == "old"
        assert conflicts[0].staff_id == "s2"

    def test_same_staff_same_day(self):
        day = date(2025, 12, 1)
        conflicts = find_conflicts(
            [build_shift("s1", day)],
            [build_shift("s1", day, location_id="loc-2", shift_id="old")],
        )
        assert len(conflicts) == 1
        assert "already has a shift" in conflicts[0].message

    def test_no_overlap(self):
        conflicts = find_conflicts(
            [build_shift("s1", date(2025, 12, 1))],
            [build_shift("s1", date(2025, 12, 2))],
        )
        assert conflicts == []


class TestBuildWarnings:

    def test_quiet_when_healthy(self):
        assert build_warnings(_stats()) == []

    def test_low_fulfillment(self):
        warnings = build_warnings(_stats(fulfillment_rate=50))
        assert len(warnings) == 1
        assert "50%" in warnings[0]

    def test_uneven_spread(self):
        warnings = build_warnings(_stats(std_dev=3.5))
        assert len(warnings) == 1
        assert "3.5" in warnings[0]


class TestPreviewAssignments:

    def test_fills_month_without_saving(self, seeded_db):
        preview = preview_assignments(seeded_db, "2025-12")

        assert len(preview.result.assignments) == 31
        assert preview.result.stats.fulfillment_rate == 100
        assert preview.result.validation.is_valid
        assert preview.conflicts == []
        assert _shift_count(seeded_db) == 0

    def test_preview_is_idempotent(self, seeded_db):
        first = preview_assignments(seeded_db, "2025-12")
        second = preview_assignments(seeded_db, "2025-12")
        assert _keys(first.result.assignments) == _keys(second.result.assignments)
        assert first.result.stats == second.result.stats
        assert first.result.validation == second.result.validation

    def test_auto_note_on_proposals(self, seeded_db):
        preview = preview_assignments(seeded_db, "2025-12")
        assert {s.note for s in preview.result.assignments} == {"AI自動割り当て"}

    def test_date_range(self, seeded_db):
        preview = preview_assignments(
            seeded_db, "2025-12", date_from=date(2025, 12, 10), date_to=date(2025, 12, 12)
        )
        assert [s.date.day for s in preview.result.assignments] == [10, 11, 12]

    def test_unknown_location(self, seeded_db):
        with pytest.raises(NoLocationsError):
            preview_assignments(seeded_db, "2025-12", ["missing"])

    def test_no_requirements(self, seeded_db):
        with pytest.raises(NoRequirementsError):
            preview_assignments(seeded_db, "2025-12", duty_code_ids=["duty-none"])

    def test_bad_month(self, seeded_db):
        with pytest.raises(ValueError):
            preview_assignments(seeded_db, "2025-13")

    def test_existing_shift_in_scope_is_a_conflict(self, seeded_db):
        seeded_db.add(Shifts(id="old", staff_id="s1", location_id="loc-1", duty_code_id="duty-early", date=date(2025, 12, 1)))
        seeded_db.commit()

        preview = preview_assignments(seeded_db, "2025-12")

        assert [c.existing_shift_id for c in preview.conflicts] == ["old"]
        assert [s.id for s in preview.replaced] == ["old"]

    def test_overwrite_suppresses_conflicts(self, seeded_db):
        seeded_db.add(Shifts(id="old", staff_id="s1", location_id="loc-1", duty_code_id="duty-early", date=date(2025, 12, 1)))
        seeded_db.commit()

        preview = preview_assignments(seeded_db, "2025-12", overwrite_existing=True)

        assert preview.conflicts == []

    def test_overlapping_rules_staffed_separately(self, seeded_db):
        seeded_db.get(Staff, "s3").tags = ["gate"]
        seeded_db.add(LocationRequirements(
            id="req-gate", location_id="loc-1", duty_code_id="duty-early", required_staff_count=1,
            specific_date="2025-12-24", required_tags=["gate"],
        ))
        seeded_db.commit()

        preview = preview_assignments(seeded_db, "2025-12")

        christmas_eve = [s for s in preview.result.assignments if s.date == date(2025, 12, 24)]
        assert len(preview.result.assignments) == 32
        assert preview.result.stats.fulfillment_rate == 100
        assert sorted(s.requirement_id for s in christmas_eve) == ["req-1", "req-gate"]
        assert next(s.staff_id for s in christmas_eve if s.requirement_id == "req-gate") == "s3"

    def test_night_shift_before_month_is_respected(self, seeded_db):
        add_duty_code(seeded_db, "duty-night", NIGHT_CODE, "night")
        seeded_db.add(Shifts(id="nov", staff_id="s1", location_id="loc-1", duty_code_id="duty-night", date=date(2025, 11, 30)))
        seeded_db.commit()

        preview = preview_assignments(seeded_db, "2025-12")

        first_day = [s for s in preview.result.assignments if s.date == date(2025, 12, 1)]
        assert len(first_day) == 1
        assert first_day[0].staff_id != "s1"
        assert "nov" not in {s.id for s in preview.result.assignments}
        assert preview.conflicts == []

    def test_existing_shift_outside_scope_is_respected(self, seeded_db):
        seeded_db.add(Shifts(id="old", staff_id="s1", location_id="loc-1", duty_code_id="duty-early", date=date(2025, 12, 1)))
        seeded_db.commit()

        preview = preview_assignments(seeded_db, "2025-12", date_from=date(2025, 12, 2))

        assert preview.conflicts == []
        assert preview.replaced == []
        assert len(preview.result.assignments) == 30


class TestCommitAssignments:

    def test_saves_month(self, seeded_db):
        committed = commit_assignments(seeded_db, "2025-12")

        assert committed.created_count == 31
        assert committed.deleted_count == 0
        assert _shift_count(seeded_db) == 31

    def test_conflict_without_overwrite(self, seeded_db):
        seeded_db.add(Shifts(id="old", staff_id="s1", location_id="loc-1", duty_code_id="duty-early", date=date(2025, 12, 1)))
        seeded_db.commit()

        with pytest.raises(ShiftConflictError) as exc:
            commit_assignments(seeded_db, "2025-12")

        assert len(exc.value.conflicts) == 1
        assert _shift_count(seeded_db) == 1

    def test_overwrite_replaces_existing(self, seeded_db):
        seeded_db.add(Shifts(id="old", staff_id="s1", location_id="loc-1", duty_code_id="duty-early", date=date(2025, 12, 1)))
        seeded_db.commit()

        committed = commit_assignments(seeded_db, "2025-12", overwrite_existing=True)

        assert committed.deleted_count == 1
        assert committed.created_count == 31
        assert _shift_count(seeded_db) == 31
        assert seeded_db.execute(select(Shifts).where(Shifts.id == "old")).first() is None

    def test_require_valid_blocks_invalid_result(self, seeded_db):
        seeded_db.add(LocationRequirements(
            location_id="loc-1", duty_code_id="duty-early", required_staff_count=1,
            specific_date="2025-12-24", required_tags=["gate"],
        ))
        seeded_db.commit()

        with pytest.raises(ConstraintViolationError) as exc:
            commit_assignments(seeded_db, "2025-12", require_valid=True)

        assert any("2025-12-24" in e for e in exc.value.errors)
        assert _shift_count(seeded_db) == 0

    def test_invalid_result_saved_when_not_required_valid(self, seeded_db):
        seeded_db.add(LocationRequirements(
            location_id="loc-1", duty_code_id="duty-early", required_staff_count=1,
            specific_date="2025-12-24", required_tags=["gate"],
        ))
        seeded_db.commit()

        committed = commit_assignments(seeded_db, "2025-12")

        assert not committed.result.validation.is_valid
        assert committed.created_count == 31


class TestSubmitShiftRequests:

    def test_saves_and_auto_assigns(self, seeded_db):
        requests = [
            ShiftRequest(staff_id="s2", date=date(2025, 12, 1), request_type=RequestType.AVAILABLE),
            ShiftRequest(staff_id="s2", date=date(2025, 12, 2), request_type=RequestType.REST),
        ]

        result = submit_shift_requests(seeded_db, "s2", "2025-12", requests)

        assert result.saved_count == 2
        assert result.auto_assign.assigned_count == 1
        assert result.auto_assign.skipped_count == 0
        assert _shift_count(seeded_db) == 1

    def test_resubmit_replaces_requests(self, seeded_db):
        first = [ShiftRequest(staff_id="s2", date=date(2025, 12, 1), request_type=RequestType.REST)]
        second = [ShiftRequest(staff_id="s2", date=date(2025, 12, 2), request_type=RequestType.REST)]

        submit_shift_requests(seeded_db, "s2", "2025-12", first)
        submit_shift_requests(seeded_db, "s2", "2025-12", second)

        rows = seeded_db.execute(select(ShiftRequests)).scalars().all()
        assert [r.date for r in rows] == [date(2025, 12, 2)]

    def test_date_outside_month(self, seeded_db):
        requests = [ShiftRequest(staff_id="s2", date=date(2026, 1, 1), request_type=RequestType.REST)]
        with pytest.raises(ValueError):
            submit_shift_requests(seeded_db, "s2", "2025-12", requests)

    def test_duplicate_date(self, seeded_db):
        requests = [
            ShiftRequest(staff_id="s2", date=date(2025, 12, 1), request_type=RequestType.REST),
            ShiftRequest(staff_id="s2", date=date(2025, 12, 1), request_type=RequestType.AVAILABLE),
        ]
        with pytest.raises(ValueError):
            submit_shift_requests(seeded_db, "s2", "2025-12", requests)

    def test_unknown_staff(self, seeded_db):
        with pytest.raises(StaffNotFoundError):
            submit_shift_requests(seeded_db, "ghost", "2025-12", [])

    def test_auto_assign_failure_does_not_undo_save(self, seeded_db, monkeypatch):
        def broken(*args, **kwargs):
            raise SQLAlchemyError("insert failed")

        monkeypatch.setattr("app.services.scheduling.progressive.insert_shifts", broken)
        requests = [ShiftRequest(staff_id="s2", date=date(2025, 12, 1), request_type=RequestType.AVAILABLE)]

        result = submit_shift_requests(seeded_db, "s2", "2025-12", requests)

        assert result.saved_count == 1
        assert not result.auto_assign.ok
        assert len(seeded_db.execute(select(ShiftRequests)).scalars().all()) == 1
