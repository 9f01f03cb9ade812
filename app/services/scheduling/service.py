"""
Auto-assignment service - main orchestration layer.

This module provides the high-level API used by the routes, combining data
loading, requirement generation, optimization and persistence:

- preview_assignments: optimize a month without saving anything
- commit_assignments: optimize and save, optionally replacing existing shifts
- submit_shift_requests: save a staff member's requests, then auto-place them
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.models.staff import Staff

from .data_loader import delete_shifts, insert_shifts, load_month_context, replace_shift_requests
from .defaults import options_from_settings
from .errors import (
    ConstraintViolationError,
    NoRequirementsError,
    ShiftConflictError,
    StaffNotFoundError,
)
from .optimizer import optimize_shift_assignments
from .progressive import auto_assign_for_staff
from .requirements import generate_position_requirements, month_bounds
from .types import (
    AssignmentStats,
    AutoAssignOutcome,
    OptimizationOptions,
    OptimizationResult,
    RequirementFilter,
    Shift,
    ShiftRequest,
)


logger = logging.getLogger(__name__)


@dataclass
class ConflictInfo:
    date: date
    location_id: str
    duty_code_id: str
    staff_id: str
    existing_shift_id: Optional[str]
    message: str


@dataclass
class AutoAssignPreview:
    result: OptimizationResult
    warnings: list[str] = field(default_factory=list)
    conflicts: list[ConflictInfo] = field(default_factory=list)
    # existing shifts inside the optimized scope; deleted when overwriting
    replaced: list[Shift] = field(default_factory=list)


@dataclass
class CommitResult:
    created_count: int
    deleted_count: int
    result: OptimizationResult
    warnings: list[str] = field(default_factory=list)


@dataclass
class SubmitResult:
    saved_count: int
    auto_assign: AutoAssignOutcome


def find_conflicts(proposed: list[Shift], existing: list[Shift]) -> list[ConflictInfo]:
    """Existing shifts on the same position, or for the same staff member and date."""
    by_slot: dict = {}
    by_staff_day: dict = {}
    for shift in existing:
        by_slot.setdefault(shift.slot_key, shift)
        by_staff_day[(shift.staff_id, shift.date)] = shift

    conflicts = []
    for shift in proposed:
        clash = by_slot.get(shift.slot_key)
        if clash is not None:
            message = f"Existing shift on this position (staff: {clash.staff_id})"
        else:
            clash = by_staff_day.get((shift.staff_id, shift.date))
            if clash is None:
                continue
            message = f"Staff {shift.staff_id} already has a shift on {shift.date.isoformat()}"

        conflicts.append(ConflictInfo(
            date=shift.date,
            location_id=shift.location_id,
            duty_code_id=shift.duty_code_id,
            staff_id=shift.staff_id,
            existing_shift_id=clash.id,
            message=message,
        ))

    return conflicts


def build_warnings(stats: AssignmentStats) -> list[str]:
    warnings = []
    if stats.fulfillment_rate < settings.LOW_FULFILLMENT_WARNING_RATE:
        warnings.append(
            f"Low fulfillment rate ({stats.fulfillment_rate}%). The requirements may need review."
        )
    if stats.work_days_std_dev > settings.HIGH_STDDEV_WARNING_DAYS:
        warnings.append(
            f"Work days are unevenly spread (standard deviation: {stats.work_days_std_dev} days)"
        )
    return warnings


def preview_assignments(
    db: Session,
    year_month: str,
    location_ids: Optional[list[str]] = None,
    *,
    overwrite_existing: bool = False,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    duty_code_ids: Optional[list[str]] = None,
    options: Optional[OptimizationOptions] = None,
) -> AutoAssignPreview:
    """
    Optimize a month (or part of it) without saving anything.

    Existing shifts outside the scope (locations, date range, duty codes) are
    kept and constrain the run, as do shifts just outside the month. Existing
    shifts inside the scope are what an overwrite would replace; without
    overwrite, any of them that collide with a proposal are reported as
    conflicts.

    Raises:
        ValueError: malformed year_month
        NoLocationsError: location filter matches no active location
        NoRequirementsError: no requirements for the period/locations
    """
    context = load_month_context(db, year_month, location_ids)
    requirements = generate_position_requirements(
        year_month, context.locations, context.rules, context.duty_codes, location_ids
    )

    scope = RequirementFilter(
        date_from=date_from,
        date_to=date_to,
        location_ids=location_ids,
        duty_code_ids=duty_code_ids,
    )
    requirements = [r for r in requirements if scope.matches(r.date, r.location_id, r.duty_code_id)]
    if not requirements:
        raise NoRequirementsError("No valid requirements are set for this period/location")

    in_scope = [s for s in context.existing_shifts if scope.covers(s)]
    preserved = [s for s in context.existing_shifts if not scope.covers(s)]

    result = optimize_shift_assignments(
        requirements,
        context.staff,
        context.shift_requests,
        options or options_from_settings(),
        existing_shifts=preserved,
        context_shifts=context.boundary_shifts,
    )

    conflicts = [] if overwrite_existing else find_conflicts(result.assignments, in_scope)

    return AutoAssignPreview(
        result=result,
        warnings=build_warnings(result.stats),
        conflicts=conflicts,
        replaced=in_scope,
    )


def commit_assignments(
    db: Session,
    year_month: str,
    location_ids: Optional[list[str]] = None,
    *,
    overwrite_existing: bool = False,
    require_valid: bool = False,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    duty_code_ids: Optional[list[str]] = None,
    options: Optional[OptimizationOptions] = None,
    created_by: Optional[str] = None,
) -> CommitResult:
    """
    Optimize and save the proposed shifts in one transaction.

    Raises:
        ShiftConflictError: conflicts exist and overwrite was not requested
        ConstraintViolationError: require_valid and validation failed
        plus everything preview_assignments raises; storage errors propagate
    """
    preview = preview_assignments(
        db,
        year_month,
        location_ids,
        overwrite_existing=overwrite_existing,
        date_from=date_from,
        date_to=date_to,
        duty_code_ids=duty_code_ids,
        options=options,
    )
    result = preview.result

    if preview.conflicts and not overwrite_existing:
        raise ShiftConflictError(preview.conflicts)

    if require_valid and not result.validation.is_valid:
        raise ConstraintViolationError(result.validation.errors)

    try:
        deleted = 0
        if overwrite_existing:
            deleted = delete_shifts(db, [s.id for s in preview.replaced if s.id])
        rows = insert_shifts(db, result.assignments, created_by)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception(f"Auto-assign commit failed for {year_month}")
        raise

    logger.info(f"Auto-assign committed for {year_month}: {len(rows)} created, {deleted} replaced")
    return CommitResult(
        created_count=len(rows),
        deleted_count=deleted,
        result=result,
        warnings=preview.warnings,
    )


def submit_shift_requests(
    db: Session,
    staff_id: str,
    year_month: str,
    requests: list[ShiftRequest],
) -> SubmitResult:
    """
    Save a staff member's requests for a month, then auto-place them.

    The save is committed before auto-placement starts; auto-placement
    reports its own failures on the outcome and never undoes the save.

    Raises:
        ValueError: malformed year_month, a request outside the month, or a duplicate date
        StaffNotFoundError: unknown staff id
    """
    month_start, month_end = month_bounds(year_month)
    seen = set()
    for r in requests:
        if not month_start <= r.date <= month_end:
            raise ValueError(f"Request date {r.date.isoformat()} is outside {year_month}")
        if r.date in seen:
            raise ValueError(f"Duplicate request for {r.date.isoformat()}")
        seen.add(r.date)

    if db.get(Staff, staff_id) is None:
        raise StaffNotFoundError(f"Staff {staff_id} not found")

    rows = replace_shift_requests(db, staff_id, year_month, requests)
    db.commit()

    outcome = auto_assign_for_staff(db, staff_id, year_month)
    if not outcome.ok:
        logger.warning(f"Auto-placement after request submission failed for staff {staff_id}: {outcome.error}")

    return SubmitResult(saved_count=len(rows), auto_assign=outcome)
