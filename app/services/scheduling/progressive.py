"""
Progressive (per-staff) auto-assignment.

Runs when a staff member submits shift requests: each date they marked
available (◯) gets the best open position that passes the constraint
checker. This is a best-effort side effect of saving requests, so failures
are returned as an AutoAssignOutcome and never raised.
"""

import logging
from collections import defaultdict
from datetime import date
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from app.core.config import settings

from .constraints import can_assign_staff, make_shift
from .data_loader import insert_shifts, load_month_context
from .defaults import rules_from_settings
from .ledger import ShiftLedger
from .requirements import attribute_shifts, generate_position_requirements
from .scoring import Requests, index_requests, score_staff_assignment
from .types import (
    AutoAssignOutcome,
    ConstraintRules,
    PositionRequirement,
    RequestType,
    Shift,
    StaffMember,
)


logger = logging.getLogger(__name__)


def available_dates(staff_id: str, shift_requests: Requests) -> list[date]:
    """Dates the staff member marked ◯, in chronological order."""
    requests = index_requests(shift_requests)
    return sorted(
        r.date for r in requests.values()
        if r.staff_id == staff_id and r.request_type == RequestType.AVAILABLE
    )


def assign_staff_progressively(
    staff: StaffMember,
    dates: Iterable[date],
    requirements: list[PositionRequirement],
    shift_requests: Requests,
    existing_shifts: Iterable[Shift] = (),
    rules: Optional[ConstraintRules] = None,
    note: Optional[str] = None,
    context_shifts: Iterable[Shift] = (),
) -> tuple[list[Shift], int]:
    """
    Place one staff member on their available dates.

    Each new shift joins the running ledger immediately, so later dates see
    earlier placements (rest intervals, consecutive days, fairness).
    Context shifts from the neighbouring months only constrain those checks.

    Returns:
        (new shifts, number of dates skipped)
    """
    ledger = ShiftLedger(attribute_shifts(list(existing_shifts), requirements), context=context_shifts)
    requests = index_requests(shift_requests)

    requirements_by_date: dict[date, list[PositionRequirement]] = defaultdict(list)
    for req in requirements:
        requirements_by_date[req.date].append(req)

    created: list[Shift] = []
    skipped = 0

    for day in sorted(set(dates)):
        if ledger.has_shift_on(staff.id, day):
            skipped += 1
            continue

        day_requirements = sorted(
            requirements_by_date.get(day, []),
            key=lambda r: (r.location_id, r.duty_code_id, r.rule_id or ""),
        )
        open_responsible = sum(
            max(0, r.required_count - ledger.position_count(r.position_key))
            for r in day_requirements
            if r.requires_responsible
        )

        best: Optional[PositionRequirement] = None
        best_score = float("-inf")
        for req in day_requirements:
            if ledger.position_count(req.position_key) >= req.required_count:
                continue
            ok, _ = can_assign_staff(staff, req, ledger, rules)
            if not ok:
                continue

            own_capacity = req.required_count - ledger.position_count(req.position_key) if req.requires_responsible else 0
            score = score_staff_assignment(
                staff,
                day,
                req.duty_code,
                requests,
                ledger,
                requires_responsible=req.requires_responsible,
                open_responsible_slots=open_responsible - own_capacity,
            )
            if score > best_score:
                best, best_score = req, score

        if best is None:
            skipped += 1
            continue

        shift = make_shift(staff, best, note)
        ledger.add(shift)
        created.append(shift)

    return created, skipped


def auto_assign_for_staff(
    db: Session,
    staff_id: str,
    year_month: str,
    rules: Optional[ConstraintRules] = None,
) -> AutoAssignOutcome:
    """
    Progressively assign one staff member for a month and persist the result.

    Never raises: fetch failures give zero counts, a failed insert reports
    every available date as skipped. The error text is kept on the outcome.
    """
    try:
        rules = rules or rules_from_settings()
        context = load_month_context(db, year_month)
        staff = context.staff_by_id.get(staff_id)
        if staff is None:
            logger.info(f"Progressive assign skipped: staff {staff_id} not found or inactive")
            return AutoAssignOutcome(error=f"Staff {staff_id} not found or inactive")

        dates = available_dates(staff_id, context.shift_requests)
        if not dates:
            return AutoAssignOutcome()

        requirements = generate_position_requirements(
            year_month, context.locations, context.rules, context.duty_codes
        )

        created, skipped = assign_staff_progressively(
            staff,
            dates,
            requirements,
            context.shift_requests,
            existing_shifts=context.existing_shifts,
            rules=rules,
            note=settings.PROGRESSIVE_ASSIGN_NOTE,
            context_shifts=context.boundary_shifts,
        )
    except Exception as e:
        logger.exception(f"Progressive assign failed for staff {staff_id} ({year_month})")
        return AutoAssignOutcome(error=str(e))

    if not created:
        return AutoAssignOutcome(assigned_count=0, skipped_count=skipped)

    try:
        insert_shifts(db, created)
        db.commit()
    except Exception as e:
        db.rollback()
        logger.exception(f"Progressive assign failed to save {len(created)} shift(s) for staff {staff_id}")
        return AutoAssignOutcome(assigned_count=0, skipped_count=len(dates), error=str(e))

    logger.info(
        f"Progressive assign for staff {staff_id} ({year_month}): "
        f"{len(created)} assigned, {skipped} skipped"
    )
    return AutoAssignOutcome(assigned_count=len(created), skipped_count=skipped)
