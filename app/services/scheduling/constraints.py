"""
Hard constraint checking for staff assignments.
Handles double booking, tag and responsible-role gating, active status,
rest intervals and consecutive workday limits, plus requirement fulfillment.
"""

from datetime import timedelta
from typing import Callable, Iterable, Optional, Union

from .ledger import ShiftLedger, as_ledger
from .requirements import attribute_shifts
from .types import (
    ConstraintRules,
    PositionRequirement,
    Shift,
    ShiftStatus,
    StaffMember,
    TagMatchMode,
    ValidationResult,
)


DEFAULT_RULES = ConstraintRules()

ShiftsSoFar = Union[ShiftLedger, Iterable[Shift]]
ScoringFunction = Callable[[StaffMember], float]


def _position_ledger(assignments: ShiftsSoFar, requirements: list[PositionRequirement]) -> ShiftLedger:
    """A ledger whose shifts are tied to positions; plain shift lists get attributed."""
    if isinstance(assignments, ShiftLedger):
        return assignments
    return ShiftLedger(attribute_shifts(list(assignments), requirements))


def has_required_tags(staff: StaffMember, required_tags: Iterable[str], mode: TagMatchMode) -> bool:
    required = set(required_tags)
    if not required:
        return True
    if mode == TagMatchMode.ANY:
        return bool(required & staff.tags)
    return required <= staff.tags


def _check_rest_interval(
    staff: StaffMember,
    requirement: PositionRequirement,
    ledger: ShiftLedger,
    min_rest_hours: int,
) -> tuple[bool, str]:
    """Shifts on the neighbouring days must leave min_rest_hours free."""
    min_rest = timedelta(hours=min_rest_hours)
    duty = requirement.duty_code
    start = duty.start_on(requirement.date)
    end = duty.end_on(requirement.date)

    previous = ledger.shift_on(staff.id, requirement.date - timedelta(days=1))
    if previous is not None and previous.duty_code is not None:
        previous_end = previous.duty_code.end_on(previous.date)
        if start - previous_end < min_rest:
            return False, (
                f"{staff.name} has less than {min_rest_hours}h rest after "
                f"{previous.duty_code.code} on {previous.date.isoformat()}"
            )

    following = ledger.shift_on(staff.id, requirement.date + timedelta(days=1))
    if following is not None and following.duty_code is not None:
        following_start = following.duty_code.start_on(following.date)
        if following_start - end < min_rest:
            return False, (
                f"{staff.name} has less than {min_rest_hours}h rest before "
                f"{following.duty_code.code} on {following.date.isoformat()}"
            )

    return True, "OK"


def can_assign_staff(
    staff: StaffMember,
    requirement: PositionRequirement,
    shifts_so_far: ShiftsSoFar,
    rules: Optional[ConstraintRules] = None,
) -> tuple[bool, str]:
    """
    Check whether a staff member may take a position.
    Checks run in a fixed order and stop at the first failure.

    Returns:
        (True, "OK") or (False, reason)
    """
    rules = rules or DEFAULT_RULES
    ledger = as_ledger(shifts_so_far)
    day = requirement.date

    if ledger.has_shift_on(staff.id, day):
        return False, f"{staff.name} is already assigned on {day.isoformat()}"

    if not has_required_tags(staff, requirement.required_tags, rules.tag_match):
        missing = sorted(set(requirement.required_tags) - staff.tags)
        return False, f"{staff.name} is missing required tags ({', '.join(missing)})"

    if requirement.requires_responsible and not staff.is_responsible:
        return False, f"{staff.name} does not hold a responsible role"

    if not staff.is_active:
        return False, f"{staff.name} is not active"

    if rules.min_rest_hours is not None:
        ok, reason = _check_rest_interval(staff, requirement, ledger, rules.min_rest_hours)
        if not ok:
            return False, reason

    if rules.max_consecutive_days is not None:
        run = (
            ledger.consecutive_days_before(staff.id, day)
            + 1
            + ledger.consecutive_days_after(staff.id, day)
        )
        if run > rules.max_consecutive_days:
            return False, f"{staff.name} would work {run} consecutive days (limit {rules.max_consecutive_days})"

    return True, "OK"


def make_shift(
    staff: StaffMember,
    requirement: PositionRequirement,
    note: Optional[str] = None,
) -> Shift:
    return Shift(
        staff_id=staff.id,
        location_id=requirement.location_id,
        duty_code_id=requirement.duty_code_id,
        date=requirement.date,
        status=ShiftStatus.PLANNED,
        note=note,
        duty_code=requirement.duty_code,
        is_responsible=staff.is_responsible,
        requirement_id=requirement.rule_id,
    )


def validate_position_fulfillment(
    requirement: PositionRequirement,
    assignments: ShiftsSoFar,
) -> ValidationResult:
    """Check head count and responsible coverage for one position."""
    ledger = _position_ledger(assignments, [requirement])
    errors = []
    warnings = []

    assigned = ledger.position_count(requirement.position_key)
    if assigned < requirement.required_count:
        errors.append(f"Needs {requirement.required_count} staff, {assigned} assigned")
    elif assigned > requirement.required_count:
        errors.append(f"Over-filled: needs {requirement.required_count} staff, {assigned} assigned")

    if requirement.requires_responsible:
        needed = max(requirement.required_responsible_count, 1)
        responsible = ledger.position_responsible_count(requirement.position_key)
        if responsible < needed:
            errors.append(f"Needs {needed} responsible staff, {responsible} assigned")

    return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)


def validate_all_assignments(
    requirements: list[PositionRequirement],
    assignments: ShiftsSoFar,
) -> ValidationResult:
    ledger = _position_ledger(assignments, requirements)
    errors = []
    warnings = []

    for req in requirements:
        result = validate_position_fulfillment(req, ledger)
        errors.extend(f"[{req.label}] {e}" for e in result.errors)
        warnings.extend(f"[{req.label}] {w}" for w in result.warnings)

    return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)


def get_candidate_staff(
    requirement: PositionRequirement,
    all_staff: list[StaffMember],
    shifts_so_far: ShiftsSoFar,
    scoring_function: ScoringFunction,
    rules: Optional[ConstraintRules] = None,
) -> list[tuple[StaffMember, float, str]]:
    """
    Score every staff member for a position.
    Eligible staff come first by descending score, ties by staff id;
    ineligible staff follow with score -inf and the failure reason.
    """
    ledger = as_ledger(shifts_so_far)
    candidates = []
    for staff in all_staff:
        ok, reason = can_assign_staff(staff, requirement, ledger, rules)
        score = scoring_function(staff) if ok else float("-inf")
        candidates.append((staff, score, reason))

    candidates.sort(key=lambda c: (-c[1], c[0].id))
    return candidates


def select_optimal_staff(
    requirement: PositionRequirement,
    all_staff: list[StaffMember],
    shifts_so_far: ShiftsSoFar,
    scoring_function: ScoringFunction,
    rules: Optional[ConstraintRules] = None,
) -> Optional[StaffMember]:
    for staff, score, _ in get_candidate_staff(requirement, all_staff, shifts_so_far, scoring_function, rules):
        if score != float("-inf"):
            return staff
    return None


def select_optimal_staff_multiple(
    requirement: PositionRequirement,
    all_staff: list[StaffMember],
    shifts_so_far: ShiftsSoFar,
    scoring_function: ScoringFunction,
    rules: Optional[ConstraintRules] = None,
) -> tuple[list[StaffMember], ValidationResult]:
    """
    Pick enough staff to fill a position's remaining capacity.
    Responsible staff are picked first when the position needs them.
    The passed-in shifts are not modified.
    """
    ledger = _position_ledger(shifts_so_far, [requirement]).copy()
    selected: list[StaffMember] = []
    errors = []

    remaining = requirement.required_count - ledger.position_count(requirement.position_key)

    if requirement.requires_responsible and remaining > 0:
        needed = max(requirement.required_responsible_count, 1) - ledger.position_responsible_count(requirement.position_key)
        responsible_staff = [s for s in all_staff if s.is_responsible]
        while needed > 0 and remaining > 0:
            staff = select_optimal_staff(requirement, responsible_staff, ledger, scoring_function, rules)
            if staff is None:
                errors.append("No staff available to satisfy the responsible requirement")
                break
            selected.append(staff)
            ledger.add(make_shift(staff, requirement))
            needed -= 1
            remaining -= 1

    while remaining > 0:
        staff = select_optimal_staff(requirement, all_staff, ledger, scoring_function, rules)
        if staff is None:
            errors.append(
                f"Needs {requirement.required_count} staff, only {len(selected)} could be selected"
            )
            break
        selected.append(staff)
        ledger.add(make_shift(staff, requirement))
        remaining -= 1

    return selected, ValidationResult(is_valid=not errors, errors=errors)
