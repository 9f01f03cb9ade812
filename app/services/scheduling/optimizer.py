"""
Batch shift optimizer: greedy seeding followed by bounded local search.

Strategy:
1. Sort positions so the hardest to staff come first on each date
2. Greedy pass: fill each position with the best scoring eligible staff
3. Local search: hill-climb on fill, preferences and fairness
4. Re-validate every produced shift against the final ledger and build stats
"""

import logging
import time
from typing import Iterable, Optional

from .constraints import (
    can_assign_staff,
    make_shift,
    select_optimal_staff,
    validate_all_assignments,
)
from .errors import NoRequirementsError
from .ledger import ShiftLedger
from .local_search import LocalSearch, SearchState
from .requirements import attribute_shifts
from .scoring import (
    Requests,
    calculate_stats,
    calculate_total_score,
    index_requests,
    score_staff_assignment,
)
from .types import (
    OptimizationOptions,
    OptimizationResult,
    PositionRequirement,
    RequirementFilter,
    Shift,
    StaffMember,
    ValidationResult,
)


logger = logging.getLogger(__name__)


def requirement_sort_key(req: PositionRequirement) -> tuple:
    """Date first; within a date responsible, tag-heavy and larger positions first."""
    return (
        req.date,
        not req.requires_responsible,
        -len(req.required_tags),
        -req.required_count,
        req.location_id,
        req.duty_code_id,
        req.rule_id or "",
    )


def shift_sort_key(shift: Shift) -> tuple:
    return (shift.date, shift.location_id, shift.duty_code_id, shift.staff_id)


class ShiftOptimizer:
    """
    One optimization run. Owns its ledger; nothing is shared between runs.

    Existing shifts passed in count towards capacity, double booking and
    fairness but are never moved and are not part of the returned assignments.
    Context shifts (days around the planned period) only feed the rest and
    consecutive-day checks.
    """

    def __init__(
        self,
        requirements: list[PositionRequirement],
        staff: list[StaffMember],
        shift_requests: Requests,
        options: Optional[OptimizationOptions] = None,
        existing_shifts: Iterable[Shift] = (),
        context_shifts: Iterable[Shift] = (),
    ):
        if not requirements:
            raise NoRequirementsError("No position requirements to optimize")

        self.requirements = list(requirements)
        self._check_distinct_positions()
        self.staff = sorted(staff, key=lambda s: s.id)
        self.staff_by_id = {s.id: s for s in self.staff}
        self.requests = index_requests(shift_requests)
        self.options = options or OptimizationOptions()
        self.rules = self.options.rules

        self.ledger = ShiftLedger(
            attribute_shifts(list(existing_shifts), self.requirements),
            context=context_shifts,
        )
        self.fixed = {(s.staff_id, s.date) for s in self.ledger}

        self._requirements_by_date: dict = {}
        for req in self.requirements:
            self._requirements_by_date.setdefault(req.date, []).append(req)

        self._started = time.monotonic()
        self._deadline = self._started + self.options.timeout_ms / 1000

    def _check_distinct_positions(self):
        seen = set()
        for req in self.requirements:
            if req.position_key in seen:
                raise ValueError(f"Duplicate position {req.label}: positions sharing a slot need distinct rule ids")
            seen.add(req.position_key)

    def optimize(self) -> OptimizationResult:
        """
        Main optimization method.

        Returns:
            OptimizationResult with the produced assignments, validation and stats
        """
        #1: Greedy seeding
        self._greedy_assign()
        #2: Local search
        iterations = 0
        if self.options.apply_local_search and self.options.max_local_search_iterations > 0:
            iterations = self._local_search()
        #3: Result
        return self._build_result(iterations)

    @property
    def assignments(self) -> list[Shift]:
        """Shifts produced by this run, in a stable order."""
        produced = [s for s in self.ledger if (s.staff_id, s.date) not in self.fixed]
        return sorted(produced, key=shift_sort_key)

    def _out_of_time(self) -> bool:
        return self.options.is_cancelled or time.monotonic() >= self._deadline

    def _greedy_assign(self):
        for req in sorted(self.requirements, key=requirement_sort_key):
            if self._out_of_time():
                logger.warning("Greedy assignment stopped early (timeout or cancelled)")
                break

            while self.ledger.position_count(req.position_key) < req.required_count:
                staff = self._select_staff(req)
                if staff is None:
                    break
                self.ledger.add(make_shift(staff, req, self.options.note))

    def _select_staff(self, req: PositionRequirement) -> Optional[StaffMember]:
        average = self.ledger.average_work_days(self.staff_by_id)
        open_responsible = self._open_responsible_slots(req)

        def scoring_fn(staff: StaffMember) -> float:
            return score_staff_assignment(
                staff,
                req.date,
                req.duty_code,
                self.requests,
                self.ledger,
                requires_responsible=req.requires_responsible,
                open_responsible_slots=open_responsible,
                average_work_days=average,
            )

        return select_optimal_staff(req, self.staff, self.ledger, scoring_fn, self.rules)

    def _open_responsible_slots(self, req: PositionRequirement) -> int:
        """Remaining capacity of other responsible positions on the same date."""
        open_slots = 0
        for other in self._requirements_by_date.get(req.date, []):
            if other.position_key == req.position_key or not other.requires_responsible:
                continue
            open_slots += max(0, other.required_count - self.ledger.position_count(other.position_key))
        return open_slots

    def _local_search(self) -> int:
        if self._out_of_time():
            logger.warning("Skipping local search: no time left")
            return 0

        state = SearchState(
            ledger=self.ledger,
            requirements=self.requirements,
            staff=self.staff,
            requests=self.requests,
            rules=self.rules,
            fixed=self.fixed,
            note=self.options.note,
        )
        search = LocalSearch(
            state,
            neighborhood=self.options.neighborhood,
            max_iterations=self.options.max_local_search_iterations,
            deadline=self._deadline,
            accept_neutral_moves=self.options.accept_neutral_moves,
            cancel_event=self.options.cancel_event,
        )
        iterations = search.run()
        logger.info(f"Local search completed: {iterations} iterations")
        return iterations

    def revalidate_assignments(self) -> list[str]:
        """Re-check every produced shift against the final ledger (minus itself)."""
        errors = []
        requirements_by_position = {r.position_key: r for r in self.requirements}

        for shift in self.assignments:
            req = requirements_by_position.get(shift.position_key)
            staff = self.staff_by_id.get(shift.staff_id)
            if req is None or staff is None:
                errors.append(f"Assignment {shift.staff_id} on {shift.date.isoformat()} has no matching position")
                continue

            self.ledger.remove(shift)
            try:
                ok, reason = can_assign_staff(staff, req, self.ledger, self.rules)
            finally:
                self.ledger.add(shift)
            if not ok:
                errors.append(f"[{req.label}] {reason}")

        return errors

    def validate(self, requirements: Optional[list[PositionRequirement]] = None) -> ValidationResult:
        requirements = requirements if requirements is not None else self.requirements
        fulfillment = validate_all_assignments(requirements, self.ledger)
        errors = self.revalidate_assignments() + fulfillment.errors

        warnings = list(fulfillment.warnings)
        under_filled = self.under_filled(requirements)
        if under_filled:
            warnings.append(f"{len(under_filled)} position(s) could not be fully staffed")

        return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)

    def under_filled(self, requirements: Optional[list[PositionRequirement]] = None) -> list[PositionRequirement]:
        requirements = requirements if requirements is not None else self.requirements
        return [r for r in requirements if self.ledger.position_count(r.position_key) < r.required_count]

    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self._started) * 1000)

    def _build_result(self, iterations: int) -> OptimizationResult:
        assignments = self.assignments
        stats = calculate_stats(
            assignments,
            self.requests,
            self.staff,
            self.requirements,
            ledger=self.ledger,
            max_consecutive_days=self.rules.max_consecutive_days,
        )

        result = OptimizationResult(
            assignments=assignments,
            validation=self.validate(),
            stats=stats,
            total_score=calculate_total_score(assignments, self.requests),
            under_filled=sorted(self.under_filled(), key=requirement_sort_key),
            local_search_iterations=iterations,
            processing_time_ms=self.elapsed_ms(),
        )

        logger.info(
            f"Optimized {len(self.requirements)} positions: {stats.total_assignments} assignments, "
            f"fulfillment {stats.fulfillment_rate}%, {len(result.under_filled)} under-filled, "
            f"{result.processing_time_ms}ms"
        )
        return result


def optimize_shift_assignments(
    requirements: list[PositionRequirement],
    staff: list[StaffMember],
    shift_requests: Requests,
    options: Optional[OptimizationOptions] = None,
    existing_shifts: Iterable[Shift] = (),
    context_shifts: Iterable[Shift] = (),
) -> OptimizationResult:
    """
    Main entry point for batch optimization.

    Args:
        requirements: Positions to staff (must not be empty)
        staff: Candidate staff; inactive staff are never assigned
        shift_requests: ShiftRequest list or (staff_id, date) index
        options: OptimizationOptions, defaults when omitted
        existing_shifts: Shifts already committed that the run must respect
        context_shifts: Shifts outside the planned period (rest and run-length checks only)

    Returns:
        OptimizationResult; under-filled positions are reported, never raised

    Raises:
        NoRequirementsError: requirements is empty
    """
    optimizer = ShiftOptimizer(requirements, staff, shift_requests, options, existing_shifts, context_shifts)
    return optimizer.optimize()


def optimize_partial_assignments(
    requirements: list[PositionRequirement],
    existing_shifts: list[Shift],
    staff: list[StaffMember],
    shift_requests: Requests,
    filters: RequirementFilter,
    options: Optional[OptimizationOptions] = None,
    context_shifts: Iterable[Shift] = (),
) -> OptimizationResult:
    """
    Re-optimize only the positions matching `filters`.

    Existing shifts on other positions are preserved, constrain the run and
    are returned alongside the new assignments. Validation and stats cover
    the full requirement list.
    """
    filtered = [r for r in requirements if filters.matches(r.date, r.location_id, r.duty_code_id)]
    if not filtered:
        raise NoRequirementsError("No position requirements match the filter")

    filtered_slots = {r.slot_key for r in filtered}
    preserved = attribute_shifts(
        [s for s in existing_shifts if s.slot_key not in filtered_slots], requirements
    )

    optimizer = ShiftOptimizer(
        filtered, staff, shift_requests, options,
        existing_shifts=preserved, context_shifts=context_shifts,
    )
    result = optimizer.optimize()

    all_requirements = list(requirements)
    combined = sorted(preserved + result.assignments, key=shift_sort_key)

    return OptimizationResult(
        assignments=combined,
        validation=optimizer.validate(all_requirements),
        stats=calculate_stats(
            combined,
            optimizer.requests,
            optimizer.staff,
            all_requirements,
            ledger=optimizer.ledger,
            max_consecutive_days=optimizer.rules.max_consecutive_days,
        ),
        total_score=calculate_total_score(combined, optimizer.requests),
        under_filled=sorted(optimizer.under_filled(all_requirements), key=requirement_sort_key),
        local_search_iterations=result.local_search_iterations,
        processing_time_ms=optimizer.elapsed_ms(),
    )
