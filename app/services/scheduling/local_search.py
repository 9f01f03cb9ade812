"""
Hill-climbing refinement of a greedy assignment.

Move generation is pluggable through NeighborhoodStrategy. Every move is
applied to the ledger only after capacity and the constraint checker pass,
so no intermediate state ever breaks a hard constraint.
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, replace
from datetime import date
from typing import Iterator, Optional

from .constraints import can_assign_staff, make_shift
from .ledger import ShiftLedger
from .scoring import (
    WEIGHT_AFTER_NIGHT,
    RequestIndex,
    consecutive_penalty,
    is_after_night_shift,
    preference_score,
    work_day_spread,
)
from .types import ConstraintRules, PositionRequirement, Shift, StaffMember


logger = logging.getLogger(__name__)


WEIGHT_FILLED = 100.0  # per filled head, dominates preference differences
WEIGHT_SPREAD = 5.0  # per day of work-day standard deviation
EPSILON = 1e-9


@dataclass(frozen=True)
class Move:
    kind: str
    removed: tuple[Shift, ...]
    added: tuple[Shift, ...]

    @property
    def staff_ids(self) -> set[str]:
        return {s.staff_id for s in self.removed + self.added}


class SearchState:
    """
    The ledger being refined plus everything needed to judge a move.
    Shifts seeded from outside the run are fixed; only produced shifts move.
    """

    def __init__(
        self,
        ledger: ShiftLedger,
        requirements: list[PositionRequirement],
        staff: list[StaffMember],
        requests: RequestIndex,
        rules: ConstraintRules,
        fixed: set[tuple[str, date]],
        note: Optional[str] = None,
    ):
        self.ledger = ledger
        self.requirements = requirements
        self.requirements_by_position = {r.position_key: r for r in requirements}
        self.staff = sorted(staff, key=lambda s: s.id)
        self.staff_by_id = {s.id: s for s in staff}
        self.requests = requests
        self.rules = rules
        self.note = note
        self._fixed = fixed

    def is_movable(self, shift: Shift) -> bool:
        return (shift.staff_id, shift.date) not in self._fixed

    def movable_shifts(self) -> list[Shift]:
        shifts = [s for s in self.ledger if self.is_movable(s)]
        shifts.sort(key=lambda s: (s.date, s.location_id, s.duty_code_id, s.staff_id))
        return shifts

    def open_requirements(self) -> list[PositionRequirement]:
        return [
            r for r in self.requirements
            if self.ledger.position_count(r.position_key) < r.required_count
        ]

    def place(self, staff: StaffMember, requirement: PositionRequirement) -> Shift:
        return make_shift(staff, requirement, self.note)

    def reassign(self, shift: Shift, staff: StaffMember) -> Shift:
        return replace(shift, staff_id=staff.id, is_responsible=staff.is_responsible)

    def apply(self, move: Move) -> bool:
        """Apply a move if every added shift is feasible; otherwise leave the ledger untouched."""
        for shift in move.removed:
            self.ledger.remove(shift)

        applied = []
        for shift in move.added:
            if not self._can_add(shift):
                for s in applied:
                    self.ledger.remove(s)
                for s in move.removed:
                    self.ledger.add(s)
                return False
            self.ledger.add(shift)
            applied.append(shift)
        return True

    def revert(self, move: Move):
        for shift in move.added:
            self.ledger.remove(shift)
        for shift in move.removed:
            self.ledger.add(shift)

    def _can_add(self, shift: Shift) -> bool:
        requirement = self.requirements_by_position.get(shift.position_key)
        staff = self.staff_by_id.get(shift.staff_id)
        if requirement is None or staff is None:
            return False
        if self.ledger.position_count(requirement.position_key) >= requirement.required_count:
            return False
        ok, _ = can_assign_staff(staff, requirement, self.ledger, self.rules)
        return ok

    def staff_objective(self, staff_id: str) -> float:
        total = 0.0
        for shift in self.ledger.shifts_for(staff_id):
            if self.is_movable(shift):
                total += preference_score(self.requests.get((staff_id, shift.date)), shift.duty_code)
            if is_after_night_shift(staff_id, shift.date, self.ledger):
                total += WEIGHT_AFTER_NIGHT
            total += consecutive_penalty(self.ledger.consecutive_days_before(staff_id, shift.date))
        return total

    def objective(self, staff_ids: set[str]) -> float:
        """Objective restricted to the given staff plus the global terms."""
        filled = len(self.ledger) - len(self._fixed)
        _, std_dev = work_day_spread(self.ledger, [s.id for s in self.staff])
        local = sum(self.staff_objective(s) for s in sorted(staff_ids))
        return local + WEIGHT_FILLED * filled - WEIGHT_SPREAD * std_dev


class NeighborhoodStrategy(ABC):
    """Generates candidate moves from the current state, in a deterministic order."""

    @abstractmethod
    def moves(self, state: SearchState) -> Iterator[Move]:
        ...


class FillOpenSlotMoves(NeighborhoodStrategy):
    """Put an idle staff member on a position that still has capacity."""

    def moves(self, state: SearchState) -> Iterator[Move]:
        for requirement in state.open_requirements():
            for staff in state.staff:
                if state.ledger.has_shift_on(staff.id, requirement.date):
                    continue
                yield Move("fill", (), (state.place(staff, requirement),))


class ReplaceStaffMoves(NeighborhoodStrategy):
    """Hand a shift to a staff member who is not working that day."""

    def moves(self, state: SearchState) -> Iterator[Move]:
        for shift in state.movable_shifts():
            for staff in state.staff:
                if staff.id == shift.staff_id or state.ledger.has_shift_on(staff.id, shift.date):
                    continue
                yield Move("replace", (shift,), (state.reassign(shift, staff),))


class RelocateMoves(NeighborhoodStrategy):
    """Move a staff member to a different open position on the same day."""

    def moves(self, state: SearchState) -> Iterator[Move]:
        open_by_date = defaultdict(list)
        for requirement in state.open_requirements():
            open_by_date[requirement.date].append(requirement)

        for shift in state.movable_shifts():
            staff = state.staff_by_id.get(shift.staff_id)
            if staff is None:
                continue
            for requirement in open_by_date.get(shift.date, []):
                if requirement.position_key == shift.position_key:
                    continue
                yield Move("relocate", (shift,), (state.place(staff, requirement),))


class SwapStaffMoves(NeighborhoodStrategy):
    """Exchange two staff members working different positions on the same day."""

    def moves(self, state: SearchState) -> Iterator[Move]:
        by_date = defaultdict(list)
        for shift in state.movable_shifts():
            by_date[shift.date].append(shift)

        for day in sorted(by_date):
            shifts = by_date[day]
            for i, first in enumerate(shifts):
                for second in shifts[i + 1:]:
                    if first.position_key == second.position_key:
                        continue
                    first_staff = state.staff_by_id.get(first.staff_id)
                    second_staff = state.staff_by_id.get(second.staff_id)
                    if first_staff is None or second_staff is None:
                        continue
                    yield Move(
                        "swap",
                        (first, second),
                        (state.reassign(first, second_staff), state.reassign(second, first_staff)),
                    )


class CompositeNeighborhood(NeighborhoodStrategy):

    def __init__(self, strategies: list[NeighborhoodStrategy]):
        self.strategies = strategies

    def moves(self, state: SearchState) -> Iterator[Move]:
        for strategy in self.strategies:
            yield from strategy.moves(state)


def default_neighborhood() -> NeighborhoodStrategy:
    return CompositeNeighborhood([
        FillOpenSlotMoves(),
        ReplaceStaffMoves(),
        RelocateMoves(),
        SwapStaffMoves(),
    ])


class LocalSearch:
    """
    First-improvement hill climbing.

    Each iteration scans the neighborhood and keeps the first move that
    improves the objective (or, when allowed, leaves it unchanged and reaches
    a state not seen before). Stops at the iteration cap, the deadline,
    cancellation, or when a full scan accepts nothing.
    """

    def __init__(
        self,
        state: SearchState,
        neighborhood: Optional[NeighborhoodStrategy] = None,
        max_iterations: int = 100,
        deadline: Optional[float] = None,
        accept_neutral_moves: bool = True,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.state = state
        self.neighborhood = neighborhood or default_neighborhood()
        self.max_iterations = max_iterations
        self.deadline = deadline
        self.accept_neutral_moves = accept_neutral_moves
        self.cancel_event = cancel_event
        self.seen: set[frozenset] = {state.ledger.signature()}
        self.stopped_early = False

    def _should_stop(self) -> bool:
        if self.cancel_event is not None and self.cancel_event.is_set():
            return True
        return self.deadline is not None and time.monotonic() >= self.deadline

    def run(self) -> int:
        """Returns the number of accepted moves."""
        iterations = 0
        while iterations < self.max_iterations:
            if self._should_stop():
                self.stopped_early = True
                break
            move = self._find_accepted_move()
            if move is None:
                break
            iterations += 1
            logger.debug(f"Accepted {move.kind} move ({iterations}/{self.max_iterations})")

        if self.stopped_early:
            logger.warning(f"Local search stopped early after {iterations} iterations (timeout or cancelled)")
        return iterations

    def _find_accepted_move(self) -> Optional[Move]:
        state = self.state
        for move in self.neighborhood.moves(state):
            if self._should_stop():
                self.stopped_early = True
                return None

            affected = move.staff_ids
            before = state.objective(affected)
            if not state.apply(move):
                continue
            delta = state.objective(affected) - before

            if delta > EPSILON:
                self.seen.add(state.ledger.signature())
                return move

            if self.accept_neutral_moves and abs(delta) <= EPSILON:
                signature = state.ledger.signature()
                if signature not in self.seen:
                    self.seen.add(signature)
                    return move

            state.revert(move)
        return None
