"""
Running shift accumulator for one optimization run.

Every component that needs "the shifts committed so far" works against a
ShiftLedger so that double-booking, position capacity and workload lookups
are dictionary reads instead of list scans. A ledger belongs to exactly one run.

Context shifts are neighbours outside the planned period (the days around
the month). They block double booking and feed the rest-interval and
consecutive-day checks, but never count as work days, capacity or state.
"""

from collections import Counter, defaultdict
from datetime import date, timedelta
from typing import Iterable, Iterator, Optional, Union

from .types import Shift


class ShiftLedger:

    def __init__(self, shifts: Iterable[Shift] = (), context: Iterable[Shift] = ()):
        self.shifts: list[Shift] = []
        self._by_staff: dict[str, dict[date, Shift]] = defaultdict(dict)
        self._context: set[tuple[str, date]] = set()
        self._slot_counts: Counter = Counter()
        self._slot_responsible: Counter = Counter()
        self._position_counts: Counter = Counter()
        self._position_responsible: Counter = Counter()

        for shift in context:
            self.add_context(shift)
        for shift in shifts:
            self.add(shift)

    def __len__(self) -> int:
        return len(self.shifts)

    def __iter__(self) -> Iterator[Shift]:
        return iter(self.shifts)

    def __contains__(self, shift: Shift) -> bool:
        return self._by_staff.get(shift.staff_id, {}).get(shift.date) == shift

    def _claim_day(self, shift: Shift):
        days = self._by_staff[shift.staff_id]
        if shift.date in days:
            raise ValueError(
                f"Staff {shift.staff_id} already has a shift on {shift.date.isoformat()}"
            )
        days[shift.date] = shift

    def add(self, shift: Shift):
        """Record a shift. Raises ValueError if the staff member already works that date."""
        self._claim_day(shift)
        self.shifts.append(shift)
        self._slot_counts[shift.slot_key] += 1
        self._position_counts[shift.position_key] += 1
        if shift.is_responsible:
            self._slot_responsible[shift.slot_key] += 1
            self._position_responsible[shift.position_key] += 1

    def add_context(self, shift: Shift):
        """Record a neighbouring shift that only constrains its staff member's days."""
        self._claim_day(shift)
        self._context.add((shift.staff_id, shift.date))

    def remove(self, shift: Shift):
        days = self._by_staff.get(shift.staff_id, {})
        if days.get(shift.date) != shift or (shift.staff_id, shift.date) in self._context:
            raise ValueError(f"Shift not in ledger: {shift}")
        del days[shift.date]
        self.shifts.remove(shift)
        self._slot_counts[shift.slot_key] -= 1
        self._position_counts[shift.position_key] -= 1
        if shift.is_responsible:
            self._slot_responsible[shift.slot_key] -= 1
            self._position_responsible[shift.position_key] -= 1

    def copy(self) -> "ShiftLedger":
        return ShiftLedger(self.shifts, context=self.context_shifts())

    def context_shifts(self) -> list[Shift]:
        return [self._by_staff[staff_id][day] for staff_id, day in sorted(self._context)]

    def shift_on(self, staff_id: str, day: date) -> Optional[Shift]:
        return self._by_staff.get(staff_id, {}).get(day)

    def has_shift_on(self, staff_id: str, day: date) -> bool:
        return day in self._by_staff.get(staff_id, {})

    def shifts_for(self, staff_id: str) -> list[Shift]:
        return [
            s for d, s in self._by_staff.get(staff_id, {}).items()
            if (staff_id, d) not in self._context
        ]

    def work_days(self, staff_id: str) -> int:
        return len(self.shifts_for(staff_id))

    def average_work_days(self, staff_ids: Iterable[str]) -> float:
        staff_ids = list(staff_ids)
        if not staff_ids:
            return 0.0
        return sum(self.work_days(s) for s in staff_ids) / len(staff_ids)

    def slot_count(self, slot_key: tuple[date, str, str]) -> int:
        return self._slot_counts[slot_key]

    def slot_responsible_count(self, slot_key: tuple[date, str, str]) -> int:
        return self._slot_responsible[slot_key]

    def position_count(self, position_key: tuple[date, str, str, Optional[str]]) -> int:
        return self._position_counts[position_key]

    def position_responsible_count(self, position_key: tuple[date, str, str, Optional[str]]) -> int:
        return self._position_responsible[position_key]

    def slot_shifts(self, slot_key: tuple[date, str, str]) -> list[Shift]:
        return [s for s in self.shifts if s.slot_key == slot_key]

    def consecutive_days_before(self, staff_id: str, day: date) -> int:
        """Length of the unbroken run of worked days ending the day before `day`."""
        days = self._by_staff.get(staff_id, {})
        count = 0
        current = day - timedelta(days=1)
        while current in days:
            count += 1
            current -= timedelta(days=1)
        return count

    def consecutive_days_after(self, staff_id: str, day: date) -> int:
        days = self._by_staff.get(staff_id, {})
        count = 0
        current = day + timedelta(days=1)
        while current in days:
            count += 1
            current += timedelta(days=1)
        return count

    def signature(self) -> frozenset:
        """Hashable snapshot of the assignment state."""
        return frozenset(
            (s.staff_id, s.date, s.location_id, s.duty_code_id, s.requirement_id) for s in self.shifts
        )


def as_ledger(shifts: Union[ShiftLedger, Iterable[Shift]]) -> ShiftLedger:
    if isinstance(shifts, ShiftLedger):
        return shifts
    return ShiftLedger(shifts)
