"""
Soft preference scoring for staff assignments.
Higher = better. Scores are deterministic; callers break ties by staff id.
"""

import math
import statistics
from datetime import date, timedelta
from typing import Iterable, Mapping, Optional, Union

from .duty_codes import is_night_duty, matches_request_window
from .ledger import ShiftLedger, as_ledger
from .requirements import attribute_shifts
from .types import (
    AssignmentStats,
    DutyCode,
    PositionRequirement,
    RequestType,
    Shift,
    ShiftRequest,
    StaffMember,
    WINDOW_REQUEST_TYPES,
)


WEIGHT_AVAILABLE = 10
WEIGHT_REST = -20
WEIGHT_WINDOW_MATCH = 15
WEIGHT_WINDOW_MISMATCH = -3
WEIGHT_AFTER_NIGHT = -10
WEIGHT_CONSECUTIVE_SOFT = -5  # 4-5 days in a row
WEIGHT_CONSECUTIVE_HARD = -15  # per day beyond 5
WEIGHT_FAIRNESS = 2
WEIGHT_ROLE_FIT = -4

CONSECUTIVE_SOFT_LIMIT = 4
CONSECUTIVE_HARD_LIMIT = 6

RequestIndex = Mapping[tuple[str, date], ShiftRequest]
Requests = Union[RequestIndex, Iterable[ShiftRequest]]


def index_requests(shift_requests: Requests) -> RequestIndex:
    """(staff_id, date) -> request. Later entries win. Mappings pass through."""
    if isinstance(shift_requests, Mapping):
        return shift_requests
    return {(r.staff_id, r.date): r for r in shift_requests}


def preference_score(request: Optional[ShiftRequest], duty_code: Optional[DutyCode]) -> float:
    """Score contributed by the staff member's own request for that day."""
    if request is None:
        return 0.0

    if request.request_type == RequestType.AVAILABLE:
        return WEIGHT_AVAILABLE
    if request.request_type == RequestType.REST:
        return WEIGHT_REST
    if request.request_type in WINDOW_REQUEST_TYPES and duty_code is not None:
        if matches_request_window(request.request_type, duty_code):
            return WEIGHT_WINDOW_MATCH
        return WEIGHT_WINDOW_MISMATCH
    return 0.0


def is_after_night_shift(staff_id: str, day: date, ledger: ShiftLedger) -> bool:
    previous = ledger.shift_on(staff_id, day - timedelta(days=1))
    return previous is not None and previous.duty_code is not None and is_night_duty(previous.duty_code)


def consecutive_penalty(days_before: int) -> float:
    """Penalty for working after `days_before` consecutive work days."""
    if days_before >= CONSECUTIVE_HARD_LIMIT:
        return WEIGHT_CONSECUTIVE_HARD * (days_before - (CONSECUTIVE_HARD_LIMIT - 1))
    if days_before >= CONSECUTIVE_SOFT_LIMIT:
        return WEIGHT_CONSECUTIVE_SOFT
    return 0.0


def score_staff_assignment(
    staff: StaffMember,
    day: date,
    duty_code: DutyCode,
    shift_requests: Requests,
    shifts_so_far: Union[ShiftLedger, Iterable[Shift]],
    *,
    requires_responsible: bool = False,
    open_responsible_slots: int = 0,
    average_work_days: Optional[float] = None,
) -> float:
    """
    Score placing `staff` on `duty_code` on `day`.

    Factors:
    - The staff member's request for the day (◯ / 休 / time window)
    - Penalty for working straight after a night duty
    - Penalty for long runs of consecutive work days
    - Fairness: prefer staff with fewer work days than average
    - Role fit: keep responsible staff free while responsible capacity is open

    average_work_days defaults to the average over staff present in shifts_so_far;
    the optimizer passes the whole-roster average.
    """
    ledger = as_ledger(shifts_so_far)
    requests = index_requests(shift_requests)
    score = 0.0

    score += preference_score(requests.get((staff.id, day)), duty_code)

    if is_after_night_shift(staff.id, day, ledger):
        score += WEIGHT_AFTER_NIGHT

    score += consecutive_penalty(ledger.consecutive_days_before(staff.id, day))

    if average_work_days is None:
        worked_staff = {s.staff_id for s in ledger}
        average_work_days = ledger.average_work_days(worked_staff)
    score += (average_work_days - ledger.work_days(staff.id)) * WEIGHT_FAIRNESS

    if staff.is_responsible and not requires_responsible and open_responsible_slots > 0:
        score += WEIGHT_ROLE_FIT

    return score


def calculate_total_score(assignments: Iterable[Shift], shift_requests: Requests) -> float:
    """Sum of request preference scores over a set of assignments."""
    requests = index_requests(shift_requests)
    return sum(
        preference_score(requests.get((s.staff_id, s.date)), s.duty_code)
        for s in assignments
    )


def work_day_spread(ledger: ShiftLedger, staff_ids: list[str]) -> tuple[float, float]:
    """(mean, population std-dev) of work days across the roster."""
    if not staff_ids:
        return 0.0, 0.0
    counts = [ledger.work_days(s) for s in staff_ids]
    return statistics.fmean(counts), statistics.pstdev(counts)


def fulfillment_rate(requirements: Iterable[PositionRequirement], ledger: ShiftLedger) -> int:
    """Filled headcount over required headcount, as a whole percent in 0..100."""
    required = 0
    filled = 0
    for req in requirements:
        required += req.required_count
        filled += min(ledger.position_count(req.position_key), req.required_count)
    if required == 0:
        return 0
    return max(0, min(100, math.floor(filled / required * 100)))


def calculate_stats(
    assignments: list[Shift],
    shift_requests: Requests,
    all_staff: list[StaffMember],
    requirements: Iterable[PositionRequirement] = (),
    ledger: Optional[ShiftLedger] = None,
    max_consecutive_days: Optional[int] = CONSECUTIVE_HARD_LIMIT,
) -> AssignmentStats:
    """
    Summary statistics for a set of assignments.

    `ledger` is the full shift state the assignments were made against
    (existing shifts included); it defaults to the assignments alone.
    """
    requirements = list(requirements)
    if ledger is None:
        ledger = ShiftLedger(attribute_shifts(list(assignments), requirements))
    requests = index_requests(shift_requests)

    # ◯ honoured by a shift, 休 honoured by no shift
    relevant = [r for r in requests.values() if r.request_type in (RequestType.AVAILABLE, RequestType.REST)]
    honoured = 0
    for r in relevant:
        has_shift = ledger.has_shift_on(r.staff_id, r.date)
        if (r.request_type == RequestType.AVAILABLE) == has_shift:
            honoured += 1
    request_rate = round(honoured / len(relevant) * 100, 1) if relevant else 0.0

    mean, std_dev = work_day_spread(ledger, [s.id for s in all_staff])

    night_after = sum(1 for s in assignments if is_after_night_shift(s.staff_id, s.date, ledger))

    over_limit = 0
    if max_consecutive_days is not None:
        for s in assignments:
            if ledger.consecutive_days_before(s.staff_id, s.date) + 1 > max_consecutive_days:
                over_limit += 1

    under_filled = sum(1 for r in requirements if ledger.position_count(r.position_key) < r.required_count)

    return AssignmentStats(
        total_assignments=len(assignments),
        fulfillment_rate=fulfillment_rate(requirements, ledger),
        request_fulfillment_rate=request_rate,
        avg_work_days_per_staff=round(mean, 1),
        work_days_std_dev=round(std_dev, 1),
        night_shift_after_count=night_after,
        consecutive_over_limit_count=over_limit,
        under_filled_slots=under_filled,
    )
