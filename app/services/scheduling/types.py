"""
Internal data types for the auto-assignment optimizer.
decoupled from SQLAlchemy models for cleaner logic.
"""

import threading
from dataclasses import dataclass, field
from datetime import date, time, datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Optional, Union

if TYPE_CHECKING:
    from .local_search import NeighborhoodStrategy


class RequestType(str, Enum):
    AVAILABLE = "◯"
    REST = "休"
    EARLY_DAWN = "早朝"
    EARLY = "早番"
    LATE = "遅番"
    NIGHT = "夜勤"


# Request types naming a preferred time window
WINDOW_REQUEST_TYPES = (
    RequestType.EARLY_DAWN,
    RequestType.EARLY,
    RequestType.LATE,
    RequestType.NIGHT,
)


class ShiftStatus(str, Enum):
    PLANNED = "予定"
    CONFIRMED = "確定"
    CHANGED = "変更"
    CANCELLED = "キャンセル"


class TagMatchMode(str, Enum):
    ALL = "all"  # staff must hold every required tag
    ANY = "any"  # one shared tag is enough


@dataclass(frozen=True)
class StaffRole:
    id: str
    name: str
    is_responsible: bool = False
    priority: int = 0


@dataclass
class StaffMember:
    id: str
    employee_number: str
    name: str
    role: Optional[StaffRole] = None
    tags: set[str] = field(default_factory=set)
    is_active: bool = True

    @property
    def is_responsible(self) -> bool:
        return self.role is not None and self.role.is_responsible


@dataclass(frozen=True)
class DutyCode:
    id: str
    code: str
    start_time: time
    end_time: time
    category: str
    is_overnight: bool = False
    name: Optional[str] = None

    @property
    def start_hour(self) -> int:
        return self.start_time.hour

    def start_on(self, day: date) -> datetime:
        return datetime.combine(day, self.start_time)

    def end_on(self, day: date) -> datetime:
        """End datetime of this duty when it starts on `day`."""
        end = datetime.combine(day, self.end_time)
        if self.is_overnight or self.end_time <= self.start_time:
            end += timedelta(days=1)
        return end


@dataclass
class Location:
    id: str
    code: str
    location_name: str
    business_type: str = ""
    is_active: bool = True


@dataclass(frozen=True)
class DefaultQualifier:
    """Rule applies to every date."""


@dataclass(frozen=True)
class DayOfWeekQualifier:
    day_of_week: int  # 0=Sunday .. 6=Saturday


@dataclass(frozen=True)
class SpecificDateQualifier:
    specific_date: date


Qualifier = Union[DefaultQualifier, DayOfWeekQualifier, SpecificDateQualifier]


@dataclass
class LocationRequirementRule:
    """A recurring staffing rule as stored, before date expansion."""
    id: str
    location_id: str
    duty_code_id: str
    required_staff_count: int
    required_responsible_count: int = 0
    required_tags: list[str] = field(default_factory=list)
    day_of_week: Optional[int] = None
    specific_date: Optional[str] = None  # raw YYYY-MM-DD, may be malformed


@dataclass(frozen=True)
class PositionRequirement:
    """
    A concrete staffing need for one date/location/duty code, produced by one rule.

    Several rules can land on the same slot; each keeps its own count and
    gates, told apart by `rule_id`.
    """
    date: date
    location_id: str
    duty_code_id: str
    duty_code: DutyCode
    required_count: int
    requires_responsible: bool = False
    required_tags: frozenset[str] = frozenset()
    required_responsible_count: int = 0
    rule_id: Optional[str] = None

    @property
    def slot_key(self) -> tuple[date, str, str]:
        return (self.date, self.location_id, self.duty_code_id)

    @property
    def position_key(self) -> tuple[date, str, str, Optional[str]]:
        return (self.date, self.location_id, self.duty_code_id, self.rule_id)

    @property
    def label(self) -> str:
        return f"{self.date.isoformat()} {self.location_id}/{self.duty_code.code}"


@dataclass
class ShiftRequest:
    staff_id: str
    date: date
    request_type: RequestType
    note: Optional[str] = None


@dataclass
class Shift:
    """A shift assignment (proposed or committed)."""
    staff_id: str
    location_id: str
    duty_code_id: str
    date: date
    status: ShiftStatus = ShiftStatus.PLANNED
    note: Optional[str] = None
    id: Optional[str] = None
    duty_code: Optional[DutyCode] = field(default=None, compare=False)
    is_responsible: bool = False
    requirement_id: Optional[str] = field(default=None, compare=False)

    @property
    def slot_key(self) -> tuple[date, str, str]:
        return (self.date, self.location_id, self.duty_code_id)

    @property
    def position_key(self) -> tuple[date, str, str, Optional[str]]:
        return (self.date, self.location_id, self.duty_code_id, self.requirement_id)


@dataclass(frozen=True)
class ConstraintRules:
    """Hard-constraint knobs shared by the batch and progressive paths."""
    tag_match: TagMatchMode = TagMatchMode.ALL
    max_consecutive_days: Optional[int] = 6
    min_rest_hours: Optional[int] = 11


@dataclass
class RequirementFilter:
    """Narrows an optimization to part of the month."""
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    location_ids: Optional[list[str]] = None
    duty_code_ids: Optional[list[str]] = None

    def matches(self, day: date, location_id: str, duty_code_id: str) -> bool:
        if self.date_from and day < self.date_from:
            return False
        if self.date_to and day > self.date_to:
            return False
        if self.location_ids and location_id not in self.location_ids:
            return False
        if self.duty_code_ids and duty_code_id not in self.duty_code_ids:
            return False
        return True

    def covers(self, shift: Shift) -> bool:
        return self.matches(shift.date, shift.location_id, shift.duty_code_id)


@dataclass
class ValidationResult:
    is_valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass
class AssignmentStats:
    total_assignments: int
    fulfillment_rate: int  # filled slots / required slots, whole percent
    request_fulfillment_rate: float  # honoured ◯/休 requests, percent
    avg_work_days_per_staff: float
    work_days_std_dev: float  # population std-dev over the whole roster
    night_shift_after_count: int
    consecutive_over_limit_count: int
    under_filled_slots: int


@dataclass
class OptimizationOptions:
    apply_local_search: bool = True
    max_local_search_iterations: int = 100
    timeout_ms: int = 30000
    accept_neutral_moves: bool = True
    rules: ConstraintRules = field(default_factory=ConstraintRules)
    neighborhood: Optional["NeighborhoodStrategy"] = None
    note: Optional[str] = None
    cancel_event: Optional[threading.Event] = None

    @property
    def is_cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()


@dataclass
class OptimizationResult:
    """Output of a batch optimization run."""
    assignments: list[Shift]
    validation: ValidationResult
    stats: AssignmentStats
    total_score: float
    under_filled: list[PositionRequirement] = field(default_factory=list)
    local_search_iterations: int = field(default=0, compare=False)
    processing_time_ms: int = field(default=0, compare=False)


@dataclass
class AutoAssignOutcome:
    """
    Result of a progressive auto-assignment.
    Failures are carried in `error` instead of being raised so that the
    calling action (saving shift requests) can never be blocked by it.
    """
    assigned_count: int = 0
    skipped_count: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class MonthContext:
    """Everything an optimization run for one month reads from storage."""
    year_month: str
    month_start: date
    month_end: date
    locations: list[Location]
    rules: list[LocationRequirementRule]
    duty_codes: dict[str, DutyCode]
    staff: list[StaffMember]
    shift_requests: list[ShiftRequest]
    existing_shifts: list[Shift]
    # non-cancelled shifts just before and after the month; rest and run-length checks only
    boundary_shifts: list[Shift] = field(default_factory=list)

    @property
    def staff_by_id(self) -> dict[str, StaffMember]:
        return {s.id: s for s in self.staff}
