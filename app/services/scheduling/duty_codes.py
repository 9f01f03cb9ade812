"""
Duty code helpers.

Duty code format: [start hour][start minute][duration hours][duration minutes][break]
e.g. 06G5DA
- 06: starts in the 6 o'clock hour
- G: 30 minutes (A=0, B=5, C=10 ... in 5 minute steps)
- 5: 5 hours (0 means 10 hours)
- D: 15 minutes
- A: no break (A=none, Y=90 minutes, W=120 minutes, anything else 60 minutes)
"""

from dataclasses import dataclass
from datetime import time

from .types import DutyCode, RequestType


BREAK_CODE_MINUTES = {"A": 0, "Y": 90, "W": 120}
DEFAULT_BREAK_MINUTES = 60

# start-hour windows for time-window shift requests, [lower, upper)
REQUEST_WINDOWS = {
    RequestType.EARLY_DAWN: (4, 7),
    RequestType.EARLY: (6, 10),
    RequestType.LATE: (13, 17),
}
NIGHT_START_HOUR = 19


@dataclass(frozen=True)
class ParsedDutyCode:
    code: str
    start_time: time
    end_time: time
    duration_hours: int
    duration_minutes: int
    break_minutes: int
    is_overnight: bool


def _letter_to_minutes(letter: str) -> int:
    if not ("A" <= letter <= "L"):
        raise ValueError(f"Invalid minute letter: {letter}")
    return (ord(letter) - ord("A")) * 5


def parse_duty_code(code: str) -> ParsedDutyCode:
    """Parse a six character duty code. Raises ValueError on bad format."""
    if len(code) != 6 or not code[:2].isdigit() or not code[3].isdigit():
        raise ValueError(f"Invalid duty code format: {code}")

    start_hour = int(code[0:2])
    if start_hour > 23:
        raise ValueError(f"Invalid duty code start hour: {code}")
    start_minute = _letter_to_minutes(code[2])

    duration_hours = int(code[3]) or 10
    duration_minutes = _letter_to_minutes(code[4])
    break_minutes = BREAK_CODE_MINUTES.get(code[5], DEFAULT_BREAK_MINUTES)

    total = start_hour * 60 + start_minute + duration_hours * 60 + duration_minutes
    end_time = time((total // 60) % 24, total % 60)

    return ParsedDutyCode(
        code=code,
        start_time=time(start_hour, start_minute),
        end_time=end_time,
        duration_hours=duration_hours,
        duration_minutes=duration_minutes,
        break_minutes=break_minutes,
        is_overnight=total >= 24 * 60,
    )


def duty_code_from_string(duty_code_id: str, code: str, category: str, name: str = None) -> DutyCode:
    parsed = parse_duty_code(code)
    return DutyCode(
        id=duty_code_id,
        code=code,
        start_time=parsed.start_time,
        end_time=parsed.end_time,
        category=category,
        is_overnight=parsed.is_overnight,
        name=name,
    )


def is_night_duty(duty_code: DutyCode) -> bool:
    return duty_code.is_overnight or duty_code.start_hour >= NIGHT_START_HOUR


def matches_request_window(request_type: RequestType, duty_code: DutyCode) -> bool:
    """Does a time-window request (早朝/早番/遅番/夜勤) fit this duty's start hour?"""
    if request_type == RequestType.NIGHT:
        return is_night_duty(duty_code)

    window = REQUEST_WINDOWS.get(request_type)
    if window is None:
        return False
    lower, upper = window
    return lower <= duty_code.start_hour < upper
