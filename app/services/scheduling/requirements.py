"""
Position requirement generation.

Expands recurring location requirement rules into one PositionRequirement
per (date, rule) for a target month. Rules that share a slot stay separate
positions, each with its own count, tags and responsible gate.
"""

import calendar
import logging
from collections import Counter, defaultdict
from dataclasses import replace
from datetime import date
from typing import Optional

from .errors import NoLocationsError
from .types import (
    DayOfWeekQualifier,
    DefaultQualifier,
    DutyCode,
    Location,
    LocationRequirementRule,
    PositionRequirement,
    Qualifier,
    Shift,
    SpecificDateQualifier,
)

logger = logging.getLogger(__name__)


def parse_year_month(year_month: str) -> tuple[int, int]:
    """Parse 'YYYY-MM'. Raises ValueError on anything else."""
    parts = year_month.split("-") if year_month else []
    if len(parts) != 2 or len(parts[0]) != 4 or len(parts[1]) != 2:
        raise ValueError(f"Invalid year_month (expected YYYY-MM): {year_month!r}")
    if not (parts[0].isdigit() and parts[1].isdigit()):
        raise ValueError(f"Invalid year_month (expected YYYY-MM): {year_month!r}")

    year, month = int(parts[0]), int(parts[1])
    if not 1 <= month <= 12:
        raise ValueError(f"Invalid month in year_month: {year_month!r}")
    return year, month


def month_dates(year: int, month: int) -> list[date]:
    days_in_month = calendar.monthrange(year, month)[1]
    return [date(year, month, d) for d in range(1, days_in_month + 1)]


def month_bounds(year_month: str) -> tuple[date, date]:
    year, month = parse_year_month(year_month)
    days = month_dates(year, month)
    return days[0], days[-1]


def sunday_based_weekday(day: date) -> int:
    """0=Sunday .. 6=Saturday."""
    return (day.weekday() + 1) % 7


def build_qualifier(rule: LocationRequirementRule) -> Qualifier:
    """
    Pick the qualifier for a rule.

    A specific date wins over a day of week, which wins over the default.
    Raises ValueError if the specific date is not a real calendar date.
    """
    if rule.specific_date:
        return SpecificDateQualifier(date.fromisoformat(rule.specific_date))
    if rule.day_of_week is not None:
        if not 0 <= rule.day_of_week <= 6:
            raise ValueError(f"Invalid day_of_week: {rule.day_of_week}")
        return DayOfWeekQualifier(rule.day_of_week)
    return DefaultQualifier()


def qualifier_matches(qualifier: Qualifier, day: date) -> bool:
    if isinstance(qualifier, SpecificDateQualifier):
        return qualifier.specific_date == day
    if isinstance(qualifier, DayOfWeekQualifier):
        return qualifier.day_of_week == sunday_based_weekday(day)
    return True


def generate_position_requirements(
    year_month: str,
    locations: list[Location],
    rules: list[LocationRequirementRule],
    duty_codes: dict[str, DutyCode],
    location_ids: Optional[list[str]] = None,
) -> list[PositionRequirement]:
    """
    Expand requirement rules into concrete positions for every day of the month.

    Args:
        year_month: Target month, "YYYY-MM"
        locations: Candidate locations (inactive ones are ignored)
        rules: Raw requirement rules
        duty_codes: duty_code_id -> DutyCode
        location_ids: Optional filter; when given, only these locations are expanded

    Raises:
        ValueError: malformed year_month
        NoLocationsError: the location filter matches no active location
    """
    year, month = parse_year_month(year_month)
    days = month_dates(year, month)

    active = [loc for loc in locations if loc.is_active]
    if location_ids:
        active = [loc for loc in active if loc.id in location_ids]
        if not active:
            raise NoLocationsError(f"No active locations match {location_ids}")
    active_ids = {loc.id for loc in active}

    # Resolve each rule once
    qualified: list[tuple[LocationRequirementRule, Qualifier, DutyCode]] = []
    for rule in rules:
        if rule.location_id not in active_ids:
            continue

        try:
            qualifier = build_qualifier(rule)
        except ValueError:
            logger.warning(
                f"Skipping requirement {rule.id}: invalid date qualifier "
                f"(specific_date={rule.specific_date!r}, day_of_week={rule.day_of_week!r})"
            )
            continue

        duty_code = duty_codes.get(rule.duty_code_id)
        if duty_code is None:
            logger.warning(f"Skipping requirement {rule.id}: unknown duty code {rule.duty_code_id}")
            continue

        if rule.required_staff_count < 1:
            logger.debug(f"Skipping requirement {rule.id}: required_staff_count is {rule.required_staff_count}")
            continue

        qualified.append((rule, qualifier, duty_code))

    requirements: list[PositionRequirement] = []
    for day in days:
        for rule, qualifier, duty_code in qualified:
            if not qualifier_matches(qualifier, day):
                continue
            requirements.append(
                PositionRequirement(
                    date=day,
                    location_id=rule.location_id,
                    duty_code_id=rule.duty_code_id,
                    duty_code=duty_code,
                    required_count=rule.required_staff_count,
                    requires_responsible=rule.required_responsible_count > 0,
                    required_tags=frozenset(rule.required_tags or ()),
                    required_responsible_count=rule.required_responsible_count,
                    rule_id=rule.id,
                )
            )

    return requirements


def attribute_shifts(shifts: list[Shift], requirements: list[PositionRequirement]) -> list[Shift]:
    """
    Tie shifts without a requirement id to one of the positions on their slot.

    A responsible shift goes to a responsible position first, anyone else to
    the least demanding position; positions with room win over full ones.
    Shifts on slots without a position are returned unchanged.
    """
    by_slot: dict[tuple, list[PositionRequirement]] = defaultdict(list)
    for req in requirements:
        by_slot[req.slot_key].append(req)

    taken = Counter(s.position_key for s in shifts if s.requirement_id is not None)
    attributed = []
    for shift in shifts:
        candidates = by_slot.get(shift.slot_key)
        if shift.requirement_id is not None or not candidates:
            attributed.append(shift)
            continue

        ranked = sorted(
            candidates,
            key=lambda r: (
                r.requires_responsible != shift.is_responsible,
                len(r.required_tags),
                r.rule_id or "",
            ),
        )
        target = next((r for r in ranked if taken[r.position_key] < r.required_count), ranked[0])
        taken[target.position_key] += 1
        attributed.append(replace(shift, requirement_id=target.rule_id))

    return attributed
