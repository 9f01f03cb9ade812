"""
Data loader for the auto-assignment service.
Fetches all relevant data from the database and converts to internal types,
and writes optimizer output back as shift rows.
"""

import logging
from datetime import date, timedelta
from typing import Iterable, Optional

from sqlalchemy import select, and_, delete
from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.models.roles import Roles
from app.db.models.staff import Staff
from app.db.models.locations import Locations
from app.db.models.duty_codes import DutyCodes
from app.db.models.location_requirements import LocationRequirements
from app.db.models.shift_requests import ShiftRequests
from app.db.models.shifts import Shifts, ShiftStatus as ShiftStatusColumn

from .requirements import month_bounds
from .types import (
    DutyCode,
    Location,
    LocationRequirementRule,
    MonthContext,
    RequestType,
    Shift,
    ShiftRequest,
    ShiftStatus,
    StaffMember,
    StaffRole,
)


logger = logging.getLogger(__name__)


def load_locations(db: Session, location_ids: Optional[list[str]] = None) -> list[Location]:
    """Load active locations, optionally restricted to the given ids."""

    conditions = [Locations.is_active == True]
    if location_ids:
        conditions.append(Locations.id.in_(location_ids))

    stmt = select(Locations).where(and_(*conditions)).order_by(Locations.code)
    rows = db.execute(stmt).scalars().all()

    return [
        Location(
            id=r.id,
            code=r.code,
            location_name=r.location_name,
            business_type=r.business_type,
            is_active=r.is_active,
        )
        for r in rows
    ]


def load_requirement_rules(db: Session, location_ids: list[str]) -> list[LocationRequirementRule]:
    """Load requirement rules for a set of locations."""

    if not location_ids:
        return []

    stmt = select(LocationRequirements).where(
        LocationRequirements.location_id.in_(location_ids)
    ).order_by(LocationRequirements.id)
    rows = db.execute(stmt).scalars().all()

    return [
        LocationRequirementRule(
            id=r.id,
            location_id=r.location_id,
            duty_code_id=r.duty_code_id,
            required_staff_count=r.required_staff_count,
            required_responsible_count=r.required_responsible_count,
            required_tags=list(r.required_tags or []),
            day_of_week=r.day_of_week,
            specific_date=r.specific_date,
        )
        for r in rows
    ]


def load_duty_codes(db: Session) -> dict[str, DutyCode]:
    rows = db.execute(select(DutyCodes)).scalars().all()
    return {
        r.id: DutyCode(
            id=r.id,
            code=r.code,
            start_time=r.start_time,
            end_time=r.end_time,
            category=r.category,
            is_overnight=r.is_overnight,
            name=r.name,
        )
        for r in rows
    }


def load_staff(db: Session, staff_id: Optional[str] = None) -> list[StaffMember]:
    """Load active staff with their roles."""

    conditions = [Staff.is_active == True]
    if staff_id:
        conditions.append(Staff.id == staff_id)

    stmt = (
        select(Staff, Roles)
        .outerjoin(Roles, Staff.role_id == Roles.id)
        .where(and_(*conditions))
        .order_by(Staff.id)
    )

    staff = []
    for member, role in db.execute(stmt).all():
        staff.append(StaffMember(
            id=member.id,
            employee_number=member.employee_number,
            name=member.name,
            role=StaffRole(
                id=role.id,
                name=role.name,
                is_responsible=role.is_responsible,
                priority=role.priority,
            ) if role else None,
            tags=set(member.tags or []),
            is_active=member.is_active,
        ))

    return staff


def load_shift_requests(
    db: Session,
    month_start: date,
    month_end: date,
    staff_id: Optional[str] = None,
) -> list[ShiftRequest]:
    """Load shift requests in a date range, skipping unknown request types."""

    conditions = [
        ShiftRequests.date >= month_start,
        ShiftRequests.date <= month_end,
    ]
    if staff_id:
        conditions.append(ShiftRequests.staff_id == staff_id)

    stmt = select(ShiftRequests).where(and_(*conditions)).order_by(ShiftRequests.date, ShiftRequests.staff_id)
    rows = db.execute(stmt).scalars().all()

    requests = []
    for r in rows:
        try:
            request_type = RequestType(r.request_type)
        except ValueError:
            logger.warning(f"Ignoring shift request {r.id} with unknown type {r.request_type!r}")
            continue
        requests.append(ShiftRequest(
            staff_id=r.staff_id,
            date=r.date,
            request_type=request_type,
            note=r.note,
        ))

    return requests


def load_existing_shifts(
    db: Session,
    month_start: date,
    month_end: date,
    duty_codes: dict[str, DutyCode],
) -> list[Shift]:
    """Load non-cancelled shifts dated month_start..month_end inclusive."""

    stmt = select(Shifts, Staff.role_id).join(Staff, Shifts.staff_id == Staff.id).where(
        and_(
            Shifts.status != ShiftStatusColumn.CANCELLED,
            Shifts.date >= month_start,
            Shifts.date <= month_end,
        )
    ).order_by(Shifts.date, Shifts.staff_id)

    responsible_roles = set(
        db.execute(select(Roles.id).where(Roles.is_responsible == True)).scalars().all()
    )

    return [
        Shift(
            id=s.id,
            staff_id=s.staff_id,
            location_id=s.location_id,
            duty_code_id=s.duty_code_id,
            date=s.date,
            status=ShiftStatus(s.status.value),
            note=s.note,
            duty_code=duty_codes.get(s.duty_code_id),
            is_responsible=role_id in responsible_roles,
        )
        for s, role_id in db.execute(stmt).all()
    ]


def load_month_context(
    db: Session,
    year_month: str,
    location_ids: Optional[list[str]] = None,
    boundary_days: Optional[int] = None,
) -> MonthContext:
    """
    Load all data needed to optimize a month.

    Shifts within `boundary_days` before and after the month are loaded as
    boundary shifts so rest intervals and consecutive-day runs see across the
    month edges. Defaults to the configured consecutive-day limit.

    Raises:
        ValueError: year_month is not YYYY-MM
    """
    month_start, month_end = month_bounds(year_month)
    if boundary_days is None:
        boundary_days = max(settings.OPTIMIZER_MAX_CONSECUTIVE_DAYS, 1)

    locations = load_locations(db, location_ids)
    duty_codes = load_duty_codes(db)

    boundary_shifts = load_existing_shifts(
        db, month_start - timedelta(days=boundary_days), month_start - timedelta(days=1), duty_codes
    ) + load_existing_shifts(
        db, month_end + timedelta(days=1), month_end + timedelta(days=boundary_days), duty_codes
    )

    return MonthContext(
        year_month=year_month,
        month_start=month_start,
        month_end=month_end,
        locations=locations,
        rules=load_requirement_rules(db, [loc.id for loc in locations]),
        duty_codes=duty_codes,
        staff=load_staff(db),
        shift_requests=load_shift_requests(db, month_start, month_end),
        existing_shifts=load_existing_shifts(db, month_start, month_end, duty_codes),
        boundary_shifts=boundary_shifts,
    )


def insert_shifts(db: Session, shifts: Iterable[Shift], created_by: Optional[str] = None) -> list[Shifts]:
    """Add shift rows to the session. The caller commits."""

    rows = [
        Shifts(
            staff_id=s.staff_id,
            location_id=s.location_id,
            duty_code_id=s.duty_code_id,
            date=s.date,
            status=ShiftStatusColumn(s.status.value),
            note=s.note,
            created_by=created_by,
            updated_by=created_by,
        )
        for s in shifts
    ]
    db.add_all(rows)
    db.flush()
    return rows


def delete_shifts(db: Session, shift_ids: list[str]) -> int:
    """Delete shift rows by id. The caller commits."""

    if not shift_ids:
        return 0
    result = db.execute(delete(Shifts).where(Shifts.id.in_(shift_ids)))
    return result.rowcount


def replace_shift_requests(
    db: Session,
    staff_id: str,
    year_month: str,
    requests: list[ShiftRequest],
) -> list[ShiftRequests]:
    """Replace one staff member's requests for a month. The caller commits."""

    db.execute(
        delete(ShiftRequests).where(
            and_(
                ShiftRequests.staff_id == staff_id,
                ShiftRequests.year_month == year_month,
            )
        )
    )

    rows = [
        ShiftRequests(
            staff_id=staff_id,
            date=r.date,
            request_type=r.request_type.value,
            note=r.note,
            year_month=year_month,
        )
        for r in requests
    ]
    db.add_all(rows)
    db.flush()
    return rows
