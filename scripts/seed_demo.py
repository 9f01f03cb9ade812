"""
Seed script for the shift optimizer development database.

Creates:
- 2 roles (a responsible leader role and a regular agent role)
- 3 check-in counter locations at one terminal
- 4 duty codes (early, day, late, overnight)
- 8 staff members with language/skill tags
- Daily requirements per location, plus a weekend boost
- ◯ / 休 requests for the current month

Run with: python -m scripts.seed_demo
"""

import sys
from datetime import date

from sqlalchemy import delete

from app.db.database import Base, SessionLocal, engine
from app.db.models.roles import Roles
from app.db.models.staff import Staff
from app.db.models.locations import Locations
from app.db.models.duty_codes import DutyCodes
from app.db.models.location_requirements import LocationRequirements
from app.db.models.shift_requests import ShiftRequests, ShiftRequestType
from app.db.models.shifts import Shifts
from app.services.scheduling.duty_codes import parse_duty_code
from app.services.scheduling.requirements import month_dates


def clear_tables(db):
    """Delete all rows, children first."""
    print("Clearing tables...")

    for model in [Shifts, ShiftRequests, LocationRequirements, Staff, DutyCodes, Locations, Roles]:
        db.execute(delete(model))

    db.commit()
    print("All tables cleared.")


def current_year_month() -> str:
    today = date.today()
    return f"{today.year:04d}-{today.month:02d}"


def seed_roles(db):
    print("Seeding roles...")

    roles = [
        Roles(id="role-leader", name="リーダー", is_responsible=True, priority=1),
        Roles(id="role-agent", name="一般", is_responsible=False, priority=2),
    ]
    for role in roles:
        db.add(role)
    db.commit()
    print(f"Seeded {len(roles)} roles.")


def seed_locations(db):
    print("Seeding locations...")

    locations = [
        Locations(id="loc-t1-a", code="T1-A", location_name="T1 Check-in A", business_type="check-in"),
        Locations(id="loc-t1-b", code="T1-B", location_name="T1 Check-in B", business_type="check-in"),
        Locations(id="loc-t1-gate", code="T1-G", location_name="T1 Boarding Gate", business_type="gate"),
    ]
    for location in locations:
        db.add(location)
    db.commit()
    print(f"Seeded {len(locations)} locations.")


def seed_duty_codes(db):
    print("Seeding duty codes...")

    definitions = [
        ("duty-early", "05G8AB", "早番", "early"),
        ("duty-day", "09A8AB", "日勤", "day"),
        ("duty-late", "14A8AB", "遅番", "late"),
        ("duty-night", "22A9AY", "夜勤", "night"),
    ]

    for duty_id, code, name, category in definitions:
        parsed = parse_duty_code(code)
        db.add(DutyCodes(
            id=duty_id,
            code=code,
            name=name,
            start_time=parsed.start_time,
            end_time=parsed.end_time,
            duration_hours=parsed.duration_hours,
            duration_minutes=parsed.duration_minutes,
            break_minutes=parsed.break_minutes,
            is_overnight=parsed.is_overnight,
            category=category,
        ))
    db.commit()
    print(f"Seeded {len(definitions)} duty codes.")


def seed_staff(db):
    print("Seeding staff...")

    members = [
        ("staff-001", "100001", "Sato", "role-leader", ["english", "gate"]),
        ("staff-002", "100002", "Suzuki", "role-leader", ["english"]),
        ("staff-003", "100003", "Takahashi", "role-agent", ["english", "chinese"]),
        ("staff-004", "100004", "Tanaka", "role-agent", ["gate"]),
        ("staff-005", "100005", "Watanabe", "role-agent", []),
        ("staff-006", "100006", "Ito", "role-agent", ["english"]),
        ("staff-007", "100007", "Yamamoto", "role-leader", ["gate"]),
        ("staff-008", "100008", "Nakamura", "role-agent", ["korean"]),
    ]

    for staff_id, number, name, role_id, tags in members:
        db.add(Staff(
            id=staff_id,
            employee_number=number,
            name=name,
            role_id=role_id,
            tags=tags,
            is_active=True,
        ))
    db.commit()
    print(f"Seeded {len(members)} staff.")


def seed_requirements(db):
    """Daily counter coverage, with an extra agent at weekends."""
    print("Seeding location requirements...")

    requirements = [
        # Check-in A: early and late every day, early needs a leader
        LocationRequirements(location_id="loc-t1-a", duty_code_id="duty-early",
                             required_staff_count=2, required_responsible_count=1),
        LocationRequirements(location_id="loc-t1-a", duty_code_id="duty-late",
                             required_staff_count=1, required_tags=["english"]),
        # Check-in B: day shift only
        LocationRequirements(location_id="loc-t1-b", duty_code_id="duty-day",
                             required_staff_count=1),
        # Gate: overnight cover
        LocationRequirements(location_id="loc-t1-gate", duty_code_id="duty-night",
                             required_staff_count=1, required_tags=["gate"]),
    ]

    # weekend boost at check-in B (0=Sunday, 6=Saturday)
    for day_of_week in (0, 6):
        requirements.append(LocationRequirements(
            location_id="loc-t1-b",
            duty_code_id="duty-day",
            required_staff_count=1,
            day_of_week=day_of_week,
        ))

    for req in requirements:
        db.add(req)
    db.commit()
    print(f"Seeded {len(requirements)} location requirements.")


def seed_shift_requests(db, year_month: str):
    """Every staff member asks for a rest day each week and marks a few days available."""
    print("Seeding shift requests...")

    year, month = (int(p) for p in year_month.split("-"))
    days = month_dates(year, month)
    staff_ids = [f"staff-{n:03d}" for n in range(1, 9)]

    count = 0
    for index, staff_id in enumerate(staff_ids):
        for day in days:
            offset = (day.day + index) % 7
            if offset == 0:
                request_type = ShiftRequestType.REST
            elif offset in (2, 4):
                request_type = ShiftRequestType.AVAILABLE
            else:
                continue
            db.add(ShiftRequests(
                staff_id=staff_id,
                date=day,
                request_type=request_type.value,
                year_month=year_month,
            ))
            count += 1
    db.commit()
    print(f"Seeded {count} shift requests for {year_month}.")


def main():
    """Main seed function."""
    print("\n" + "="*50)
    print("Shift Optimizer Database Seeder")
    print("="*50 + "\n")

    response = input("This will DELETE ALL EXISTING DATA. Continue? (yes/no): ")
    if response.lower() != "yes":
        print("Aborted.")
        sys.exit(0)

    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    year_month = current_year_month()

    try:
        clear_tables(db)

        seed_roles(db)
        seed_locations(db)
        seed_duty_codes(db)
        seed_staff(db)
        seed_requirements(db)
        seed_shift_requests(db, year_month)

        print("\n" + "="*50)
        print("Seeding complete!")
        print("="*50)
        print(f"\nTry a preview for {year_month}:")
        print(f'  POST /api/v1/auto-assign/preview {{"year_month": "{year_month}"}}')
        print("="*50 + "\n")

    except Exception as e:
        db.rollback()
        print(f"\nError during seeding: {e}")
        raise
    finally:
        db.close()


if __name__ == "__main__":
    main()
