import pytest
from datetime import date

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.db.database import Base
from app.db import models  # noqa: F401  registers every table
from app.db.models.roles import Roles
from app.db.models.staff import Staff
from app.db.models.locations import Locations
from app.db.models.duty_codes import DutyCodes
from app.db.models.location_requirements import LocationRequirements
from app.services.scheduling.duty_codes import duty_code_from_string, parse_duty_code
from app.services.scheduling.types import (
    StaffRole,
    StaffMember,
    PositionRequirement,
    ShiftRequest,
    RequestType,
    Shift,
)


EARLY_CODE = "06A8AB"    # 06:00-14:00
LATE_CODE = "14A8AB"     # 14:00-22:00
NIGHT_CODE = "22A9AY"    # 22:00-07:00 next day

LEADER_ROLE = StaffRole(id="role-leader", name="Leader", is_responsible=True, priority=1)
AGENT_ROLE = StaffRole(id="role-agent", name="Agent", is_responsible=False, priority=2)


def get_test_month_start() -> date:
    # fixed month start for deterministic tests (a Monday)
    return date(2025, 12, 1)


def make_duty(duty_id: str = "duty-early", code: str = EARLY_CODE, category: str = "early"):
    return duty_code_from_string(duty_id, code, category)


def make_staff(staff_id: str, responsible: bool = False, tags=(), active: bool = True) -> StaffMember:
    return StaffMember(
        id=staff_id,
        employee_number=staff_id.upper(),
        name=staff_id,
        role=LEADER_ROLE if responsible else AGENT_ROLE,
        tags=set(tags),
        is_active=active,
    )


def make_requirement(
    day: date,
    duty=None,
    location_id: str = "loc-1",
    count: int = 1,
    responsible: bool = False,
    tags=(),
    rule_id=None,
) -> PositionRequirement:
    duty = duty or make_duty()
    return PositionRequirement(
        date=day,
        location_id=location_id,
        duty_code_id=duty.id,
        duty_code=duty,
        required_count=count,
        requires_responsible=responsible,
        required_tags=frozenset(tags),
        required_responsible_count=1 if responsible else 0,
        rule_id=rule_id,
    )


def build_shift(staff_id: str, day: date, duty=None, location_id: str = "loc-1", responsible: bool = False, shift_id=None) -> Shift:
    duty = duty or make_duty()
    return Shift(
        staff_id=staff_id,
        location_id=location_id,
        duty_code_id=duty.id,
        date=day,
        duty_code=duty,
        is_responsible=responsible,
        id=shift_id,
    )


def make_request(staff_id: str, day: date, request_type: RequestType) -> ShiftRequest:
    return ShiftRequest(staff_id=staff_id, date=day, request_type=request_type)


@pytest.fixture
def early_duty():
    return make_duty("duty-early", EARLY_CODE, "early")


@pytest.fixture
def late_duty():
    return make_duty("duty-late", LATE_CODE, "late")


@pytest.fixture
def night_duty():
    return make_duty("duty-night", NIGHT_CODE, "night")


@pytest.fixture
def three_staff() -> list[StaffMember]:
    # one leader and two agents, no tags
    return [
        make_staff("s1", responsible=True),
        make_staff("s2"),
        make_staff("s3"),
    ]


# -- database --

@pytest.fixture
def db():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


def add_duty_code(db, duty_id: str, code: str, category: str = "general") -> DutyCodes:
    parsed = parse_duty_code(code)
    row = DutyCodes(
        id=duty_id,
        code=code,
        start_time=parsed.start_time,
        end_time=parsed.end_time,
        duration_hours=parsed.duration_hours,
        duration_minutes=parsed.duration_minutes,
        break_minutes=parsed.break_minutes,
        is_overnight=parsed.is_overnight,
        category=category,
    )
    db.add(row)
    return row


@pytest.fixture
def seeded_db(db):
    """
    One location with a daily early position for one head,
    one leader and two agents.
    """
    db.add_all([
        Roles(id="role-leader", name="Leader", is_responsible=True, priority=1),
        Roles(id="role-agent", name="Agent", is_responsible=False, priority=2),
        Locations(id="loc-1", code="T1-A", location_name="Check-in A", business_type="check-in"),
    ])
    add_duty_code(db, "duty-early", EARLY_CODE, "early")
    db.flush()
    db.add_all([
        Staff(id="s1", employee_number="100001", name="Leader One", role_id="role-leader", tags=[]),
        Staff(id="s2", employee_number="100002", name="Agent Two", role_id="role-agent", tags=[]),
        Staff(id="s3", employee_number="100003", name="Agent Three", role_id="role-agent", tags=[]),
        LocationRequirements(
            id="req-1",
            location_id="loc-1",
            duty_code_id="duty-early",
            required_staff_count=1,
            required_responsible_count=0,
        ),
    ])
    db.commit()
    return db


@pytest.fixture
def client(seeded_db):
    from app.main import app
    from app.api.deps import get_db

    def override_get_db():
        yield seeded_db

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
