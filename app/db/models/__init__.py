from app.db.database import Base

# Import models
from app.db.models.roles import Roles
from app.db.models.staff import Staff
from app.db.models.locations import Locations
from app.db.models.duty_codes import DutyCodes
from app.db.models.location_requirements import LocationRequirements
from app.db.models.shift_requests import ShiftRequests, ShiftRequestType
from app.db.models.shifts import Shifts, ShiftStatus

__all__ = [
    "Base",
    # Models
    "Roles",
    "Staff",
    "Locations",
    "DutyCodes",
    "LocationRequirements",
    "ShiftRequests",
    "Shifts",
    # Enums
    "ShiftRequestType",
    "ShiftStatus",
]
