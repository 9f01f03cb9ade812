"""
Shift auto-assignment package.

Usage:
    from app.services.scheduling import preview_assignments, commit_assignments

    # Preview a month - nothing is saved
    preview = preview_assignments(db, "2025-12", location_ids=[location_id])

    # Save it, replacing existing shifts in scope
    committed = commit_assignments(db, "2025-12", overwrite_existing=True)

    # Or work with the pure optimizer directly
    from app.services.scheduling import generate_position_requirements, optimize_shift_assignments

    requirements = generate_position_requirements("2025-12", locations, rules, duty_codes)
    result = optimize_shift_assignments(requirements, staff, shift_requests)
"""

from .types import (
    RequestType,
    ShiftStatus,
    TagMatchMode,
    StaffRole,
    StaffMember,
    DutyCode,
    Location,
    LocationRequirementRule,
    PositionRequirement,
    ShiftRequest,
    Shift,
    ConstraintRules,
    RequirementFilter,
    ValidationResult,
    AssignmentStats,
    OptimizationOptions,
    OptimizationResult,
    AutoAssignOutcome,
    MonthContext,
)
from .errors import (
    AutoAssignError,
    NoLocationsError,
    NoRequirementsError,
    ShiftConflictError,
    ConstraintViolationError,
    StaffNotFoundError,
)
from .duty_codes import parse_duty_code, matches_request_window
from .requirements import generate_position_requirements, parse_year_month
from .constraints import can_assign_staff, validate_all_assignments
from .scoring import score_staff_assignment, calculate_stats, calculate_total_score
from .local_search import NeighborhoodStrategy
from .optimizer import optimize_shift_assignments, optimize_partial_assignments
from .progressive import assign_staff_progressively, auto_assign_for_staff
from .data_loader import load_month_context
from .service import preview_assignments, commit_assignments, submit_shift_requests

__all__ = [
    # Types
    "RequestType",
    "ShiftStatus",
    "TagMatchMode",
    "StaffRole",
    "StaffMember",
    "DutyCode",
    "Location",
    "LocationRequirementRule",
    "PositionRequirement",
    "ShiftRequest",
    "Shift",
    "ConstraintRules",
    "RequirementFilter",
    "ValidationResult",
    "AssignmentStats",
    "OptimizationOptions",
    "OptimizationResult",
    "AutoAssignOutcome",
    "MonthContext",
    # Errors
    "AutoAssignError",
    "NoLocationsError",
    "NoRequirementsError",
    "ShiftConflictError",
    "ConstraintViolationError",
    "StaffNotFoundError",
    # Main entry points
    "preview_assignments",
    "commit_assignments",
    "submit_shift_requests",
    "auto_assign_for_staff",
    # Lower-level functions
    "parse_duty_code",
    "matches_request_window",
    "parse_year_month",
    "generate_position_requirements",
    "can_assign_staff",
    "validate_all_assignments",
    "score_staff_assignment",
    "calculate_stats",
    "calculate_total_score",
    "NeighborhoodStrategy",
    "optimize_shift_assignments",
    "optimize_partial_assignments",
    "assign_staff_progressively",
    "load_month_context",
]
