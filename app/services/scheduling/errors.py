"""
Exceptions raised by the auto-assignment entry points.

Under-filled slots and constraint violations found while optimizing are
returned as data on OptimizationResult; these exceptions are reserved for
inputs that cannot be optimized at all and for conflicts the caller has to
resolve.
"""


class AutoAssignError(Exception):
    pass


class NoLocationsError(AutoAssignError):
    """No active location matches the requested location filter."""


class NoRequirementsError(AutoAssignError):
    """The period/location combination has no staffing requirements."""


class ShiftConflictError(AutoAssignError):
    """Proposed assignments collide with existing shifts and overwrite was not requested."""

    def __init__(self, conflicts: list):
        self.conflicts = conflicts
        super().__init__(
            f"{len(conflicts)} conflict(s) with existing shifts. "
            "Enable overwrite or remove the existing shifts first."
        )


class ConstraintViolationError(AutoAssignError):
    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__("Constraint violations detected:\n" + "\n".join(errors))


class StaffNotFoundError(AutoAssignError):
    pass
