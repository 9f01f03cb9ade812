from pydantic import BaseModel, Field, field_validator
from datetime import date
from typing import List, Optional
from app.services.scheduling.types import ShiftStatus


class AutoAssignRequest(BaseModel):
    year_month: str = Field(..., examples=["2025-12"])
    location_ids: Optional[List[str]] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    duty_code_ids: Optional[List[str]] = None
    overwrite_existing: bool = False
    apply_local_search: Optional[bool] = None
    max_local_search_iterations: Optional[int] = Field(None, ge=0)
    timeout_ms: Optional[int] = Field(None, gt=0)


class AutoAssignCommitRequest(AutoAssignRequest):
    require_valid: bool = False


class AssignmentResponse(BaseModel):
    staff_id: str
    location_id: str
    duty_code_id: str
    date: date
    status: ShiftStatus
    note: Optional[str] = None
    is_responsible: bool = False
    requirement_id: Optional[str] = None

    class Config:
        from_attributes = True


class PositionResponse(BaseModel):
    date: date
    location_id: str
    duty_code_id: str
    required_count: int
    requires_responsible: bool
    required_tags: List[str]
    rule_id: Optional[str] = None

    @field_validator("required_tags", mode="before")
    @classmethod
    def sort_tags(cls, v):
        return sorted(v)

    class Config:
        from_attributes = True


class ValidationResponse(BaseModel):
    is_valid: bool
    errors: List[str]
    warnings: List[str]

    class Config:
        from_attributes = True


class StatsResponse(BaseModel):
    total_assignments: int
    fulfillment_rate: int
    request_fulfillment_rate: float
    avg_work_days_per_staff: float
    work_days_std_dev: float
    night_shift_after_count: int
    consecutive_over_limit_count: int
    under_filled_slots: int

    class Config:
        from_attributes = True


class OptimizationResultResponse(BaseModel):
    assignments: List[AssignmentResponse]
    validation: ValidationResponse
    stats: StatsResponse
    total_score: float
    under_filled: List[PositionResponse]
    local_search_iterations: int
    processing_time_ms: int

    class Config:
        from_attributes = True


class ConflictResponse(BaseModel):
    date: date
    location_id: str
    duty_code_id: str
    staff_id: str
    existing_shift_id: Optional[str]
    message: str

    class Config:
        from_attributes = True


class AutoAssignPreviewResponse(OptimizationResultResponse):
    warnings: List[str]
    conflicts: List[ConflictResponse]


class AutoAssignCommitResponse(BaseModel):
    created_count: int
    deleted_count: int
    result: OptimizationResultResponse
    warnings: List[str]

    class Config:
        from_attributes = True


class ProgressiveAssignResponse(BaseModel):
    assigned_count: int
    skipped_count: int
    error: Optional[str] = None

    class Config:
        from_attributes = True
