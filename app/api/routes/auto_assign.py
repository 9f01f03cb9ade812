from dataclasses import asdict
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_db
from app.schemas.auto_assign import (
    AutoAssignRequest,
    AutoAssignCommitRequest,
    AutoAssignPreviewResponse,
    AutoAssignCommitResponse,
    ProgressiveAssignResponse,
)
from app.services.scheduling import (
    preview_assignments,
    commit_assignments,
    auto_assign_for_staff,
    NoLocationsError,
    NoRequirementsError,
    ShiftConflictError,
    ConstraintViolationError,
)
from app.services.scheduling.defaults import options_from_settings
from app.services.scheduling.requirements import parse_year_month

router = APIRouter(prefix="/auto-assign", tags=["auto-assign"])


def _options(payload: AutoAssignRequest):
    return options_from_settings(
        apply_local_search=payload.apply_local_search,
        max_local_search_iterations=payload.max_local_search_iterations,
        timeout_ms=payload.timeout_ms,
    )


def _http_error(e: Exception) -> HTTPException:
    if isinstance(e, NoLocationsError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, ShiftConflictError):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "message": str(e),
                "conflicts": [
                    {
                        "date": c.date.isoformat(),
                        "location_id": c.location_id,
                        "duty_code_id": c.duty_code_id,
                        "staff_id": c.staff_id,
                        "existing_shift_id": c.existing_shift_id,
                        "message": c.message,
                    }
                    for c in e.conflicts
                ],
            },
        )
    if isinstance(e, ConstraintViolationError):
        return HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": "Constraint violations detected", "errors": e.errors},
        )
    # NoRequirementsError, malformed year_month
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.post("/preview", response_model=AutoAssignPreviewResponse)
def preview_auto_assign(
    payload: AutoAssignRequest,
    db: Session = Depends(get_db),
):
    """Run the optimizer for a month and return the proposal without saving it"""
    try:
        preview = preview_assignments(
            db,
            payload.year_month,
            payload.location_ids,
            overwrite_existing=payload.overwrite_existing,
            date_from=payload.date_from,
            date_to=payload.date_to,
            duty_code_ids=payload.duty_code_ids,
            options=_options(payload),
        )
    except (NoLocationsError, NoRequirementsError, ValueError) as e:
        raise _http_error(e)

    return {
        **asdict(preview.result),
        "warnings": preview.warnings,
        "conflicts": preview.conflicts,
    }


@router.post("/commit", response_model=AutoAssignCommitResponse, status_code=status.HTTP_201_CREATED)
def commit_auto_assign(
    payload: AutoAssignCommitRequest,
    db: Session = Depends(get_db),
):
    """Run the optimizer and save the proposed shifts"""
    try:
        committed = commit_assignments(
            db,
            payload.year_month,
            payload.location_ids,
            overwrite_existing=payload.overwrite_existing,
            require_valid=payload.require_valid,
            date_from=payload.date_from,
            date_to=payload.date_to,
            duty_code_ids=payload.duty_code_ids,
            options=_options(payload),
        )
    except (NoLocationsError, NoRequirementsError, ShiftConflictError, ConstraintViolationError, ValueError) as e:
        raise _http_error(e)

    return committed


@router.post("/staff/{staff_id}", response_model=ProgressiveAssignResponse)
def auto_assign_staff(
    staff_id: str,
    year_month: str = Query(..., examples=["2025-12"]),
    db: Session = Depends(get_db),
):
    """Place one staff member on the dates they marked available"""
    try:
        parse_year_month(year_month)
    except ValueError as e:
        raise _http_error(e)

    return auto_assign_for_staff(db, staff_id, year_month)
