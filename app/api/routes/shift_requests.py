from typing import List
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select, and_
from sqlalchemy.orm import Session

from app.api.deps import get_db
from app.db.models.shift_requests import ShiftRequests
from app.schemas.shift_requests import ShiftRequestSubmit, ShiftRequestSubmitResponse, ShiftRequestResponse
from app.services.scheduling import RequestType, ShiftRequest, StaffNotFoundError, submit_shift_requests
from app.services.scheduling.requirements import parse_year_month

router = APIRouter(prefix="/shift-requests", tags=["shift-requests"])


@router.get("/{staff_id}/{year_month}", response_model=List[ShiftRequestResponse])
def list_shift_requests(
    staff_id: str,
    year_month: str,
    db: Session = Depends(get_db),
):
    try:
        parse_year_month(year_month)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    stmt = select(ShiftRequests).where(
        and_(
            ShiftRequests.staff_id == staff_id,
            ShiftRequests.year_month == year_month,
        )
    ).order_by(ShiftRequests.date)
    return db.execute(stmt).scalars().all()


@router.put("/{staff_id}/{year_month}", response_model=ShiftRequestSubmitResponse)
def put_shift_requests(
    staff_id: str,
    year_month: str,
    payload: ShiftRequestSubmit,
    db: Session = Depends(get_db),
):
    """Replace a staff member's requests for the month, then auto-place their available dates"""
    requests = [
        ShiftRequest(
            staff_id=staff_id,
            date=item.date,
            request_type=RequestType(item.request_type.value),
            note=item.note,
        )
        for item in payload.requests
    ]

    try:
        result = submit_shift_requests(db, staff_id, year_month, requests)
    except StaffNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return result
