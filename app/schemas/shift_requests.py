from pydantic import BaseModel
from datetime import date, datetime
from typing import List, Optional
from app.db.models.shift_requests import ShiftRequestType
from app.schemas.auto_assign import ProgressiveAssignResponse


class ShiftRequestItem(BaseModel):
    date: date
    request_type: ShiftRequestType
    note: Optional[str] = None


class ShiftRequestSubmit(BaseModel):
    requests: List[ShiftRequestItem]


class ShiftRequestResponse(BaseModel):
    id: str
    staff_id: str
    date: date
    request_type: ShiftRequestType
    note: Optional[str]
    year_month: str
    created_at: datetime

    class Config:
        from_attributes = True


class ShiftRequestSubmitResponse(BaseModel):
    saved_count: int
    auto_assign: ProgressiveAssignResponse
