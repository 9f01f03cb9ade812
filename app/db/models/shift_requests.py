from typing import Optional
from enum import Enum
from datetime import date, datetime
from sqlalchemy import String, Date, DateTime, ForeignKey, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from app.db.database import Base, generate_uuid


class ShiftRequestType(str, Enum):
    AVAILABLE = "◯"
    REST = "休"
    EARLY_DAWN = "早朝"
    EARLY = "早番"
    LATE = "遅番"
    NIGHT = "夜勤"


class ShiftRequests(Base):
    __tablename__ = "shift_requests"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    staff_id: Mapped[str] = mapped_column(String(36), ForeignKey("staff.id"), nullable=False, index=True)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    request_type: Mapped[str] = mapped_column(String(8), nullable=False)  # ShiftRequestType value
    note: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    year_month: Mapped[str] = mapped_column(String(7), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("staff_id", "date", name="uix_shift_requests_staff_date"),
    )
