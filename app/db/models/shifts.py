from sqlalchemy import String, Date, DateTime, ForeignKey, Enum as SQLEnum, Index, func, text
from datetime import date, datetime
from sqlalchemy.orm import Mapped, mapped_column
from enum import Enum
from typing import Optional
from app.db.database import Base, generate_uuid


class ShiftStatus(str, Enum):
    PLANNED = "予定"
    CONFIRMED = "確定"
    CHANGED = "変更"
    CANCELLED = "キャンセル"


class Shifts(Base):
    __tablename__ = "shifts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    staff_id: Mapped[str] = mapped_column(String(36), ForeignKey("staff.id"), nullable=False)
    location_id: Mapped[str] = mapped_column(String(36), ForeignKey("locations.id"), nullable=False)
    duty_code_id: Mapped[str] = mapped_column(String(36), ForeignKey("duty_codes.id"), nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[ShiftStatus] = mapped_column(SQLEnum(ShiftStatus, name="shift_status_enum"), nullable=False, default=ShiftStatus.PLANNED)
    note: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    updated_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_shifts_date_location", "date", "location_id"),
        # one live shift per staff per day; concurrent optimizer runs rely on this
        Index(
            "uix_shifts_staff_date_active",
            "staff_id",
            "date",
            unique=True,
            postgresql_where=text("status != 'CANCELLED'"),
            sqlite_where=text("status != 'CANCELLED'"),
        ),
    )
