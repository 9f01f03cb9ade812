from typing import Optional
from datetime import datetime
from sqlalchemy import String, Integer, DateTime, ForeignKey, JSON, func
from sqlalchemy.orm import Mapped, mapped_column

from app.db.database import Base, generate_uuid


class LocationRequirements(Base):
    __tablename__ = "location_requirements"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    location_id: Mapped[str] = mapped_column(String(36), ForeignKey("locations.id"), nullable=False, index=True)
    duty_code_id: Mapped[str] = mapped_column(String(36), ForeignKey("duty_codes.id"), nullable=False)
    required_staff_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    required_responsible_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    required_tags: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    day_of_week: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)  # 0=Sunday .. 6=Saturday
    # kept as text: imported rules can carry impossible dates such as 2025-11-31
    specific_date: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
