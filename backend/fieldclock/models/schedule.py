"""Job schedule. Owns the timesheet entries logged against it."""
import uuid

from sqlalchemy import Column, Integer, String, DateTime, Boolean, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from fieldclock.core.database import Base


def _new_id() -> str:
    return uuid.uuid4().hex


class Schedule(Base):
    __tablename__ = "schedules"

    id = Column(String, primary_key=True, default=_new_id)
    title = Column(String, nullable=False)

    # Fallback effective date for timesheet rule versioning
    from_date = Column(DateTime, nullable=False, index=True)
    to_date = Column(DateTime, nullable=True)

    customer_name = Column(String, nullable=True)
    estimate = Column(String, nullable=True, index=True)
    job_location = Column(String, nullable=True)
    project_manager = Column(String, nullable=True, index=True)
    foreman_name = Column(String, nullable=True, index=True)
    description = Column(Text, nullable=True)

    certified_payroll = Column(Boolean, default=False)
    per_diem = Column(Boolean, default=False)

    # Bumped whenever the timesheet list is replaced wholesale
    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    timesheets = relationship(
        "TimesheetEntry",
        back_populates="schedule",
        cascade="all, delete-orphan",
        order_by="TimesheetEntry.clock_in",
    )

    __mapper_args__ = {"version_id_col": version}
