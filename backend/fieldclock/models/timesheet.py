"""Timesheet entries: one clock-in / clock-out cycle of one employee.

An entry with no ``clock_out`` is active. At most one active Drive Time entry
may exist per employee; the partial unique index below backs the check the
drive-time service performs before inserting.
"""
import enum
import uuid

from sqlalchemy import Column, Integer, String, DateTime, Float, ForeignKey, Index, Numeric, Text, text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from fieldclock.core.database import Base


class TimesheetType(str, enum.Enum):
    SITE_TIME = "site_time"
    DRIVE_TIME = "drive_time"

    @classmethod
    def normalize(cls, value) -> "TimesheetType":
        """Map free text ("Site Time", "DRIVE", "drive_time") onto the enum.

        Raises ValueError when the text names neither type.
        """
        if isinstance(value, cls):
            return value
        raw = str(value or "").strip().lower().replace("_", " ")
        if "drive" in raw:
            return cls.DRIVE_TIME
        if "site" in raw:
            return cls.SITE_TIME
        raise ValueError(f"Unknown timesheet type: {value!r}")


def _new_id() -> str:
    return uuid.uuid4().hex


_ACTIVE_DRIVE = text("type = 'drive_time' AND clock_out IS NULL")


class TimesheetEntry(Base):
    __tablename__ = "timesheets"

    id = Column(String, primary_key=True, default=_new_id)
    schedule_id = Column(String, ForeignKey("schedules.id", ondelete="CASCADE"), nullable=False, index=True)
    employee = Column(String, nullable=False, index=True)  # employee email
    type = Column(String, nullable=False, default=TimesheetType.SITE_TIME.value)

    clock_in = Column(DateTime, nullable=False)
    clock_out = Column(DateTime, nullable=True)
    lunch_start = Column(DateTime, nullable=True)
    lunch_end = Column(DateTime, nullable=True)

    # "lat,lng", odometer reading, or a free-form flag value
    location_in = Column(String, nullable=True)
    location_out = Column(String, nullable=True)

    # Persisted figures. distance is authoritative when positive;
    # hours is authoritative for drive time logged before the distance cutover.
    distance = Column(Float, nullable=True)
    hours = Column(Float, nullable=True)

    # Office overrides
    manual_distance = Column(Float, nullable=True)
    manual_duration = Column(Float, nullable=True)

    # Quick-log quantities (Dump Washout = 0.5 h per unit, Shop Time = 0.25 h per unit)
    washout_qty = Column(Integer, nullable=False, default=0)
    shop_qty = Column(Integer, nullable=False, default=0)

    # Rate snapshot taken at edit time
    hourly_rate_site = Column(Numeric(8, 2), nullable=True)
    hourly_rate_drive = Column(Numeric(8, 2), nullable=True)

    status = Column(String, nullable=False, default="Pending")
    comments = Column(Text, nullable=True)
    created_by = Column(String, nullable=True)

    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    schedule = relationship("Schedule", back_populates="timesheets")

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index(
            "uq_timesheets_active_drive_time",
            "employee",
            unique=True,
            postgresql_where=_ACTIVE_DRIVE,
            sqlite_where=_ACTIVE_DRIVE,
        ),
        Index("ix_timesheets_employee_clock_in", "employee", "clock_in"),
    )
