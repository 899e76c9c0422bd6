from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
from datetime import datetime, date
from fieldclock.models.timesheet import TimesheetType
from fieldclock.services.timesheet_calc import QuickLogKind, parse_timestamp

_TIMESTAMP_FIELDS = ("clock_in", "clock_out", "lunch_start", "lunch_end")


class GeoPosition(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    accuracy: Optional[float] = Field(None, ge=0)  # meters


class TimesheetBase(BaseModel):
    employee: Optional[str] = None
    type: Optional[TimesheetType] = None
    clock_in: Optional[datetime] = None
    clock_out: Optional[datetime] = None
    lunch_start: Optional[datetime] = None
    lunch_end: Optional[datetime] = None
    location_in: Optional[str] = None
    location_out: Optional[str] = None
    distance: Optional[float] = Field(None, ge=0)
    hours: Optional[float] = Field(None, ge=0)
    manual_distance: Optional[float] = Field(None, ge=0)
    manual_duration: Optional[float] = Field(None, ge=0)
    washout_qty: Optional[int] = Field(None, ge=0)
    shop_qty: Optional[int] = Field(None, ge=0)
    # Legacy encoded accumulators ("0.50 hrs (1 qty)"); read once into the qty fields
    dump_washout: Optional[str] = None
    shop_time: Optional[str] = None
    status: Optional[str] = None
    comments: Optional[str] = None

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value):
        if value is None or value == "":
            return None
        return TimesheetType.normalize(value)

    @field_validator(*_TIMESTAMP_FIELDS, mode="before")
    @classmethod
    def _parse_timestamps(cls, value):
        if value is None or value == "":
            return None
        parsed = parse_timestamp(value)
        if parsed is None:
            raise ValueError(f"Invalid timestamp: {value!r}")
        return parsed

    @field_validator("employee")
    @classmethod
    def _normalize_employee(cls, value):
        return value.strip().lower() if value else value

    @field_validator("dump_washout", "shop_time", mode="before")
    @classmethod
    def _stringify_flags(cls, value):
        if value is None:
            return None
        return str(value)


class TimesheetIn(TimesheetBase):
    """Full record as sent by saveIndividualTimesheet and whole-list saves."""

    id: Optional[str] = None
    schedule_id: Optional[str] = None
    version: Optional[int] = None


class TimesheetPatch(TimesheetBase):
    """Partial update of one record; ``version`` must match the stored one."""

    version: int


class DriveTimeStart(BaseModel):
    schedule_id: str
    position: Optional[GeoPosition] = None


class DriveTimeStop(BaseModel):
    position: Optional[GeoPosition] = None
    timesheet_id: Optional[str] = None
    version: Optional[int] = None


class QuickLogRequest(BaseModel):
    schedule_id: str
    type: QuickLogKind
    employee: Optional[str] = None  # office staff may log for someone else
    day: Optional[date] = None

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_kind(cls, value):
        return QuickLogKind.normalize(value)


class CalculateRequest(BaseModel):
    timesheet: TimesheetIn
    schedule_date: Optional[datetime] = None


class TimesheetListReplace(BaseModel):
    timesheets: List[TimesheetIn]
    version: Optional[int] = None  # schedule version the client last saw
