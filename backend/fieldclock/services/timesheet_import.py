"""Bulk timesheet import from CSV or XLSX exports.

Expected columns (camelCase, as exported by the field app):
    employee, scheduleId, type, clockIn, clockOut, lunchStart, lunchEnd,
    locationIn, locationOut, dumpWashout, shopTime, hourlyRateSITE,
    hourlyRateDrive, comments, manualDistance, manualDuration, hours, distance

Legacy accumulator strings in dumpWashout / shopTime ("0.50 hrs (1 qty)",
"true", "yes") become quantities here and are not stored as text.
Rows that fail are reported by row number and skipped.
"""
import io
import logging
from typing import Dict, List, Optional

import pandas as pd
from pydantic import ValidationError

from fieldclock.core.errors import TimesheetError
from fieldclock.models.schedule import Schedule
from fieldclock.models.timesheet import TimesheetEntry, TimesheetType
from fieldclock.schemas.timesheet import TimesheetIn
from fieldclock.services.timesheets import TimesheetService

logger = logging.getLogger(__name__)

COLUMN_MAP = {
    "employee": "employee",
    "scheduleid": "schedule_id",
    "type": "type",
    "clockin": "clock_in",
    "clockout": "clock_out",
    "lunchstart": "lunch_start",
    "lunchend": "lunch_end",
    "locationin": "location_in",
    "locationout": "location_out",
    "dumpwashout": "dump_washout",
    "shoptime": "shop_time",
    "hourlyratesite": "hourly_rate_site",
    "hourlyratedrive": "hourly_rate_drive",
    "comments": "comments",
    "manualdistance": "manual_distance",
    "manualduration": "manual_duration",
    "hours": "hours",
    "distance": "distance",
    "status": "status",
}


def _column_key(name) -> str:
    return "".join(ch for ch in str(name).lower() if ch.isalnum())


def _clean(value):
    """pandas NaN/NaT to None, Timestamps to plain datetimes."""
    if value is None:
        return None
    if isinstance(value, pd.Timestamp):
        return None if pd.isna(value) else value.to_pydatetime()
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        pass
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


def read_frame(file_bytes: bytes, filename: str) -> pd.DataFrame:
    # Everything as text so "41.1,-87.2" and "1,250" are not mangled into numbers
    if filename.lower().endswith(".xlsx"):
        df = pd.read_excel(io.BytesIO(file_bytes), dtype=str)
    else:
        df = pd.read_csv(io.BytesIO(file_bytes), dtype=str)
    logger.info(f"Timesheet import {filename}: {len(df)} rows, columns: {list(df.columns)}")
    return df


def rows_from_frame(df: pd.DataFrame) -> List[Dict]:
    mapping = {col: COLUMN_MAP[_column_key(col)] for col in df.columns if _column_key(col) in COLUMN_MAP}
    if "employee" not in mapping.values() or "clock_in" not in mapping.values():
        raise ValueError(f"Import needs employee and clockIn columns, got: {list(df.columns)}")

    rows = []
    for _, raw in df.iterrows():
        rows.append({field: _clean(raw[col]) for col, field in mapping.items()})
    return rows


def _rate(value) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(str(value).replace("$", "").replace(",", ""))
    except ValueError:
        return None


class TimesheetImporter:
    def __init__(self, db, created_by: Optional[str] = None, default_schedule_id: Optional[str] = None):
        self.db = db
        self.service = TimesheetService(db)
        self.created_by = created_by
        self.default_schedule_id = default_schedule_id

    def _has_active_drive(self, employee: str) -> bool:
        return (
            self.db.query(TimesheetEntry.id)
            .filter(
                TimesheetEntry.employee == employee,
                TimesheetEntry.type == TimesheetType.DRIVE_TIME.value,
                TimesheetEntry.clock_out.is_(None),
            )
            .first()
            is not None
        )

    def import_file(self, file_bytes: bytes, filename: str) -> dict:
        return self.import_rows(rows_from_frame(read_frame(file_bytes, filename)))

    def import_rows(self, rows: List[Dict]) -> dict:
        imported: List[str] = []
        errors: List[Dict] = []
        schedules: Dict[str, Optional[Schedule]] = {}
        open_drives = set()

        # Row 1 is the header line in the source file
        for number, row in enumerate(rows, start=2):
            schedule_id = row.get("schedule_id") or self.default_schedule_id
            if not schedule_id:
                errors.append({"row": number, "error": "Missing scheduleId"})
                continue
            if schedule_id not in schedules:
                schedules[schedule_id] = self.db.query(Schedule).filter(Schedule.id == schedule_id).first()
            schedule = schedules[schedule_id]
            if schedule is None:
                errors.append({"row": number, "error": f"Unknown schedule {schedule_id}"})
                continue

            fields = {k: v for k, v in row.items() if k not in ("hourly_rate_site", "hourly_rate_drive")}
            fields["schedule_id"] = schedule.id
            try:
                data = TimesheetIn(**fields)
                if data.type is None:
                    raise ValueError("Missing type")
            except (ValidationError, ValueError) as e:
                errors.append({"row": number, "error": str(e).splitlines()[0]})
                continue

            entry = TimesheetEntry(schedule_id=schedule.id, created_by=self.created_by)
            self.service.apply_fields(entry, data)
            try:
                self.service.validate(entry)
            except TimesheetError as e:
                errors.append({"row": number, "error": e.message})
                continue
            if entry.type == TimesheetType.DRIVE_TIME.value and entry.clock_out is None:
                if entry.employee in open_drives or self._has_active_drive(entry.employee):
                    errors.append({"row": number, "error": f"{entry.employee} already has active drive time"})
                    continue
                open_drives.add(entry.employee)

            self.service.snapshot_rates(entry)
            # Rates in the file were captured when the row was last edited
            site_rate, drive_rate = _rate(row.get("hourly_rate_site")), _rate(row.get("hourly_rate_drive"))
            if site_rate is not None:
                entry.hourly_rate_site = site_rate
            if drive_rate is not None:
                entry.hourly_rate_drive = drive_rate

            self.db.add(entry)
            self.db.flush()
            imported.append(entry.id)

        self.service.commit()
        logger.info(f"Timesheet import: {len(imported)} imported, {len(errors)} rejected")
        return {"imported": len(imported), "ids": imported, "errors": errors}
