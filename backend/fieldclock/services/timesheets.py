"""Timesheet persistence: per-record upsert, versioned edits, whole-list saves.

Every write re-snapshots the employee's pay rates onto the record so payroll
uses the rate in force when the entry was last edited.
"""
import logging
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from fieldclock.core.config import settings
from fieldclock.core.errors import ActiveDriveTimeExists, InvalidTimesheet, NotFound, StaleTimesheet
from fieldclock.models.employee import Employee
from fieldclock.models.schedule import Schedule
from fieldclock.models.timesheet import TimesheetEntry, TimesheetType
from fieldclock.schemas.timesheet import TimesheetBase, TimesheetIn, TimesheetPatch
from fieldclock.services.timesheet_calc import (
    QuickLogTally,
    calculate,
    shop_tally,
    washout_tally,
)

logger = logging.getLogger(__name__)

_PLAIN_FIELDS = (
    "employee", "clock_in", "clock_out", "lunch_start", "lunch_end",
    "location_in", "location_out", "distance", "hours",
    "manual_distance", "manual_duration", "washout_qty", "shop_qty",
    "status", "comments",
)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _rate(value) -> Optional[float]:
    return float(value) if value is not None else None


def serialize_timesheet(entry: TimesheetEntry, schedule_date: Optional[datetime] = None) -> dict:
    if schedule_date is None and entry.schedule is not None:
        schedule_date = entry.schedule.from_date
    figures = calculate(entry, schedule_date)
    washout, shop = washout_tally(entry), shop_tally(entry)
    return {
        "id": entry.id,
        "schedule_id": entry.schedule_id,
        "employee": entry.employee,
        "type": entry.type,
        "clock_in": _iso(entry.clock_in),
        "clock_out": _iso(entry.clock_out),
        "lunch_start": _iso(entry.lunch_start),
        "lunch_end": _iso(entry.lunch_end),
        "location_in": entry.location_in,
        "location_out": entry.location_out,
        "distance": entry.distance,
        "hours": entry.hours,
        "manual_distance": entry.manual_distance,
        "manual_duration": entry.manual_duration,
        "washout_qty": washout.quantity,
        "shop_qty": shop.quantity,
        "dump_washout": washout.label if washout.quantity else None,
        "shop_time": shop.label if shop.quantity else None,
        "hourly_rate_site": _rate(entry.hourly_rate_site),
        "hourly_rate_drive": _rate(entry.hourly_rate_drive),
        "status": entry.status,
        "comments": entry.comments,
        "version": entry.version,
        "is_active": entry.clock_out is None,
        "calc_hours": round(figures.hours, 2),
        "calc_distance": round(figures.distance, 2),
    }


def serialize_schedule(schedule: Schedule, include_timesheets: bool = True) -> dict:
    data = {
        "id": schedule.id,
        "title": schedule.title,
        "from_date": _iso(schedule.from_date),
        "to_date": _iso(schedule.to_date),
        "customer_name": schedule.customer_name,
        "estimate": schedule.estimate,
        "job_location": schedule.job_location,
        "project_manager": schedule.project_manager,
        "foreman_name": schedule.foreman_name,
        "description": schedule.description,
        "certified_payroll": bool(schedule.certified_payroll),
        "per_diem": bool(schedule.per_diem),
        "version": schedule.version,
    }
    if include_timesheets:
        data["timesheet"] = [serialize_timesheet(ts, schedule.from_date) for ts in schedule.timesheets]
    return data


class TimesheetService:
    """Create, update and delete timesheet entries inside their schedules."""

    def __init__(self, db: Session):
        self.db = db

    # ── Lookups ─────────────────────────────────────────────────────

    def get_schedule(self, schedule_id: str) -> Schedule:
        schedule = self.db.query(Schedule).filter(Schedule.id == schedule_id).first()
        if not schedule:
            raise NotFound(f"Schedule {schedule_id} not found")
        return schedule

    def get_timesheet(self, timesheet_id: str) -> TimesheetEntry:
        entry = self.db.query(TimesheetEntry).filter(TimesheetEntry.id == timesheet_id).first()
        if not entry:
            raise NotFound(f"Timesheet {timesheet_id} not found")
        return entry

    # ── Field handling ──────────────────────────────────────────────

    def snapshot_rates(self, entry: TimesheetEntry) -> None:
        employee = self.db.query(Employee).filter(Employee.email == entry.employee).first()
        if not employee:
            return
        if employee.hourly_rate_site is not None:
            entry.hourly_rate_site = employee.hourly_rate_site
        if employee.hourly_rate_drive is not None:
            entry.hourly_rate_drive = employee.hourly_rate_drive

    def apply_fields(self, entry: TimesheetEntry, data: TimesheetBase) -> None:
        """Copy the fields the client actually sent onto ``entry``."""
        sent = data.model_dump(exclude_unset=True)

        for field in _PLAIN_FIELDS:
            if field in sent:
                setattr(entry, field, sent[field])
        if sent.get("type") is not None:
            entry.type = TimesheetType.normalize(sent["type"]).value

        # Legacy strings only fill quantities the client did not send explicitly
        if sent.get("dump_washout") is not None and "washout_qty" not in sent:
            entry.washout_qty = QuickLogTally.parse(sent["dump_washout"], settings.WASHOUT_UNIT_HOURS).quantity
        if sent.get("shop_time") is not None and "shop_qty" not in sent:
            entry.shop_qty = QuickLogTally.parse(sent["shop_time"], settings.SHOP_UNIT_HOURS).quantity

        for qty_field in ("washout_qty", "shop_qty"):
            if getattr(entry, qty_field) is None:
                setattr(entry, qty_field, 0)

    def validate(self, entry: TimesheetEntry) -> None:
        if not entry.employee:
            raise InvalidTimesheet("Timesheet needs an employee")
        if not entry.clock_in:
            raise InvalidTimesheet("Timesheet needs a clock-in time")
        if not entry.type:
            raise InvalidTimesheet("Timesheet needs a type")

    def commit(self) -> None:
        """Commit, translating constraint and version failures into domain errors."""
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            if "active_drive_time" in str(e.orig) or "timesheets.employee" in str(e.orig):
                raise ActiveDriveTimeExists()
            logger.warning(f"Timesheet save rejected by database: {e.orig}")
            raise InvalidTimesheet("Timesheet conflicts with existing data")
        except StaleDataError:
            self.db.rollback()
            raise StaleTimesheet()

    # ── saveIndividualTimesheet ─────────────────────────────────────

    def find_existing(self, data: TimesheetIn, schedule_id: str) -> Optional[TimesheetEntry]:
        """The stored record ``data`` refers to on this schedule, if any."""
        if data.id:
            entry = (
                self.db.query(TimesheetEntry)
                .filter(TimesheetEntry.id == data.id, TimesheetEntry.schedule_id == schedule_id)
                .first()
            )
            if entry:
                return entry
        if not (data.employee and data.type and data.clock_in):
            return None

        tolerance = timedelta(seconds=settings.SAVE_MATCH_TOLERANCE_SECONDS)
        return (
            self.db.query(TimesheetEntry)
            .filter(
                TimesheetEntry.schedule_id == schedule_id,
                TimesheetEntry.employee == data.employee,
                TimesheetEntry.type == data.type.value,
                TimesheetEntry.clock_in >= data.clock_in - tolerance,
                TimesheetEntry.clock_in <= data.clock_in + tolerance,
            )
            .order_by(TimesheetEntry.clock_in)
            .first()
        )

    def save_individual(self, data: TimesheetIn, created_by: Optional[str] = None) -> TimesheetEntry:
        """Upsert one record: by id, else by employee + type + clock-in time."""
        if not data.schedule_id or not data.employee:
            raise InvalidTimesheet("Missing required fields: schedule_id and employee")
        schedule = self.get_schedule(data.schedule_id)

        entry = self.find_existing(data, schedule.id)
        if entry is not None:
            if data.version is not None and data.version != entry.version:
                raise StaleTimesheet()
            action = "updated"
        else:
            entry = TimesheetEntry(schedule_id=schedule.id, created_by=created_by)
            if data.id and not data.id.startswith("temp-"):
                entry.id = data.id
            self.db.add(entry)
            action = "created"

        self.apply_fields(entry, data)
        entry.schedule_id = schedule.id
        self.validate(entry)
        self.snapshot_rates(entry)
        self.commit()
        self.db.refresh(entry)

        logger.info(f"Timesheet {entry.id} {action} for {entry.employee} on schedule {schedule.id}")
        return entry

    # ── Per-record edit / delete ────────────────────────────────────

    def update(self, timesheet_id: str, patch: TimesheetPatch) -> TimesheetEntry:
        entry = self.get_timesheet(timesheet_id)
        if patch.version != entry.version:
            raise StaleTimesheet()

        self.apply_fields(entry, patch)
        self.validate(entry)
        self.snapshot_rates(entry)
        self.commit()
        self.db.refresh(entry)

        logger.info(f"Timesheet {entry.id} edited (version {entry.version})")
        return entry

    def delete(self, timesheet_id: str, version: Optional[int] = None) -> None:
        entry = self.get_timesheet(timesheet_id)
        if version is not None and version != entry.version:
            raise StaleTimesheet()
        self.db.delete(entry)
        self.commit()
        logger.info(f"Timesheet {timesheet_id} deleted")

    # ── Whole-list save (updateSchedule) ────────────────────────────

    def replace_schedule_timesheets(
        self,
        schedule_id: str,
        items: Iterable[TimesheetIn],
        expected_version: Optional[int] = None,
    ) -> Schedule:
        """Make the schedule's timesheet list exactly ``items``.

        Without ``expected_version`` the last writer wins; with it, a save based
        on an older copy of the schedule is rejected.
        """
        schedule = self.get_schedule(schedule_id)
        if expected_version is not None and expected_version != schedule.version:
            raise StaleTimesheet("Schedule was changed by someone else. Reload and try again.")

        existing = {ts.id: ts for ts in schedule.timesheets}
        keep: List[TimesheetEntry] = []
        for item in items:
            entry = existing.get(item.id) if item.id else None
            if entry is None:
                entry = TimesheetEntry(schedule_id=schedule.id)
                if item.id and not item.id.startswith("temp-"):
                    entry.id = item.id
            self.apply_fields(entry, item)
            self.validate(entry)
            self.snapshot_rates(entry)
            keep.append(entry)

        removed = len(set(existing) - {e.id for e in keep if e.id})
        schedule.timesheets = keep
        # Touching the row makes the version column advance
        schedule.updated_at = datetime.utcnow()
        self.commit()
        self.db.refresh(schedule)

        logger.info(
            f"Schedule {schedule.id} timesheets replaced: {len(keep)} kept, {removed} removed "
            f"(version {schedule.version})"
        )
        return schedule
