"""Drive-time lifecycle and quick-log accumulation.

Per employee: Idle --start--> Active --stop--> Idle. Active means a Drive
Time entry with no clock-out. Start checks for an active entry inside the
same transaction, and the partial unique index on ``timesheets`` rejects a
racing second insert. Stop only applies to an entry that is still active and
still at the version the caller saw, so two tabs cannot both close it.

Quick logs (Dump Washout, Shop Time) are not part of the state machine: each
call either creates a finished Drive Time entry for the day or adds one unit
to the existing one.
"""
import logging
from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from fieldclock.core.config import settings
from fieldclock.core.errors import ActiveDriveTimeExists, DriveTimeNotActive, LocationUnavailable, StaleTimesheet
from fieldclock.models.timesheet import TimesheetEntry, TimesheetType
from fieldclock.schemas.timesheet import GeoPosition
from fieldclock.services.geo import format_position
from fieldclock.services.timesheet_calc import QuickLogKind, QuickLogTally, compute_distance, quick_log_hours
from fieldclock.services.timesheets import TimesheetService

logger = logging.getLogger(__name__)


class DriveTimeService:
    def __init__(self, db: Session):
        self.db = db
        self.timesheets = TimesheetService(db)

    def find_active(self, employee: str, for_update: bool = False) -> Optional[TimesheetEntry]:
        """The employee's running Drive Time entry, across all schedules."""
        query = self.db.query(TimesheetEntry).filter(
            TimesheetEntry.employee == employee,
            TimesheetEntry.type == TimesheetType.DRIVE_TIME.value,
            TimesheetEntry.clock_out.is_(None),
        )
        if for_update:
            query = query.with_for_update()
        return query.order_by(TimesheetEntry.clock_in.desc()).first()

    # ── Start ────────────────────────────────────────────────────────

    def start(
        self,
        employee: str,
        schedule_id: str,
        position: Optional[GeoPosition],
        now: Optional[datetime] = None,
    ) -> TimesheetEntry:
        if position is None:
            raise LocationUnavailable()
        schedule = self.timesheets.get_schedule(schedule_id)
        now = now or datetime.utcnow()

        active = self.find_active(employee, for_update=True)
        if active is not None:
            logger.warning(
                f"Drive time start refused for {employee}: {active.id} already active since {active.clock_in}"
            )
            raise ActiveDriveTimeExists()

        entry = TimesheetEntry(
            schedule_id=schedule.id,
            employee=employee,
            type=TimesheetType.DRIVE_TIME.value,
            clock_in=now,
            location_in=format_position(position.latitude, position.longitude),
            status="Pending",
            washout_qty=0,
            shop_qty=0,
            created_by=employee,
        )
        self.db.add(entry)
        self.timesheets.snapshot_rates(entry)
        self.timesheets.commit()
        self.db.refresh(entry)

        logger.info(f"Drive time started: {entry.id} for {employee} on schedule {schedule.id}")
        return entry

    # ── Stop ─────────────────────────────────────────────────────────

    def stop(
        self,
        employee: str,
        position: Optional[GeoPosition],
        timesheet_id: Optional[str] = None,
        expected_version: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> TimesheetEntry:
        if position is None:
            raise LocationUnavailable()
        now = now or datetime.utcnow()

        entry = self.find_active(employee, for_update=True)
        if entry is None or (timesheet_id and entry.id != timesheet_id):
            logger.warning(f"Drive time stop refused for {employee}: nothing active (requested {timesheet_id})")
            raise DriveTimeNotActive()
        if expected_version is not None and expected_version != entry.version:
            raise StaleTimesheet()

        entry.clock_out = now
        entry.location_out = format_position(position.latitude, position.longitude)

        # Distance from the entry's own start point with the stop-action factor
        entry.distance = None
        distance = round(compute_distance(entry, factor=settings.DRIVE_STOP_ROAD_FACTOR), 2)
        entry.distance = distance
        if distance > 0:
            entry.hours = round(distance / settings.AVERAGE_SPEED_MPH, 2)
        else:
            entry.hours = quick_log_hours(entry)

        self.timesheets.snapshot_rates(entry)
        # The version column makes this UPDATE match only the row we read
        self.timesheets.commit()
        self.db.refresh(entry)

        logger.info(f"Drive time stopped: {entry.id} for {employee}, {entry.distance} mi, {entry.hours} h")
        return entry

    # ── Quick log ────────────────────────────────────────────────────

    def quick_log(
        self,
        schedule_id: str,
        employee: str,
        kind: QuickLogKind,
        day: Optional[date] = None,
        now: Optional[datetime] = None,
    ) -> TimesheetEntry:
        """Add one unit of ``kind`` for ``employee`` on ``day``; create the entry if needed."""
        schedule = self.timesheets.get_schedule(schedule_id)
        now = now or datetime.utcnow()
        day = day or now.date()
        qty_column = getattr(TimesheetEntry, kind.qty_field)

        day_start = datetime.combine(day, datetime.min.time())
        entry = (
            self.db.query(TimesheetEntry)
            .filter(
                TimesheetEntry.schedule_id == schedule.id,
                TimesheetEntry.employee == employee,
                TimesheetEntry.type == TimesheetType.DRIVE_TIME.value,
                qty_column > 0,
                TimesheetEntry.clock_in >= day_start,
                TimesheetEntry.clock_in < day_start + timedelta(days=1),
            )
            .with_for_update()
            .first()
        )

        if entry is None:
            tally = QuickLogTally(1, kind.unit_hours)
            clock_out = now if now.date() == day else datetime.combine(day, now.time())
            entry = TimesheetEntry(
                schedule_id=schedule.id,
                employee=employee,
                type=TimesheetType.DRIVE_TIME.value,
                clock_in=max(day_start, clock_out - timedelta(hours=kind.unit_hours)),
                clock_out=clock_out,
                hours=tally.hours,
                status="Pending",
                washout_qty=0,
                shop_qty=0,
                created_by=employee,
            )
            setattr(entry, kind.qty_field, tally.quantity)
            self.db.add(entry)
        else:
            tally = QuickLogTally(getattr(entry, kind.qty_field), kind.unit_hours).add()
            setattr(entry, kind.qty_field, tally.quantity)
            entry.hours = tally.hours

        self.timesheets.snapshot_rates(entry)
        self.timesheets.commit()
        self.db.refresh(entry)

        logger.info(f"{kind.value} logged for {employee} on {day}: {tally.label} ({entry.id})")
        return entry
