"""Schedules API: job schedules and their timesheet lists."""
import logging
from datetime import datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session, selectinload

from fieldclock.core.database import get_db
from fieldclock.core.security import CREW_LEAD_ROLES, get_current_employee, is_office
from fieldclock.models.employee import Employee
from fieldclock.models.schedule import Schedule
from fieldclock.schemas.schedule import ScheduleCreate
from fieldclock.schemas.timesheet import TimesheetListReplace
from fieldclock.services.timesheets import TimesheetService, serialize_schedule

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/schedules", tags=["schedules"])

DEFAULT_WINDOW_DAYS = 60


@router.get("/")
def list_schedules(
    start: Optional[datetime] = Query(None, description="Earliest from_date, default 60 days ago"),
    end: Optional[datetime] = Query(None),
    include_timesheets: bool = True,
    current_employee: Employee = Depends(get_current_employee),
    db: Session = Depends(get_db),
):
    start = start or datetime.utcnow() - timedelta(days=DEFAULT_WINDOW_DAYS)
    query = db.query(Schedule).filter(Schedule.from_date >= start)
    if end:
        query = query.filter(Schedule.from_date <= end)
    if include_timesheets:
        query = query.options(selectinload(Schedule.timesheets))
    schedules = query.order_by(Schedule.from_date.desc()).all()
    return [serialize_schedule(s, include_timesheets) for s in schedules]


@router.get("/{schedule_id}")
def get_schedule(
    schedule_id: str,
    current_employee: Employee = Depends(get_current_employee),
    db: Session = Depends(get_db),
):
    return serialize_schedule(TimesheetService(db).get_schedule(schedule_id))


@router.post("/", status_code=201)
def create_schedule(
    body: ScheduleCreate,
    current_employee: Employee = Depends(get_current_employee),
    db: Session = Depends(get_db),
):
    if not is_office(current_employee):
        raise HTTPException(status_code=403, detail="Office access required")

    data = body.model_dump(exclude_unset=True)
    if not data.get("id"):
        data.pop("id", None)
    elif db.query(Schedule).filter(Schedule.id == data["id"]).first():
        raise HTTPException(status_code=409, detail=f"Schedule {data['id']} already exists")

    schedule = Schedule(**data)
    db.add(schedule)
    db.commit()
    db.refresh(schedule)
    logger.info(f"Schedule {schedule.id} created by {current_employee.email}: {schedule.title}")
    return serialize_schedule(schedule)


@router.put("/{schedule_id}/timesheets")
def replace_timesheets(
    schedule_id: str,
    body: TimesheetListReplace,
    current_employee: Employee = Depends(get_current_employee),
    db: Session = Depends(get_db),
):
    """Save the schedule's whole timesheet list. Send ``version`` to reject stale saves."""
    if (current_employee.role or "").lower() not in CREW_LEAD_ROLES:
        raise HTTPException(status_code=403, detail="Only office staff and foremen can save a schedule")

    schedule = TimesheetService(db).replace_schedule_timesheets(
        schedule_id, body.timesheets, expected_version=body.version
    )
    return serialize_schedule(schedule)
