"""Timesheets API: per-record saves, drive time, quick logs, recompute, import.

Field employees act on their own records. Office staff and foremen may act
on anyone's. Domain errors from the services propagate to the handler in
``main.py``.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from sqlalchemy.orm import Session

from fieldclock.core.database import get_db
from fieldclock.core.security import CREW_LEAD_ROLES, get_current_employee, is_office
from fieldclock.models.employee import Employee
from fieldclock.models.timesheet import TimesheetEntry
from fieldclock.schemas.timesheet import (
    CalculateRequest,
    DriveTimeStart,
    DriveTimeStop,
    QuickLogRequest,
    TimesheetIn,
    TimesheetPatch,
)
from fieldclock.services.drive_time import DriveTimeService
from fieldclock.services.timesheet_calc import calculate, shop_tally, washout_tally
from fieldclock.services.timesheet_import import TimesheetImporter
from fieldclock.services.timesheets import TimesheetService, serialize_timesheet

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/timesheets", tags=["timesheets"])


def _is_crew_lead(employee: Employee) -> bool:
    return (employee.role or "").lower() in CREW_LEAD_ROLES


def _check_owner(current: Employee, owner: Optional[str]) -> None:
    if _is_crew_lead(current):
        return
    if owner and owner.strip().lower() != current.email:
        raise HTTPException(status_code=403, detail="You can only change your own timesheets")


# ── Drive time ───────────────────────────────────────────────────────

@router.get("/drive-time/active")
def active_drive_time(
    current_employee: Employee = Depends(get_current_employee),
    db: Session = Depends(get_db),
):
    """The caller's running drive time across all schedules, or null."""
    entry = DriveTimeService(db).find_active(current_employee.email)
    return {"active": serialize_timesheet(entry) if entry else None}


@router.post("/drive-time/start", status_code=201)
def start_drive_time(
    body: DriveTimeStart,
    current_employee: Employee = Depends(get_current_employee),
    db: Session = Depends(get_db),
):
    entry = DriveTimeService(db).start(current_employee.email, body.schedule_id, body.position)
    return serialize_timesheet(entry)


@router.post("/drive-time/stop")
def stop_drive_time(
    body: DriveTimeStop,
    current_employee: Employee = Depends(get_current_employee),
    db: Session = Depends(get_db),
):
    entry = DriveTimeService(db).stop(
        current_employee.email,
        body.position,
        timesheet_id=body.timesheet_id,
        expected_version=body.version,
    )
    return serialize_timesheet(entry)


# ── Quick log ────────────────────────────────────────────────────────

@router.post("/quick-log")
def quick_log(
    body: QuickLogRequest,
    current_employee: Employee = Depends(get_current_employee),
    db: Session = Depends(get_db),
):
    """Add one Dump Washout or Shop Time unit for today."""
    employee = (body.employee or current_employee.email).strip().lower()
    _check_owner(current_employee, employee)
    entry = DriveTimeService(db).quick_log(body.schedule_id, employee, body.type, day=body.day)
    return serialize_timesheet(entry)


# ── Recompute preview ────────────────────────────────────────────────

@router.post("/calculate")
def calculate_preview(
    body: CalculateRequest,
    current_employee: Employee = Depends(get_current_employee),
    db: Session = Depends(get_db),
):
    """Hours and miles for an unsaved record; nothing is stored."""
    entry = TimesheetEntry()
    TimesheetService(db).apply_fields(entry, body.timesheet)
    figures = calculate(entry, body.schedule_date)
    washout, shop = washout_tally(entry), shop_tally(entry)
    return {
        "hours": round(figures.hours, 2),
        "distance": round(figures.distance, 2),
        "dump_washout": washout.label if washout.quantity else None,
        "shop_time": shop.label if shop.quantity else None,
    }


# ── Import ───────────────────────────────────────────────────────────

@router.post("/import")
async def import_timesheets(
    file: UploadFile = File(...),
    schedule_id: Optional[str] = Form(None),
    current_employee: Employee = Depends(get_current_employee),
    db: Session = Depends(get_db),
):
    """Import a CSV or XLSX export. Bad rows are reported, good rows are saved."""
    if not is_office(current_employee):
        raise HTTPException(status_code=403, detail="Office access required")
    if not file.filename.lower().endswith((".csv", ".xlsx")):
        raise HTTPException(status_code=400, detail="Upload a .csv or .xlsx file")

    contents = await file.read()
    importer = TimesheetImporter(db, created_by=current_employee.email, default_schedule_id=schedule_id)
    try:
        result = importer.import_file(contents, file.filename)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    logger.info(f"{current_employee.email} imported {result['imported']} timesheets from {file.filename}")
    return result


# ── Per-record save / edit / delete ──────────────────────────────────

@router.post("/save")
def save_timesheet(
    body: TimesheetIn,
    current_employee: Employee = Depends(get_current_employee),
    db: Session = Depends(get_db),
):
    """Upsert one record by id, else by employee + type + clock-in time."""
    if not body.employee:
        body.employee = current_employee.email
    _check_owner(current_employee, body.employee)
    service = TimesheetService(db)
    if body.schedule_id:
        existing = service.find_existing(body, body.schedule_id)
        if existing is not None:
            _check_owner(current_employee, existing.employee)
    entry = service.save_individual(body, created_by=current_employee.email)
    return serialize_timesheet(entry)


@router.patch("/{timesheet_id}")
def update_timesheet(
    timesheet_id: str,
    body: TimesheetPatch,
    current_employee: Employee = Depends(get_current_employee),
    db: Session = Depends(get_db),
):
    service = TimesheetService(db)
    _check_owner(current_employee, service.get_timesheet(timesheet_id).employee)
    if body.employee:
        _check_owner(current_employee, body.employee)
    return serialize_timesheet(service.update(timesheet_id, body))


@router.delete("/{timesheet_id}")
def delete_timesheet(
    timesheet_id: str,
    version: Optional[int] = None,
    current_employee: Employee = Depends(get_current_employee),
    db: Session = Depends(get_db),
):
    service = TimesheetService(db)
    _check_owner(current_employee, service.get_timesheet(timesheet_id).employee)
    service.delete(timesheet_id, version=version)
    return {"status": "deleted", "id": timesheet_id}
