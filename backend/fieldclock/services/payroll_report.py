"""Weekly payroll report built from timesheet figures.

Weeks start Monday. Per employee and day:
- site hours split into regular (first 8), overtime (next 4), double time (beyond 12)
- drive hours are paid as travel at the drive rate
- amount = reg*rate + ot*rate*1.5 + dt*rate*2 + travel*drive_rate

Rates come from the snapshot on the employee's latest entry in the week,
then the employee profile, then the configured defaults.
"""
import logging
from collections import defaultdict
from datetime import date, datetime, time, timedelta
from typing import Dict, List, Optional

from sqlalchemy.orm import Session, joinedload

from fieldclock.core.config import settings
from fieldclock.models.employee import Employee
from fieldclock.models.timesheet import TimesheetEntry, TimesheetType
from fieldclock.services.timesheet_calc import calculate, record_type

logger = logging.getLogger(__name__)

REGULAR_DAY_HOURS = 8.0
OVERTIME_DAY_HOURS = 4.0  # hours 8-12
OVERTIME_MULTIPLIER = 1.5
DOUBLE_TIME_MULTIPLIER = 2.0


def start_of_week(day) -> datetime:
    """Monday 00:00 of the week containing ``day``."""
    if isinstance(day, datetime):
        day = day.date()
    monday = day - timedelta(days=day.weekday())
    return datetime.combine(monday, time.min)


def end_of_week(day) -> datetime:
    return start_of_week(day) + timedelta(days=7) - timedelta(microseconds=1)


def week_number(day) -> int:
    if isinstance(day, datetime):
        day = day.date()
    return day.isocalendar()[1]


def week_label(day) -> str:
    start = start_of_week(day)
    end = end_of_week(day)
    return f"({week_number(start)}) {start:%m-%d-%y} to {end:%m-%d-%y}"


def split_site_hours(site_hours: float) -> Dict[str, float]:
    regular = min(REGULAR_DAY_HOURS, site_hours)
    overtime = min(OVERTIME_DAY_HOURS, max(0.0, site_hours - REGULAR_DAY_HOURS))
    double_time = max(0.0, site_hours - REGULAR_DAY_HOURS - OVERTIME_DAY_HOURS)
    return {"reg": regular, "ot": overtime, "dt": double_time}


def _to_float(value) -> Optional[float]:
    return float(value) if value is not None else None


class PayrollReportService:
    def __init__(self, db: Session):
        self.db = db

    def _entries_for_week(self, week_start: datetime, employee: Optional[str]) -> List[TimesheetEntry]:
        query = (
            self.db.query(TimesheetEntry)
            .options(joinedload(TimesheetEntry.schedule))
            .filter(
                TimesheetEntry.clock_in >= week_start,
                TimesheetEntry.clock_in < week_start + timedelta(days=7),
            )
        )
        if employee:
            query = query.filter(TimesheetEntry.employee == employee.strip().lower())
        return query.order_by(TimesheetEntry.clock_in).all()

    def resolve_rates(self, entries: List[TimesheetEntry], profile: Optional[Employee]) -> Dict[str, float]:
        site_rate = None
        drive_rate = None
        for entry in sorted(entries, key=lambda e: e.clock_in, reverse=True):
            if site_rate is None and entry.hourly_rate_site is not None:
                site_rate = float(entry.hourly_rate_site)
            if drive_rate is None and entry.hourly_rate_drive is not None:
                drive_rate = float(entry.hourly_rate_drive)

        if site_rate is None and profile is not None:
            site_rate = _to_float(profile.hourly_rate_site)
        if drive_rate is None and profile is not None:
            drive_rate = _to_float(profile.hourly_rate_drive)

        if site_rate is None:
            site_rate = settings.DEFAULT_SITE_RATE
        if drive_rate is None:
            drive_rate = site_rate * settings.DRIVE_RATE_RATIO
        return {"site": site_rate, "drive": drive_rate}

    def weekly_report(self, week_of: date, employee: Optional[str] = None) -> dict:
        week_start = start_of_week(week_of)
        entries = self._entries_for_week(week_start, employee)

        by_employee: Dict[str, List[TimesheetEntry]] = defaultdict(list)
        for entry in entries:
            by_employee[entry.employee].append(entry)

        profiles = {}
        if by_employee:
            for profile in self.db.query(Employee).filter(Employee.email.in_(list(by_employee))).all():
                profiles[profile.email] = profile

        reports = [
            self._employee_report(email, rows, profiles.get(email), week_start)
            for email, rows in sorted(by_employee.items())
        ]

        totals = {
            key: round(sum(r[key] for r in reports), 2)
            for key in ("total_reg", "total_ot", "total_dt", "total_travel", "total_hours", "total_amount")
        }
        logger.info(f"Payroll report for week of {week_start:%Y-%m-%d}: {len(reports)} employees")
        return {
            "week_start": week_start.date().isoformat(),
            "week_end": (week_start + timedelta(days=6)).date().isoformat(),
            "week_number": week_number(week_start),
            "label": week_label(week_start),
            "employees": reports,
            "totals": totals,
        }

    def _employee_report(
        self,
        email: str,
        entries: List[TimesheetEntry],
        profile: Optional[Employee],
        week_start: datetime,
    ) -> dict:
        days = [
            {
                "date": (week_start + timedelta(days=i)).date().isoformat(),
                "estimates": set(),
                "certified": False,
                "site_hours": 0.0,
                "travel": 0.0,
                "entries": [],
            }
            for i in range(7)
        ]

        for entry in entries:
            schedule = entry.schedule
            figures = calculate(entry, schedule.from_date if schedule else None)
            day = days[entry.clock_in.weekday()]
            day["entries"].append(entry.id)
            if schedule is not None:
                if schedule.estimate:
                    day["estimates"].add(schedule.estimate)
                if schedule.certified_payroll:
                    day["certified"] = True
            if record_type(entry) is TimesheetType.SITE_TIME:
                day["site_hours"] += figures.hours
            else:
                day["travel"] += figures.hours

        rates = self.resolve_rates(entries, profile)
        totals = {"reg": 0.0, "ot": 0.0, "dt": 0.0, "travel": 0.0}
        for day in days:
            split = split_site_hours(day["site_hours"])
            day.update({k: round(v, 2) for k, v in split.items()})
            day["estimates"] = sorted(day["estimates"])
            day["site_hours"] = round(day["site_hours"], 2)
            day["travel"] = round(day["travel"], 2)
            day["total"] = round(split["reg"] + split["ot"] + split["dt"] + day["travel"], 2)
            for key in ("reg", "ot", "dt"):
                totals[key] += split[key]
            totals["travel"] += day["travel"]

        amount = (
            totals["reg"] * rates["site"]
            + totals["ot"] * rates["site"] * OVERTIME_MULTIPLIER
            + totals["dt"] * rates["site"] * DOUBLE_TIME_MULTIPLIER
            + totals["travel"] * rates["drive"]
        )
        return {
            "employee": email,
            "name": profile.full_name if profile else email,
            "classification": profile.classification if profile else None,
            "position": profile.company_position if profile else None,
            "days": days,
            "total_reg": round(totals["reg"], 2),
            "total_ot": round(totals["ot"], 2),
            "total_dt": round(totals["dt"], 2),
            "total_travel": round(totals["travel"], 2),
            "total_hours": round(sum(totals.values()), 2),
            "rate_site": round(rates["site"], 2),
            "rate_travel": round(rates["drive"], 2),
            "total_amount": round(amount, 2),
        }
