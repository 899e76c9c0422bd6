from fieldclock.models.employee import Employee, EmployeeRole
from fieldclock.models.schedule import Schedule
from fieldclock.models.timesheet import TimesheetEntry, TimesheetType

__all__ = [
    "Employee",
    "EmployeeRole",
    "Schedule",
    "TimesheetEntry",
    "TimesheetType",
]
