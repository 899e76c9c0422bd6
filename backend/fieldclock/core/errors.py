"""Domain errors for timesheets and drive time.

Services raise these; the application exception handler in ``main.py`` turns
them into ``{"detail": ...}`` JSON responses using ``status_code``. The API
client raises the same classes so callers handle one taxonomy on both sides.
"""


class TimesheetError(Exception):
    """Base class. ``status_code`` is the HTTP status the API answers with."""

    status_code = 400

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__doc__ or self.__class__.__name__)
        self.message = str(self)


class LocationUnavailable(TimesheetError):
    """Location is required for Drive Time to calculate distance and hours."""

    status_code = 422


class IdentityMissing(TimesheetError):
    """User identity not found."""

    status_code = 401


class PersistenceFailure(TimesheetError):
    """The server did not confirm the save."""

    status_code = 502


class ActiveDriveTimeExists(TimesheetError):
    """Drive time is already running for this employee. Stop it first."""

    status_code = 409


class DriveTimeNotActive(TimesheetError):
    """No active drive time to stop."""

    status_code = 409


class StaleTimesheet(TimesheetError):
    """The record was changed by someone else. Reload and try again."""

    status_code = 409


class NotFound(TimesheetError):
    """Not found."""

    status_code = 404


class InvalidTimesheet(TimesheetError):
    """Timesheet data is invalid."""

    status_code = 422
