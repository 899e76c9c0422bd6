"""Hours and mileage for timesheet entries.

Site Time:
- duration = clock_out - clock_in, minus lunch when lunch_end > lunch_start
- before the site-hours cutover: raw decimal hours
- from the cutover: 7.75 <= h < 8.0 snaps to 8.0, otherwise minutes round to
  quarter hours ((1,14] -> 0, (14,29] -> 15, (29,44] -> 30, (44,59] -> 45)

Drive Time:
- before the drive-distance cutover: hours as stored, distance = hours * speed
- from the cutover: distance first (persisted, GPS, or odometer), then
  hours = distance / speed, else quick-log hours

Everything here is pure. Bad input yields 0, never NaN or a negative figure,
because these numbers go straight onto payroll.
"""
import enum
import logging
import math
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from dateutil import parser as date_parser

from fieldclock.core.config import settings
from fieldclock.models.timesheet import TimesheetType
from fieldclock.services.geo import driving_miles, parse_coordinates, parse_odometer
from fieldclock.services.rules import RuleDomain, effective_date, uses_current_rules

logger = logging.getLogger(__name__)

SNAP_TO_EIGHT_FROM = 7.75
EIGHT_HOURS = 8.0

_QTY_PATTERN = re.compile(r"\((\d+)\s*qty\)", re.IGNORECASE)
_TRUTHY_FLAGS = ("true", "yes", "y", "1")


@dataclass(frozen=True)
class TimesheetFigures:
    hours: float
    distance: float


class QuickLogKind(str, enum.Enum):
    DUMP_WASHOUT = "Dump Washout"
    SHOP_TIME = "Shop Time"

    @classmethod
    def normalize(cls, value) -> "QuickLogKind":
        raw = str(value or "").strip().lower()
        if "wash" in raw or "dump" in raw:
            return cls.DUMP_WASHOUT
        if "shop" in raw:
            return cls.SHOP_TIME
        raise ValueError(f"Unknown quick-log type: {value!r}")

    @property
    def unit_hours(self) -> float:
        if self is QuickLogKind.DUMP_WASHOUT:
            return settings.WASHOUT_UNIT_HOURS
        return settings.SHOP_UNIT_HOURS

    @property
    def qty_field(self) -> str:
        return "washout_qty" if self is QuickLogKind.DUMP_WASHOUT else "shop_qty"


@dataclass(frozen=True)
class QuickLogTally:
    """Accumulated quick-log units. The label is derived, never stored."""

    quantity: int
    unit_hours: float

    @property
    def hours(self) -> float:
        return round(self.quantity * self.unit_hours, 2)

    @property
    def label(self) -> str:
        return f"{self.hours:.2f} hrs ({self.quantity} qty)"

    def add(self, count: int = 1) -> "QuickLogTally":
        return QuickLogTally(self.quantity + count, self.unit_hours)

    @classmethod
    def parse(cls, value, unit_hours: float) -> "QuickLogTally":
        """Read a legacy encoded value: "0.50 hrs (1 qty)", "true", "yes", or a bare count."""
        if value is None or value is False:
            return cls(0, unit_hours)
        if value is True:
            return cls(1, unit_hours)
        if isinstance(value, (int, float)):
            return cls(max(0, int(value)) if not math.isnan(value) else 0, unit_hours)
        raw = str(value).strip()
        match = _QTY_PATTERN.search(raw)
        if match:
            return cls(int(match.group(1)), unit_hours)
        if raw.lower() in _TRUTHY_FLAGS:
            return cls(1, unit_hours)
        return cls(0, unit_hours)


def washout_tally(record) -> QuickLogTally:
    return QuickLogTally(int(getattr(record, "washout_qty", 0) or 0), settings.WASHOUT_UNIT_HOURS)


def shop_tally(record) -> QuickLogTally:
    return QuickLogTally(int(getattr(record, "shop_qty", 0) or 0), settings.SHOP_UNIT_HOURS)


def quick_log_hours(record) -> float:
    return washout_tally(record).hours + shop_tally(record).hours


# ── Input normalization ─────────────────────────────────────────────


def parse_timestamp(value) -> Optional[datetime]:
    """Accept datetimes, ISO strings, and "9/8/2024 5:06:07 PM" style strings.

    Zone-aware values are converted to naive UTC; everything downstream
    compares naive datetimes.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = date_parser.parse(str(value).strip())
        except (ValueError, OverflowError):
            logger.warning(f"Unparseable timestamp ignored: {value!r}")
            return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def _positive(value) -> float:
    """Float value if positive and finite, else 0."""
    if value is None or value == "":
        return 0.0
    try:
        number = float(str(value).replace(",", "")) if isinstance(value, str) else float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number) or math.isinf(number) or number <= 0:
        return 0.0
    return number


def record_type(record) -> TimesheetType:
    try:
        return TimesheetType.normalize(getattr(record, "type", None))
    except ValueError:
        # Anything that is not site time bills like drive time
        return TimesheetType.DRIVE_TIME


# ── Site time ───────────────────────────────────────────────────────


def round_site_hours(raw_hours: float) -> float:
    """Quarter-hour rounding in force from the site-hours cutover."""
    if SNAP_TO_EIGHT_FROM <= raw_hours < EIGHT_HOURS:
        return EIGHT_HOURS

    whole = math.floor(raw_hours)
    minutes = math.floor((raw_hours - whole) * 60 + 0.5)
    if minutes <= 14:
        rounded = 0
    elif minutes <= 29:
        rounded = 15
    elif minutes <= 44:
        rounded = 30
    elif minutes <= 59:
        rounded = 45
    else:
        # 60 after rounding: drops to the whole hour rather than carrying (unresolved payroll question)
        rounded = 0
    return whole + rounded / 60


def worked_hours_raw(record) -> float:
    """Clock span minus lunch, in decimal hours, floored at 0."""
    clock_in = parse_timestamp(getattr(record, "clock_in", None))
    clock_out = parse_timestamp(getattr(record, "clock_out", None))
    if not clock_in or not clock_out:
        return 0.0

    seconds = (clock_out - clock_in).total_seconds()

    lunch_start = parse_timestamp(getattr(record, "lunch_start", None))
    lunch_end = parse_timestamp(getattr(record, "lunch_end", None))
    if lunch_start and lunch_end and lunch_end > lunch_start:
        seconds -= (lunch_end - lunch_start).total_seconds()

    if seconds <= 0:
        if clock_out < clock_in:
            logger.warning(
                f"Timesheet {getattr(record, 'id', None)}: clock out before clock in, counting 0 hours"
            )
        return 0.0
    return seconds / 3600.0


def site_hours(record, schedule_date=None) -> float:
    manual = _positive(getattr(record, "manual_duration", None))
    if manual:
        return manual

    raw = worked_hours_raw(record)
    if raw <= 0:
        return 0.0

    effective = effective_date(
        parse_timestamp(getattr(record, "clock_in", None)), parse_timestamp(schedule_date)
    )
    if not uses_current_rules(RuleDomain.SITE_HOURS, effective):
        return raw
    return round_site_hours(raw)


# ── Distance ────────────────────────────────────────────────────────


def compute_distance(record, factor: Optional[float] = None) -> float:
    """Miles driven for a record, never negative.

    Order: office override, persisted distance, GPS pair, odometer pair.
    """
    manual = _positive(getattr(record, "manual_distance", None))
    if manual:
        return manual

    persisted = _positive(getattr(record, "distance", None))
    if persisted:
        return persisted

    loc_in = getattr(record, "location_in", None)
    loc_out = getattr(record, "location_out", None)
    if loc_in in (None, "") or loc_out in (None, ""):
        return 0.0

    start, end = parse_coordinates(loc_in), parse_coordinates(loc_out)
    if start and end:
        miles = driving_miles(start[0], start[1], end[0], end[1], factor)
        if math.isnan(miles):
            logger.warning(f"Timesheet {getattr(record, 'id', None)}: GPS distance is NaN, counting 0")
            return 0.0
        return max(0.0, miles)

    odo_in, odo_out = parse_odometer(loc_in), parse_odometer(loc_out)
    if odo_in is not None and odo_out is not None:
        return max(0.0, odo_out - odo_in)

    return 0.0


# ── Hours ───────────────────────────────────────────────────────────


def _drive_figures(record, schedule_date=None) -> TimesheetFigures:
    speed = settings.AVERAGE_SPEED_MPH
    manual_hours = _positive(getattr(record, "manual_duration", None))
    manual_miles = _positive(getattr(record, "manual_distance", None))
    if manual_miles:
        return TimesheetFigures(hours=manual_hours or manual_miles / speed, distance=manual_miles)

    effective = effective_date(
        parse_timestamp(getattr(record, "clock_in", None)), parse_timestamp(schedule_date)
    )
    if not uses_current_rules(RuleDomain.DRIVE_DISTANCE, effective):
        # Legacy: hours were entered directly; mileage is backed out of them
        hours = manual_hours or _positive(getattr(record, "hours", None))
        return TimesheetFigures(hours=hours, distance=hours * speed)

    distance = compute_distance(record)
    if manual_hours:
        return TimesheetFigures(hours=manual_hours, distance=distance)
    if distance > 0:
        return TimesheetFigures(hours=distance / speed, distance=distance)
    return TimesheetFigures(hours=quick_log_hours(record), distance=0.0)


def calculate(record, schedule_date=None) -> TimesheetFigures:
    """Hours and miles for one record. ``schedule_date`` is the fallback effective date."""
    if record_type(record) is TimesheetType.SITE_TIME:
        return TimesheetFigures(hours=site_hours(record, schedule_date), distance=0.0)
    return _drive_figures(record, schedule_date)


def compute_hours(record, schedule_date=None) -> float:
    return calculate(record, schedule_date).hours
