"""Date-cutover rule versioning.

Each record is computed with the rules in force on its own effective date
(its clock-in, else the schedule date), so figures for closed pay periods
never change when the rules do.
"""
import enum
from datetime import datetime
from typing import Optional

from fieldclock.core.config import settings


class RuleDomain(str, enum.Enum):
    DRIVE_DISTANCE = "drive_distance"
    SITE_HOURS = "site_hours"


def cutover_for(domain: RuleDomain) -> datetime:
    if domain is RuleDomain.DRIVE_DISTANCE:
        return settings.DRIVE_DISTANCE_CUTOVER
    return settings.SITE_HOURS_CUTOVER


def effective_date(clock_in: Optional[datetime], schedule_date: Optional[datetime]) -> Optional[datetime]:
    return clock_in or schedule_date


def uses_current_rules(domain: RuleDomain, effective: Optional[datetime]) -> bool:
    """True on/after the domain's cutover. Undated records get current rules."""
    if effective is None:
        return True
    return effective >= cutover_for(domain)
