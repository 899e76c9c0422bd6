from datetime import datetime

import pytest

from fieldclock.core.errors import (
    ActiveDriveTimeExists,
    DriveTimeNotActive,
    LocationUnavailable,
    NotFound,
    StaleTimesheet,
)
from fieldclock.models.timesheet import TimesheetEntry
from fieldclock.schemas.timesheet import GeoPosition
from fieldclock.services.drive_time import DriveTimeService
from fieldclock.services.geo import haversine_miles
from fieldclock.services.timesheet_calc import QuickLogKind
from fieldclock.services.timesheets import TimesheetService, serialize_timesheet

from conftest import CHICAGO, MILWAUKEE, WORKER

START = datetime(2026, 3, 3, 7, 0)
STOP = datetime(2026, 3, 3, 8, 30)


@pytest.fixture
def service(db):
    return DriveTimeService(db)


def position(point) -> GeoPosition:
    return GeoPosition(**point)


def test_start_creates_active_entry(service, schedule):
    entry = service.start(WORKER, schedule.id, position(CHICAGO), now=START)

    assert entry.type == "drive_time"
    assert entry.clock_in == START
    assert entry.clock_out is None
    assert entry.location_in == "41.8781,-87.6298"
    assert entry.created_by == WORKER
    assert float(entry.hourly_rate_site) == 40.0
    assert float(entry.hourly_rate_drive) == 30.0
    assert service.find_active(WORKER).id == entry.id


def test_start_requires_location(service, schedule):
    with pytest.raises(LocationUnavailable):
        service.start(WORKER, schedule.id, None, now=START)
    assert service.find_active(WORKER) is None


def test_start_unknown_schedule(service, employees):
    with pytest.raises(NotFound):
        service.start(WORKER, "missing", position(CHICAGO), now=START)


def test_second_start_is_refused_across_schedules(service, schedule, second_schedule):
    first = service.start(WORKER, schedule.id, position(CHICAGO), now=START)
    with pytest.raises(ActiveDriveTimeExists):
        service.start(WORKER, second_schedule.id, position(CHICAGO), now=STOP)
    assert service.find_active(WORKER).id == first.id


def test_unique_index_backs_the_single_active_rule(db, schedule):
    timesheets = TimesheetService(db)
    for _ in range(2):
        db.add(TimesheetEntry(schedule_id=schedule.id, employee=WORKER, type="drive_time", clock_in=START))
    with pytest.raises(ActiveDriveTimeExists):
        timesheets.commit()


def test_other_employees_can_drive_at_the_same_time(service, schedule):
    service.start(WORKER, schedule.id, position(CHICAGO), now=START)
    other = service.start("other@fieldclock.test", schedule.id, position(CHICAGO), now=START)
    assert other.clock_out is None


def test_stop_computes_distance_with_stop_factor(service, schedule):
    started = service.start(WORKER, schedule.id, position(CHICAGO), now=START)
    stopped = service.stop(WORKER, position(MILWAUKEE), timesheet_id=started.id,
                           expected_version=started.version, now=STOP)

    expected = round(haversine_miles(41.8781, -87.6298, 43.0389, -87.9065) * 1.19, 2)
    assert stopped.clock_out == STOP
    assert stopped.location_out == "43.0389,-87.9065"
    assert stopped.distance == pytest.approx(expected)
    assert stopped.hours == pytest.approx(round(expected / 55, 2))
    assert service.find_active(WORKER) is None


def test_stop_in_place_is_zero(service, schedule):
    service.start(WORKER, schedule.id, position(CHICAGO), now=START)
    stopped = service.stop(WORKER, position(CHICAGO), now=STOP)
    assert stopped.distance == 0.0
    assert stopped.hours == 0.0


def test_stop_without_active_entry(service, schedule):
    with pytest.raises(DriveTimeNotActive):
        service.stop(WORKER, position(MILWAUKEE), now=STOP)


def test_stop_twice_is_refused(service, schedule):
    service.start(WORKER, schedule.id, position(CHICAGO), now=START)
    service.stop(WORKER, position(MILWAUKEE), now=STOP)
    with pytest.raises(DriveTimeNotActive):
        service.stop(WORKER, position(MILWAUKEE), now=STOP)


def test_stop_with_stale_version(service, schedule):
    started = service.start(WORKER, schedule.id, position(CHICAGO), now=START)
    with pytest.raises(StaleTimesheet):
        service.stop(WORKER, position(MILWAUKEE), expected_version=started.version + 1, now=STOP)
    assert service.find_active(WORKER) is not None


def test_stop_requires_location(service, schedule):
    service.start(WORKER, schedule.id, position(CHICAGO), now=START)
    with pytest.raises(LocationUnavailable):
        service.stop(WORKER, None, now=STOP)
    assert service.find_active(WORKER) is not None


def test_two_washouts_accumulate(service, schedule):
    first = service.quick_log(schedule.id, WORKER, QuickLogKind.DUMP_WASHOUT, now=datetime(2026, 3, 3, 15, 0))
    second = service.quick_log(schedule.id, WORKER, QuickLogKind.DUMP_WASHOUT, now=datetime(2026, 3, 3, 15, 40))

    assert second.id == first.id
    assert second.washout_qty == 2
    assert second.hours == 1.0
    assert second.clock_in == datetime(2026, 3, 3, 14, 30)
    assert serialize_timesheet(second)["dump_washout"] == "1.00 hrs (2 qty)"


def test_shop_time_gets_its_own_entry(service, schedule):
    washout = service.quick_log(schedule.id, WORKER, QuickLogKind.DUMP_WASHOUT, now=datetime(2026, 3, 3, 15, 0))
    shop = service.quick_log(schedule.id, WORKER, QuickLogKind.SHOP_TIME, now=datetime(2026, 3, 3, 16, 0))

    assert shop.id != washout.id
    assert shop.shop_qty == 1
    assert shop.washout_qty == 0
    assert shop.hours == 0.25
    assert serialize_timesheet(shop)["shop_time"] == "0.25 hrs (1 qty)"


def test_quick_log_next_day_starts_over(service, schedule):
    service.quick_log(schedule.id, WORKER, QuickLogKind.DUMP_WASHOUT, now=datetime(2026, 3, 3, 15, 0))
    next_day = service.quick_log(schedule.id, WORKER, QuickLogKind.DUMP_WASHOUT, now=datetime(2026, 3, 4, 9, 0))
    assert next_day.washout_qty == 1


def test_quick_log_just_after_midnight_stays_on_its_day(service, schedule):
    entry = service.quick_log(schedule.id, WORKER, QuickLogKind.DUMP_WASHOUT, now=datetime(2026, 3, 4, 0, 10))
    assert entry.clock_in == datetime(2026, 3, 4, 0, 0)
