import asyncio
import json

import httpx
import pytest

from fieldclock.client import DriveTimeController, FieldClockClient, ScheduleBoard
from fieldclock.core.errors import ActiveDriveTimeExists, PersistenceFailure
from fieldclock.core.security import create_access_token
from fieldclock.main import app
from fieldclock.schemas.timesheet import GeoPosition

from conftest import CHICAGO, MILWAUKEE, WORKER


class Notices:
    def __init__(self):
        self.items = []

    def __call__(self, level, message):
        self.items.append((level, message))

    @property
    def levels(self):
        return [level for level, _ in self.items]


def api_client(email=WORKER) -> FieldClockClient:
    return FieldClockClient(
        create_access_token(email), base_url="http://test", transport=httpx.ASGITransport(app=app)
    )


def locator(point):
    async def locate():
        return GeoPosition(**point)
    return locate


def active_entries(board, employee=WORKER):
    return [
        t for s in board.schedules.values() for t in s["timesheet"]
        if t["employee"] == employee and t["type"] == "drive_time" and not t.get("clock_out")
    ]


# ── Against the real app ─────────────────────────────────────────────

async def test_toggle_starts_then_stops(schedule):
    notices = Notices()
    async with api_client() as client:
        board = ScheduleBoard([await client.get_schedule(schedule.id)])
        controller = DriveTimeController(client, board, WORKER, locator(CHICAGO), notify=notices)

        started = await controller.toggle(schedule.id)
        assert started is not None
        assert not started["id"].startswith("temp-")
        assert [t["id"] for t in active_entries(board)] == [started["id"]]

        controller.locate = locator(MILWAUKEE)
        stopped = await controller.toggle(schedule.id)
        assert stopped["id"] == started["id"]
        assert stopped["distance"] > 90
        assert active_entries(board) == []
        assert board.timesheets(schedule.id)[0]["clock_out"] is not None

        assert await client.active_drive_time() is None
    assert notices.levels == ["success", "success"]


async def test_concurrent_starts_leave_one_active(schedule):
    notices = Notices()
    async with api_client() as client:
        board = ScheduleBoard([await client.get_schedule(schedule.id)])
        controller = DriveTimeController(client, board, WORKER, locator(CHICAGO), notify=notices)

        results = await asyncio.gather(controller.start(schedule.id), controller.start(schedule.id))

        assert len([r for r in results if r]) == 1
        assert len(active_entries(board)) == 1
        assert (await client.active_drive_time())["id"] == active_entries(board)[0]["id"]
    assert sorted(notices.levels) == ["error", "success"]


async def test_second_device_start_rolls_back(schedule):
    async with api_client() as client:
        phone = ScheduleBoard([await client.get_schedule(schedule.id)])
        tablet = ScheduleBoard([await client.get_schedule(schedule.id)])
        tablet_notices = Notices()

        await DriveTimeController(client, phone, WORKER, locator(CHICAGO), notify=Notices()).start(schedule.id)
        result = await DriveTimeController(
            client, tablet, WORKER, locator(CHICAGO), notify=tablet_notices
        ).start(schedule.id)

        assert result is None
        # The placeholder was removed again
        assert tablet.timesheets(schedule.id) == []
        assert tablet_notices.levels == ["error"]
        assert "already running" in tablet_notices.items[0][1]


async def test_quick_log_through_controller(schedule):
    notices = Notices()
    async with api_client() as client:
        board = ScheduleBoard([await client.get_schedule(schedule.id)])
        controller = DriveTimeController(client, board, WORKER, locator(CHICAGO), notify=notices)

        await controller.quick_log(schedule.id, "Dump Washout")
        entry = await controller.quick_log(schedule.id, "Dump Washout")

    assert entry["dump_washout"] == "1.00 hrs (2 qty)"
    assert len(board.timesheets(schedule.id)) == 1
    assert notices.items[-1] == ("success", "Dump Washout saved: 1.00 hrs (2 qty)")


async def test_client_maps_error_names(schedule):
    async with api_client() as client:
        position = GeoPosition(**CHICAGO)
        await client.start_drive_time(schedule.id, position)
        with pytest.raises(ActiveDriveTimeExists):
            await client.start_drive_time(schedule.id, position)


# ── Failure injection ────────────────────────────────────────────────

def mock_client(handler) -> FieldClockClient:
    return FieldClockClient("token", base_url="http://test", transport=httpx.MockTransport(handler))


def board_with_active_drive():
    return ScheduleBoard([{
        "id": "sched-1",
        "timesheet": [{
            "id": "ts-1", "employee": WORKER, "type": "drive_time", "version": 1,
            "clock_in": "2026-03-03T07:00:00", "clock_out": None, "location_in": "41.8781,-87.6298",
        }],
    }])


async def test_stop_failure_refetches_schedule():
    server_copy = {"id": "sched-1", "version": 3, "timesheet": [{"id": "ts-1", "employee": WORKER,
                                                                 "type": "drive_time", "clock_out": None}]}
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append((request.method, request.url.path))
        if request.url.path.endswith("/drive-time/stop"):
            return httpx.Response(500, json={"detail": "Internal error: boom"})
        if request.url.path == "/api/schedules/sched-1":
            return httpx.Response(200, json=server_copy)
        return httpx.Response(404, json={"detail": "Not found"})

    notices = Notices()
    board = board_with_active_drive()
    async with mock_client(handler) as client:
        controller = DriveTimeController(client, board, WORKER, locator(MILWAUKEE), notify=notices)
        result = await controller.stop()

    assert result is None
    assert calls == [("POST", "/api/timesheets/drive-time/stop"), ("GET", "/api/schedules/sched-1")]
    assert board.schedules["sched-1"]["version"] == 3
    assert notices.levels == ["error"]


async def test_stop_sends_id_and_version():
    sent = {}

    def handler(request: httpx.Request) -> httpx.Response:
        sent.update(json.loads(request.content))
        return httpx.Response(200, json={"id": "ts-1", "employee": WORKER, "type": "drive_time",
                                         "clock_out": "2026-03-03T08:00:00", "distance": 12.5, "hours": 0.23})

    board = board_with_active_drive()
    async with mock_client(handler) as client:
        await DriveTimeController(client, board, WORKER, locator(MILWAUKEE), notify=Notices()).stop()

    assert sent["timesheet_id"] == "ts-1"
    assert sent["version"] == 1
    assert board.timesheets("sched-1")[0]["distance"] == 12.5


async def test_start_network_failure_rolls_back():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("offline", request=request)

    notices = Notices()
    board = ScheduleBoard([{"id": "sched-1", "timesheet": []}])
    async with mock_client(handler) as client:
        controller = DriveTimeController(client, board, WORKER, locator(CHICAGO), notify=notices)
        assert await controller.start("sched-1") is None

    assert board.timesheets("sched-1") == []
    assert notices.levels == ["error"]


async def test_transport_error_becomes_persistence_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    async with mock_client(handler) as client:
        with pytest.raises(PersistenceFailure):
            await client.get_schedule("sched-1")


async def test_missing_identity_makes_no_request():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError(f"unexpected request {request.url}")

    notices = Notices()
    board = ScheduleBoard([{"id": "sched-1", "timesheet": []}])
    async with mock_client(handler) as client:
        controller = DriveTimeController(client, board, None, locator(CHICAGO), notify=notices)
        assert await controller.toggle("sched-1") is None

    assert notices.items == [("error", "User identity not found.")]
    assert board.timesheets("sched-1") == []


async def test_geolocation_timeout():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError(f"unexpected request {request.url}")

    async def never():
        await asyncio.sleep(5)

    notices = Notices()
    board = ScheduleBoard([{"id": "sched-1", "timesheet": []}])
    async with mock_client(handler) as client:
        controller = DriveTimeController(client, board, WORKER, never, notify=notices, geolocation_timeout=0.01)
        assert await controller.start("sched-1") is None

    assert board.timesheets("sched-1") == []
    assert notices.levels == ["error"]
    assert "Location is required" in notices.items[0][1]


async def test_no_location_permission():
    async def denied():
        return None

    notices = Notices()
    board = ScheduleBoard([{"id": "sched-1", "timesheet": []}])
    async with mock_client(lambda request: httpx.Response(500)) as client:
        controller = DriveTimeController(client, board, WORKER, denied, notify=notices)
        await controller.start("sched-1")

    assert board.timesheets("sched-1") == []
    assert notices.levels == ["error"]


async def test_locator_error_is_reported_not_raised():
    async def denied():
        raise PermissionError("User denied Geolocation")

    notices = Notices()
    board = board_with_active_drive()
    board.set_schedule({"id": "sched-2", "timesheet": []})
    async with mock_client(lambda request: httpx.Response(500)) as client:
        controller = DriveTimeController(client, board, WORKER, denied, notify=notices)
        assert await controller.stop() is None
        assert await controller.toggle("sched-1") is None

        controller.board = ScheduleBoard([{"id": "sched-2", "timesheet": []}])
        assert await controller.start("sched-2") is None

    # The active entry was left untouched and no placeholder was added
    assert board.timesheets("sched-1")[0]["clock_out"] is None
    assert controller.board.timesheets("sched-2") == []
    assert notices.levels == ["error", "error", "error"]
    assert all("Location is required" in message for _, message in notices.items)


def test_board_finds_active_drive_across_schedules():
    board = board_with_active_drive()
    board.set_schedule({"id": "sched-2", "timesheet": []})
    schedule_id, entry = board.active_drive_time(WORKER.upper())
    assert schedule_id == "sched-1"
    assert entry["id"] == "ts-1"
    assert board.active_drive_time("nobody@fieldclock.test") is None
