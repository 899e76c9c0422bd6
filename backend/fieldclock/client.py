"""Async API client and the field app's drive-time controller.

``DriveTimeController`` mirrors what the crew dashboard does:
- start: append a placeholder entry at once, swap in the server's entry on
  success, remove the placeholder on failure
- stop: close the local entry at once, swap in the server's entry on success,
  refetch the schedule on failure
- quick logs: apply the server's entry on success, refetch on failure

It never raises domain errors to the caller. Every outcome goes through the
``notify(level, message)`` callback ("success", "info" or "error").
"""
import asyncio
import copy
import logging
import uuid
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import httpx

from fieldclock.core import errors
from fieldclock.core.config import settings
from fieldclock.core.errors import (
    ActiveDriveTimeExists,
    DriveTimeNotActive,
    IdentityMissing,
    LocationUnavailable,
    PersistenceFailure,
    TimesheetError,
)
from fieldclock.models.timesheet import TimesheetType
from fieldclock.schemas.timesheet import GeoPosition
from fieldclock.services.geo import format_position
from fieldclock.services.timesheet_calc import QuickLogKind

logger = logging.getLogger(__name__)

TEMP_ID_PREFIX = "temp-"

_ERRORS_BY_NAME = {
    name: obj
    for name, obj in vars(errors).items()
    if isinstance(obj, type) and issubclass(obj, TimesheetError)
}

Notify = Callable[[str, str], None]
Locate = Callable[[], Awaitable[Optional[GeoPosition]]]


def _log_notify(level: str, message: str) -> None:
    log = logger.error if level == "error" else logger.info
    log(f"[{level}] {message}")


class FieldClockClient:
    """Thin async wrapper over the REST API. Failures raise ``TimesheetError`` subclasses."""

    def __init__(
        self,
        token: str,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=base_url or settings.API_URL,
            headers={"Authorization": f"Bearer {token}"},
            transport=transport,
            timeout=timeout or settings.API_TIMEOUT_SECONDS,
        )

    async def __aenter__(self) -> "FieldClockClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.warning(f"{method} {path} failed: {e}")
            raise PersistenceFailure(f"Could not reach the server: {e}") from e

        if response.status_code >= 400:
            try:
                body = response.json()
            except ValueError:
                body = {}
            detail = body.get("detail") if isinstance(body, dict) else None
            error_cls = _ERRORS_BY_NAME.get(body.get("error") if isinstance(body, dict) else None)
            if error_cls is None:
                error_cls = PersistenceFailure
            logger.warning(f"{method} {path} -> {response.status_code}: {detail}")
            raise error_cls(detail if isinstance(detail, str) else "")
        return response.json()

    # ── Schedules ────────────────────────────────────────────────────

    async def list_schedules(self, start: Optional[datetime] = None) -> List[dict]:
        params = {"start": start.isoformat()} if start else None
        return await self._request("GET", "/api/schedules/", params=params)

    async def get_schedule(self, schedule_id: str) -> dict:
        return await self._request("GET", f"/api/schedules/{schedule_id}")

    async def replace_timesheets(
        self, schedule_id: str, timesheets: List[dict], version: Optional[int] = None
    ) -> dict:
        payload = {"timesheets": timesheets, "version": version}
        return await self._request("PUT", f"/api/schedules/{schedule_id}/timesheets", json=payload)

    # ── Timesheets ───────────────────────────────────────────────────

    async def save_timesheet(self, timesheet: dict) -> dict:
        return await self._request("POST", "/api/timesheets/save", json=timesheet)

    async def update_timesheet(self, timesheet_id: str, changes: dict, version: int) -> dict:
        return await self._request(
            "PATCH", f"/api/timesheets/{timesheet_id}", json={**changes, "version": version}
        )

    async def delete_timesheet(self, timesheet_id: str, version: Optional[int] = None) -> dict:
        params = {"version": version} if version is not None else None
        return await self._request("DELETE", f"/api/timesheets/{timesheet_id}", params=params)

    async def active_drive_time(self) -> Optional[dict]:
        return (await self._request("GET", "/api/timesheets/drive-time/active"))["active"]

    async def start_drive_time(self, schedule_id: str, position: GeoPosition) -> dict:
        payload = {"schedule_id": schedule_id, "position": position.model_dump()}
        return await self._request("POST", "/api/timesheets/drive-time/start", json=payload)

    async def stop_drive_time(
        self, position: GeoPosition, timesheet_id: Optional[str] = None, version: Optional[int] = None
    ) -> dict:
        payload = {"position": position.model_dump(), "timesheet_id": timesheet_id, "version": version}
        return await self._request("POST", "/api/timesheets/drive-time/stop", json=payload)

    async def quick_log(self, schedule_id: str, kind: QuickLogKind) -> dict:
        payload = {"schedule_id": schedule_id, "type": kind.value}
        return await self._request("POST", "/api/timesheets/quick-log", json=payload)


class ScheduleBoard:
    """The app's local copy of schedules and their timesheet lists."""

    def __init__(self, schedules: Optional[List[dict]] = None):
        self.schedules: Dict[str, dict] = {}
        for schedule in schedules or []:
            self.set_schedule(schedule)

    def set_schedule(self, schedule: dict) -> None:
        schedule.setdefault("timesheet", [])
        self.schedules[schedule["id"]] = schedule

    def timesheets(self, schedule_id: str) -> List[dict]:
        return self.schedules[schedule_id]["timesheet"]

    def find(self, entry_id: str) -> Optional[Tuple[str, dict]]:
        for schedule_id, schedule in self.schedules.items():
            for entry in schedule["timesheet"]:
                if entry.get("id") == entry_id:
                    return schedule_id, entry
        return None

    def active_drive_time(self, employee: str) -> Optional[Tuple[str, dict]]:
        """The employee's open drive time across every loaded schedule."""
        employee = (employee or "").strip().lower()
        for schedule_id, schedule in self.schedules.items():
            for entry in schedule["timesheet"]:
                if (
                    (entry.get("employee") or "").lower() == employee
                    and entry.get("type") == TimesheetType.DRIVE_TIME.value
                    and not entry.get("clock_out")
                ):
                    return schedule_id, entry
        return None

    def append(self, schedule_id: str, entry: dict) -> None:
        self.timesheets(schedule_id).append(entry)

    def replace(self, schedule_id: str, entry_id: str, entry: dict) -> None:
        rows = self.timesheets(schedule_id)
        for i, row in enumerate(rows):
            if row.get("id") == entry_id:
                rows[i] = entry
                return
        rows.append(entry)

    def upsert(self, schedule_id: str, entry: dict) -> None:
        self.replace(schedule_id, entry["id"], entry)

    def remove(self, schedule_id: str, entry_id: str) -> None:
        rows = self.timesheets(schedule_id)
        rows[:] = [row for row in rows if row.get("id") != entry_id]


class DriveTimeController:
    def __init__(
        self,
        client: FieldClockClient,
        board: ScheduleBoard,
        employee: Optional[str],
        locate: Locate,
        notify: Notify = _log_notify,
        geolocation_timeout: Optional[float] = None,
    ):
        self.client = client
        self.board = board
        self.employee = (employee or "").strip().lower() or None
        self.locate = locate
        self.notify = notify
        self.geolocation_timeout = geolocation_timeout or settings.GEOLOCATION_TIMEOUT_SECONDS
        # One transition at a time; a second tap waits and then sees the new state
        self._lock = asyncio.Lock()

    async def _position(self) -> GeoPosition:
        try:
            position = await asyncio.wait_for(self.locate(), timeout=self.geolocation_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Geolocation timed out after {self.geolocation_timeout}s")
            raise LocationUnavailable()
        except Exception as e:
            # Permission denied, position unavailable, or any other device failure
            logger.warning(f"Geolocation failed: {type(e).__name__}: {e}")
            raise LocationUnavailable() from e
        if position is None:
            raise LocationUnavailable()
        return position

    def _require_identity(self) -> str:
        if not self.employee:
            raise IdentityMissing()
        return self.employee

    async def refresh(self, schedule_id: str) -> None:
        """Reload one schedule from the server; keep local state if that fails too."""
        try:
            self.board.set_schedule(await self.client.get_schedule(schedule_id))
        except TimesheetError as e:
            logger.warning(f"Refetch of schedule {schedule_id} failed: {e.message}")

    # ── Public actions ───────────────────────────────────────────────

    async def toggle(self, schedule_id: str) -> Optional[dict]:
        """Start drive time if none is active for this employee, else stop it."""
        async with self._lock:
            try:
                employee = self._require_identity()
            except IdentityMissing as e:
                self.notify("error", e.message)
                return None
            if self.board.active_drive_time(employee):
                return await self._stop(employee)
            return await self._start(employee, schedule_id)

    async def start(self, schedule_id: str) -> Optional[dict]:
        async with self._lock:
            try:
                employee = self._require_identity()
                if self.board.active_drive_time(employee):
                    raise ActiveDriveTimeExists()
            except TimesheetError as e:
                self.notify("error", e.message)
                return None
            return await self._start(employee, schedule_id)

    async def stop(self) -> Optional[dict]:
        async with self._lock:
            try:
                employee = self._require_identity()
            except IdentityMissing as e:
                self.notify("error", e.message)
                return None
            return await self._stop(employee)

    async def quick_log(self, schedule_id: str, kind) -> Optional[dict]:
        kind = QuickLogKind.normalize(kind)
        async with self._lock:
            try:
                self._require_identity()
                entry = await self.client.quick_log(schedule_id, kind)
            except TimesheetError as e:
                self.notify("error", f"Failed to save {kind.value}: {e.message}")
                await self.refresh(schedule_id)
                return None
            self.board.upsert(schedule_id, entry)
            label = entry.get("dump_washout") if kind is QuickLogKind.DUMP_WASHOUT else entry.get("shop_time")
            self.notify("success", f"{kind.value} saved: {label}")
            return entry

    # ── Transitions ──────────────────────────────────────────────────

    async def _start(self, employee: str, schedule_id: str) -> Optional[dict]:
        try:
            position = await self._position()
        except LocationUnavailable as e:
            self.notify("error", e.message)
            return None

        temp_id = f"{TEMP_ID_PREFIX}{uuid.uuid4().hex}"
        placeholder = {
            "id": temp_id,
            "schedule_id": schedule_id,
            "employee": employee,
            "type": TimesheetType.DRIVE_TIME.value,
            "clock_in": datetime.utcnow().isoformat(),
            "clock_out": None,
            "location_in": format_position(position.latitude, position.longitude),
            "location_out": None,
            "status": "Pending",
        }
        self.board.append(schedule_id, placeholder)

        try:
            entry = await self.client.start_drive_time(schedule_id, position)
        except TimesheetError as e:
            self.board.remove(schedule_id, temp_id)
            self.notify("error", f"Failed to start drive time: {e.message}")
            return None

        self.board.replace(schedule_id, temp_id, entry)
        self.notify("success", "Drive time started")
        return entry

    async def _stop(self, employee: str) -> Optional[dict]:
        found = self.board.active_drive_time(employee)
        if not found:
            self.notify("error", DriveTimeNotActive().message)
            return None
        schedule_id, local = found

        try:
            position = await self._position()
        except LocationUnavailable as e:
            self.notify("error", e.message)
            return None

        before = copy.deepcopy(local)
        local["clock_out"] = datetime.utcnow().isoformat()
        local["location_out"] = format_position(position.latitude, position.longitude)

        timesheet_id = before.get("id")
        if timesheet_id and timesheet_id.startswith(TEMP_ID_PREFIX):
            timesheet_id = None
        try:
            entry = await self.client.stop_drive_time(position, timesheet_id, before.get("version"))
        except TimesheetError as e:
            self.notify("error", f"Failed to stop drive time: {e.message}")
            await self.refresh(schedule_id)
            return None

        self.board.replace(schedule_id, before["id"], entry)
        self.notify(
            "success",
            f"Drive time stopped: {entry.get('distance') or 0:.2f} mi, {entry.get('hours') or 0:.2f} hrs",
        )
        return entry
