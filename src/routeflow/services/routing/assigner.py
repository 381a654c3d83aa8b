"""Assign a saved route to a driver."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable

from ...config import settings
from ...models.domain import Driver
from ..backend import BackendClient, BackendError
from ..results import AssignOutcome, ErrorKind

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def resolve_schedule(
    now: datetime,
    start_time: datetime | None,
    end_time: datetime | None,
    start_offset_minutes: int = 30,
    end_offset_minutes: int = 120,
) -> tuple[datetime, datetime]:
    """Fill in a missing schedule window relative to ``now``."""

    start = start_time or now + timedelta(minutes=start_offset_minutes)
    end = end_time or now + timedelta(minutes=end_offset_minutes)
    return start, end


class DriverAssigner:
    """Posts route assignments. Repeated calls are forwarded as-is."""

    def __init__(
        self,
        backend: BackendClient,
        clock: Callable[[], datetime] = _utcnow,
        start_offset_minutes: int | None = None,
        end_offset_minutes: int | None = None,
    ) -> None:
        self.backend = backend
        self.clock = clock
        self.start_offset_minutes = (
            start_offset_minutes if start_offset_minutes is not None else settings.assignment_start_offset_minutes
        )
        self.end_offset_minutes = (
            end_offset_minutes if end_offset_minutes is not None else settings.assignment_end_offset_minutes
        )

    async def assign(
        self,
        route_id: str,
        driver: Driver,
        start_time: datetime | None = None,
        end_time: datetime | None = None,
        notes: str | None = None,
    ) -> AssignOutcome:
        if not route_id:
            return AssignOutcome.failure("A saved route is required before assigning a driver", ErrorKind.VALIDATION)

        now = self.clock()
        start, end = resolve_schedule(now, start_time, end_time, self.start_offset_minutes, self.end_offset_minutes)
        if end <= start:
            return AssignOutcome.failure("The end time must be after the start time", ErrorKind.VALIDATION)

        body = {
            "start_time": start.isoformat(),
            "end_time": end.isoformat(),
            "driver_notes": notes or f"Route assigned on {now.strftime('%Y-%m-%d %H:%M')}",
            "driver_instructions": {
                "special_instructions": notes or "",
                "contact_info": driver.phone or "Not available",
            },
        }
        try:
            await self.backend.request("POST", f"route-drivers/assign/{route_id}/{driver.id}", json=body)
        except BackendError as exc:
            logger.warning(f"Assigning route {route_id} to driver {driver.id} failed: {exc}")
            return AssignOutcome.failure(str(exc))
        except Exception as exc:
            logger.exception(f"Unexpected error assigning route {route_id}: {exc}")
            return AssignOutcome.failure(f"Unexpected error assigning the route: {exc}")

        logger.info(f"Route {route_id} assigned to driver {driver.name} ({driver.id}) from {start} to {end}")
        return AssignOutcome.success(start, end)
