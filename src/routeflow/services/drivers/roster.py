"""Client for the organization's driver roster."""

from __future__ import annotations

import logging

from pydantic import ValidationError

from ...models.domain import Driver, DriverStatus
from ...schemas.backend import BackendMember
from ..backend import BackendClient, BackendError

logger = logging.getLogger(__name__)

DRIVER_ROLE = "DRIVER"


def driver_from_member(member: BackendMember) -> Driver | None:
    membership_id = member.organization_membership_uuid or member.membership_uuid
    if not membership_id:
        return None
    try:
        status = DriverStatus(member.status.upper())
    except ValueError:
        status = DriverStatus.INACTIVE
    return Driver(
        id=membership_id,
        name=member.name,
        status=status,
        user_id=member.user_uuid,
        email=member.email,
        phone=member.phone,
    )


class DriverRoster:
    def __init__(self, backend: BackendClient) -> None:
        self.backend = backend

    async def list_drivers(self, organization_id: str) -> list[Driver]:
        body = await self.backend.request(
            "GET",
            f"organization-members/organization/{organization_id}/users",
            params={"role": DRIVER_ROLE},
        )
        records = body.get("data") if isinstance(body, dict) else body
        if not isinstance(records, list):
            raise BackendError("Driver roster response has no member list", payload=body)

        drivers: list[Driver] = []
        for raw in records:
            try:
                member = BackendMember.model_validate(raw)
            except ValidationError:
                logger.warning("Ignoring malformed roster record")
                continue
            driver = driver_from_member(member)
            if driver is None:
                logger.warning(f"Roster member '{member.name}' has no membership id; skipped")
                continue
            drivers.append(driver)
        return drivers

    async def list_active_drivers(self, organization_id: str) -> list[Driver]:
        drivers = await self.list_drivers(organization_id)
        active = [driver for driver in drivers if driver.is_active]
        logger.info(f"Roster for organization {organization_id}: {len(active)}/{len(drivers)} drivers active")
        return active
