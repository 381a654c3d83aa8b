"""Domain models for orders, drivers and geographic points."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


@dataclass(frozen=True, slots=True)
class GeoPoint:
    """A geographic point with a human-readable address."""

    lat: float
    lng: float
    address: str


@dataclass(frozen=True, slots=True)
class DeliveryOrder:
    """A pending order as supplied by the order pool."""

    id: str
    order_number: str
    origin: GeoPoint
    destination: GeoPoint
    description: str = ""
    amount: float = 0.0
    priority: int = 1
    estimated_pickup_minutes: int = 5
    estimated_delivery_minutes: int = 3


class DriverStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


@dataclass(frozen=True, slots=True)
class Driver:
    """A member of the organization roster that can be assigned to a route.

    ``id`` is the organization membership identifier expected by the
    assignment endpoint; ``user_id`` identifies the person.
    """

    id: str
    name: str
    status: DriverStatus
    user_id: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status is DriverStatus.ACTIVE
