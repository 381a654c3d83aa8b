"""Routing domain models."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional

from ...models.domain import DeliveryOrder, GeoPoint


class StopType(str, Enum):
    START = "start"
    PICKUP = "pickup"
    DELIVERY = "delivery"
    END = "end"

    @property
    def carries_order(self) -> bool:
        return self in (StopType.PICKUP, StopType.DELIVERY)


class CongestionLevel(str, Enum):
    FREE_FLOW = "free_flow"
    LIGHT = "light"
    MODERATE = "moderate"
    HEAVY = "heavy"
    SEVERE = "severe"


class RouteStatus(str, Enum):
    PLANNED = "PLANNED"
    ASSIGNED = "ASSIGNED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    PAUSED = "PAUSED"
    CANCELLED = "CANCELLED"


@dataclass(frozen=True, slots=True)
class OptimizationPolicy:
    include_traffic: bool = True
    departure_time: str = "now"
    travel_mode: str = "car"
    route_type: str = "fastest"
    max_orders_per_trip: int = 10
    force_return_to_end: bool = False
    max_return_distance_km: float = 0.0

    @classmethod
    def from_settings(cls, settings) -> OptimizationPolicy:
        return cls(
            include_traffic=settings.include_traffic,
            departure_time=settings.departure_time,
            travel_mode=settings.travel_mode,
            route_type=settings.route_type,
            max_orders_per_trip=settings.max_orders_per_trip,
            force_return_to_end=settings.force_return_to_end,
            max_return_distance_km=settings.max_return_distance_km,
        )


@dataclass(frozen=True, slots=True)
class OptimizationRequest:
    start: Optional[GeoPoint]
    end: Optional[GeoPoint]
    orders: tuple[DeliveryOrder, ...]
    policy: OptimizationPolicy = field(default_factory=OptimizationPolicy)


@dataclass(frozen=True, slots=True)
class Stop:
    stop_number: int
    stop_type: StopType
    order: Optional[DeliveryOrder]
    location: GeoPoint
    distance_from_previous: float = 0.0
    cumulative_distance: float = 0.0
    estimated_time: float = 0.0
    cumulative_time: float = 0.0
    traffic_delay_seconds: float = 0.0


@dataclass(frozen=True, slots=True)
class RoutePoint:
    lat: float
    lng: float
    instruction: str = ""
    traffic_delay_seconds: float = 0.0
    sequence: Optional[int] = None
    street_name: Optional[str] = None
    distance_from_previous: Optional[float] = None


@dataclass(frozen=True, slots=True)
class OptimizedRoute:
    total_distance: float
    total_time: float
    total_traffic_delay: float
    stops: tuple[Stop, ...]
    route_points: tuple[RoutePoint, ...]
    orders_delivered: int
    route_efficiency: Optional[float] = None
    algorithm: Optional[str] = None
    traffic_conditions: dict = field(default_factory=dict)

    @property
    def order_stops(self) -> tuple[Stop, ...]:
        return tuple(stop for stop in self.stops if stop.order is not None)


@dataclass(frozen=True, slots=True)
class Waypoint:
    lat: float
    lon: float
    name: str
    waypoint_type: StopType
    waypoint_index: int
    order_id: str


@dataclass(frozen=True, slots=True)
class AnnotatedRoutePoint:
    lat: float
    lon: float
    name: str
    traffic_delay: float
    speed: float
    congestion_level: CongestionLevel
    waypoint_type: str = "route"
    waypoint_index: Optional[int] = None


@dataclass(frozen=True, slots=True)
class VisitEntry:
    name: str
    waypoint_index: int
    order_id: str


@dataclass(frozen=True, slots=True)
class RouteSummary:
    total_time: float
    total_distance: float
    traffic_delay: float
    base_time: float
    traffic_time: float
    fuel_consumption: Optional[float] = None


@dataclass(frozen=True, slots=True)
class PersistableRoute:
    origin: GeoPoint
    destination: GeoPoint
    waypoints: tuple[Waypoint, ...]
    route_points: tuple[AnnotatedRoutePoint, ...]
    visit_order: tuple[VisitEntry, ...]
    summary: RouteSummary
    traffic_conditions: dict = field(default_factory=dict)
    quality_issues: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class SavedRoute:
    uuid: str
    route_name: str
    route: PersistableRoute
    order_ids: tuple[str, ...]
    status: RouteStatus = RouteStatus.PLANNED
    description: str = ""

    def mark_assigned(self) -> SavedRoute:
        return replace(self, status=RouteStatus.ASSIGNED)
