"""Builders and fake collaborators shared by the test modules."""

from __future__ import annotations

from typing import Iterable, Sequence

from src.routeflow.models.domain import DeliveryOrder, Driver, DriverStatus, GeoPoint
from src.routeflow.services.geocoding import AddressSource, ResolvedLocation
from src.routeflow.services.geospatial import format_coordinates
from src.routeflow.services.results import AssignOutcome, OptimizationOutcome, PersistOutcome
from src.routeflow.services.routing.models import (
    OptimizedRoute,
    RoutePoint,
    SavedRoute,
    Stop,
    StopType,
)

DEPOT = GeoPoint(lat=24.7136, lng=46.6753, address="Depot")
YARD = GeoPoint(lat=24.6500, lng=46.7100, address="Yard")


def _order(order_id: str, index: int = 0) -> DeliveryOrder:
    return DeliveryOrder(
        id=order_id,
        order_number=f"ORD-{order_id}",
        origin=GeoPoint(lat=24.70 + index * 0.01, lng=46.60 + index * 0.01, address=f"Pickup {order_id}"),
        destination=GeoPoint(lat=24.80 + index * 0.01, lng=46.70 + index * 0.01, address=f"Drop {order_id}"),
        description=f"Order {order_id}",
        amount=100.0,
    )


def orders(*order_ids: str) -> tuple[DeliveryOrder, ...]:
    return tuple(_order(order_id, index) for index, order_id in enumerate(order_ids))


def driver(driver_id: str = "m-1", name: str = "Sara", active: bool = True, phone: str | None = "+966500000000") -> Driver:
    return Driver(
        id=driver_id,
        name=name,
        status=DriverStatus.ACTIVE if active else DriverStatus.INACTIVE,
        user_id=f"user-{driver_id}",
        phone=phone,
    )


def stop(
    number: int,
    stop_type: StopType,
    order: DeliveryOrder | None = None,
    location: GeoPoint | None = None,
    traffic_delay: float = 0.0,
) -> Stop:
    if location is None:
        if order is not None:
            location = order.origin if stop_type is StopType.PICKUP else order.destination
        else:
            location = DEPOT if stop_type is StopType.START else YARD
    return Stop(
        stop_number=number,
        stop_type=stop_type,
        order=order,
        location=location,
        traffic_delay_seconds=traffic_delay,
    )


def route_for(
    stops: Sequence[Stop],
    delays: Iterable[float] = (0.0, 10.0, 40.0),
    total_time: float = 1800.0,
    total_traffic_delay: float = 120.0,
) -> OptimizedRoute:
    points = tuple(
        RoutePoint(lat=24.7 + index * 0.001, lng=46.6, instruction="" if index else "Head north", traffic_delay_seconds=delay)
        for index, delay in enumerate(delays)
    )
    delivered = len({item.order.id for item in stops if item.order is not None})
    return OptimizedRoute(
        total_distance=18.4,
        total_time=total_time,
        total_traffic_delay=total_traffic_delay,
        stops=tuple(stops),
        route_points=points,
        orders_delivered=delivered,
    )


def simple_route(selected: Sequence[DeliveryOrder]) -> OptimizedRoute:
    """start, pickup/delivery per order, end."""
    stops = [stop(1, StopType.START)]
    for item in selected:
        stops.append(stop(len(stops) + 1, StopType.PICKUP, item))
        stops.append(stop(len(stops) + 1, StopType.DELIVERY, item))
    stops.append(stop(len(stops) + 1, StopType.END))
    return route_for(stops)


def _wire_location(point: GeoPoint) -> dict:
    return {"lat": point.lat, "lng": point.lng, "address": point.address}


def _wire_order(order: DeliveryOrder) -> dict:
    return {
        "id": order.id,
        "order_number": order.order_number,
        "origin": _wire_location(order.origin),
        "destination": _wire_location(order.destination),
        "description": order.description,
        "total_amount": order.amount,
        "priority": order.priority,
        "estimated_pickup_time": 5,
        "estimated_delivery_time": 3,
    }


def optimizer_body(selected: Sequence[DeliveryOrder]) -> dict:
    """A successful optimizer answer visiting every order (pickup then delivery)."""

    stops = [{"stop_number": 1, "stop_type": "start", "location": _wire_location(DEPOT)}]
    for item in selected:
        for stop_type, location in (("pickup", item.origin), ("delivery", item.destination)):
            stops.append(
                {
                    "stop_number": len(stops) + 1,
                    "stop_type": stop_type,
                    "order": _wire_order(item),
                    "location": _wire_location(location),
                    "distance_from_previous": 2.5,
                    "cumulative_distance": 2.5 * len(stops),
                    "estimated_time": 300,
                    "cumulative_time": 300 * len(stops),
                    "traffic_delay": 12,
                }
            )
    stops.append({"stop_number": len(stops) + 1, "stop_type": "end", "location": _wire_location(DEPOT)})
    return {
        "success": True,
        "optimized_route": {
            "total_distance": 12.5,
            "total_time": 2400,
            "total_traffic_delay": 180,
            "stops": stops,
            "route_points": [
                {"lat": 24.7136, "lng": 46.6753, "sequence": 0, "instruction": "Head east", "traffic_delay": 0},
                {"lat": 24.72, "lng": 46.68, "sequence": 1, "traffic_delay": 20},
            ],
            "orders_delivered": len(selected),
            "optimization_metrics": {"algorithm": "pickup_delivery_tsp", "traffic_enabled": True},
            "route_efficiency": 0.82,
        },
        "processing_time": 0.42,
        "traffic_conditions": {"overall_congestion": "moderate", "total_traffic_delay": 180, "traffic_enabled": True},
    }


# Fake collaborators -----------------------------------------------------------


class FakeOptimizer:
    def __init__(self, *outcomes: OptimizationOutcome) -> None:
        self.outcomes = list(outcomes)
        self.calls = []

    async def optimize(self, request):
        self.calls.append(request)
        if len(self.outcomes) > 1:
            return self.outcomes.pop(0)
        if self.outcomes:
            return self.outcomes[0]
        return OptimizationOutcome.success(simple_route(request.orders))


class FakePersister:
    def __init__(self, *outcomes: PersistOutcome) -> None:
        self.outcomes = list(outcomes)
        self.calls = []

    async def save(self, route, order_ids, organization_id, route_name=None, description=None):
        self.calls.append(
            {"route": route, "order_ids": tuple(order_ids), "organization_id": organization_id, "route_name": route_name}
        )
        if len(self.outcomes) > 1:
            return self.outcomes.pop(0)
        if self.outcomes:
            return self.outcomes[0]
        saved = SavedRoute(
            uuid=f"route-{len(self.calls)}",
            route_name=route_name or "Optimized route",
            route=route,
            order_ids=tuple(order_ids),
        )
        return PersistOutcome.success(saved)


class FakeAssigner:
    def __init__(self, *outcomes: AssignOutcome) -> None:
        self.outcomes = list(outcomes)
        self.calls = []

    async def assign(self, route_id, driver, start_time=None, end_time=None, notes=None):
        self.calls.append(
            {"route_id": route_id, "driver": driver, "start_time": start_time, "end_time": end_time, "notes": notes}
        )
        if len(self.outcomes) > 1:
            return self.outcomes.pop(0)
        if self.outcomes:
            return self.outcomes[0]
        return AssignOutcome(ok=True, start_time=start_time, end_time=end_time)


class FakeOrderPool:
    def __init__(self, pending: Sequence[DeliveryOrder] = (), error: Exception | None = None) -> None:
        self.pending = list(pending)
        self.error = error
        self.calls = []

    async def list_pending_orders(self, organization_id):
        self.calls.append(organization_id)
        if self.error is not None:
            raise self.error
        return list(self.pending)


class FakeRoster:
    def __init__(self, drivers: Sequence[Driver] = (), error: Exception | None = None) -> None:
        self.drivers = list(drivers)
        self.error = error
        self.calls = []

    async def list_active_drivers(self, organization_id):
        self.calls.append(organization_id)
        if self.error is not None:
            raise self.error
        return [item for item in self.drivers if item.is_active]


class FakeResolver:
    def __init__(self, address: str | None = "King Fahd Road, Riyadh") -> None:
        self.address = address
        self.calls = []

    async def resolve(self, lat, lng):
        self.calls.append((lat, lng))
        if self.address is None:
            return ResolvedLocation(GeoPoint(lat=lat, lng=lng, address=format_coordinates(lat, lng)), AddressSource.COORDINATES)
        return ResolvedLocation(GeoPoint(lat=lat, lng=lng, address=self.address), AddressSource.GEOCODER)
