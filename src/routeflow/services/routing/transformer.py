"""Reshape an optimizer result into the record stored by the routes backend.

The optimizer returns one ordered list of stops (start, pickups, deliveries,
end) and a much finer list of route points. The routes backend wants three
aligned views of that result:

* ``waypoints``: only the stops bound to an order, re-indexed from zero in
  visiting order (the backend indexes order-bearing stops only);
* ``route_points``: every geometric sample, tagged with a congestion bucket;
* ``visit_order``: the same order-bearing stops paired with their order id.

Everything here is pure; the same input always yields the same output.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..results import RouteDataError
from .models import (
    AnnotatedRoutePoint,
    CongestionLevel,
    OptimizedRoute,
    PersistableRoute,
    RoutePoint,
    RouteSummary,
    Stop,
    StopType,
    VisitEntry,
    Waypoint,
)

DEFAULT_ROUTE_SPEED_KMH = 35.0


@dataclass(frozen=True, slots=True)
class CongestionThresholds:
    """Lower bounds (exclusive, seconds of delay) of each congestion bucket.

    A delay must be strictly greater than a bound to enter its bucket, so a
    delay of exactly 5 seconds is still ``free_flow``.
    """

    light: float = 5.0
    moderate: float = 15.0
    heavy: float = 30.0
    severe: float = 60.0

    def __post_init__(self) -> None:
        if not (0 <= self.light <= self.moderate <= self.heavy <= self.severe):
            raise ValueError(
                "Congestion thresholds must be non-negative and ascending "
                f"(got light={self.light}, moderate={self.moderate}, heavy={self.heavy}, severe={self.severe})"
            )

    @classmethod
    def from_settings(cls, settings) -> CongestionThresholds:
        return cls(
            light=settings.congestion_light_seconds,
            moderate=settings.congestion_moderate_seconds,
            heavy=settings.congestion_heavy_seconds,
            severe=settings.congestion_severe_seconds,
        )


DEFAULT_CONGESTION_THRESHOLDS = CongestionThresholds()


def classify_congestion(
    traffic_delay_seconds: float | None,
    thresholds: CongestionThresholds = DEFAULT_CONGESTION_THRESHOLDS,
) -> CongestionLevel:
    delay = traffic_delay_seconds or 0.0
    if delay > thresholds.severe:
        return CongestionLevel.SEVERE
    if delay > thresholds.heavy:
        return CongestionLevel.HEAVY
    if delay > thresholds.moderate:
        return CongestionLevel.MODERATE
    if delay > thresholds.light:
        return CongestionLevel.LIGHT
    return CongestionLevel.FREE_FLOW


def _single_stop(stops: tuple[Stop, ...], stop_type: StopType) -> Stop:
    matches = [stop for stop in stops if stop.stop_type is stop_type]
    if len(matches) != 1:
        raise RouteDataError(
            f"Optimized route must contain exactly one '{stop_type.value}' stop, found {len(matches)}"
        )
    return matches[0]


def build_waypoints(route: OptimizedRoute) -> tuple[Waypoint, ...]:
    return tuple(
        Waypoint(
            lat=stop.location.lat,
            lon=stop.location.lng,
            name=stop.location.address,
            waypoint_type=stop.stop_type,
            waypoint_index=index,
            order_id=stop.order.id,
        )
        for index, stop in enumerate(route.order_stops)
    )


def build_visit_order(route: OptimizedRoute) -> tuple[VisitEntry, ...]:
    return tuple(
        VisitEntry(name=stop.location.address, waypoint_index=index, order_id=stop.order.id)
        for index, stop in enumerate(route.order_stops)
    )


def annotate_route_points(
    points: tuple[RoutePoint, ...],
    thresholds: CongestionThresholds = DEFAULT_CONGESTION_THRESHOLDS,
    speed_kmh: float = DEFAULT_ROUTE_SPEED_KMH,
) -> tuple[AnnotatedRoutePoint, ...]:
    return tuple(
        AnnotatedRoutePoint(
            lat=point.lat,
            lon=point.lng,
            name=point.instruction or f"Point {index + 1}",
            traffic_delay=point.traffic_delay_seconds or 0.0,
            speed=speed_kmh,
            congestion_level=classify_congestion(point.traffic_delay_seconds, thresholds),
        )
        for index, point in enumerate(points)
    )


def build_summary(route: OptimizedRoute) -> tuple[RouteSummary, list[str]]:
    issues: list[str] = []
    base_time = route.total_time - route.total_traffic_delay
    if base_time < 0:
        issues.append(
            f"Traffic delay ({route.total_traffic_delay}s) exceeds total time ({route.total_time}s); "
            "base time clamped to 0"
        )
        base_time = 0.0
    summary = RouteSummary(
        total_time=route.total_time,
        total_distance=route.total_distance,
        traffic_delay=route.total_traffic_delay,
        base_time=base_time,
        traffic_time=route.total_traffic_delay,
    )
    return summary, issues


def transform_route(
    route: OptimizedRoute,
    thresholds: CongestionThresholds = DEFAULT_CONGESTION_THRESHOLDS,
    speed_kmh: float = DEFAULT_ROUTE_SPEED_KMH,
) -> PersistableRoute:
    """Convert an optimized route into its persistable form.

    Raises ``RouteDataError`` when the route lacks its start or end stop.
    """

    origin = _single_stop(route.stops, StopType.START).location
    destination = _single_stop(route.stops, StopType.END).location

    waypoints = build_waypoints(route)
    visit_order = build_visit_order(route)
    summary, issues = build_summary(route)

    return PersistableRoute(
        origin=origin,
        destination=destination,
        waypoints=waypoints,
        route_points=annotate_route_points(route.route_points, thresholds, speed_kmh),
        visit_order=visit_order,
        summary=summary,
        traffic_conditions=dict(route.traffic_conditions),
        quality_issues=tuple(issues),
    )
