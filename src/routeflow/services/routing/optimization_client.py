"""HTTP client for the multi-delivery optimization service."""

from __future__ import annotations

import logging
import time
from typing import Any, Sequence

import httpx
from pydantic import ValidationError

from ...config import settings
from ...models.domain import DeliveryOrder, GeoPoint
from ...schemas.optimization import (
    MultiDeliveryRequest,
    MultiDeliveryResponse,
    WireDeliveryOrder,
    WireLocation,
    WireStop,
)
from ..geospatial import clean_coordinate
from ..results import ErrorKind, OptimizationOutcome, RouteDataError, extract_error_message
from .models import OptimizationRequest, OptimizedRoute, RoutePoint, Stop, StopType

logger = logging.getLogger(__name__)


def _wire_location(point: GeoPoint) -> WireLocation:
    lat, lng = clean_coordinate(point.lat, point.lng)
    return WireLocation(lat=lat, lng=lng, address=point.address)


def _wire_order(order: DeliveryOrder) -> WireDeliveryOrder:
    return WireDeliveryOrder(
        id=order.id,
        order_number=order.order_number,
        origin=_wire_location(order.origin),
        destination=_wire_location(order.destination),
        description=order.description or "",
        total_amount=order.amount or 0.0,
        priority=order.priority or 1,
        estimated_pickup_time=order.estimated_pickup_minutes,
        estimated_delivery_time=order.estimated_delivery_minutes,
    )


def build_payload(request: OptimizationRequest) -> tuple[MultiDeliveryRequest, list[DeliveryOrder]]:
    """Translate a request into the optimizer wire format.

    Orders whose pickup or delivery coordinates are unusable are left out and
    returned separately so the caller can report them. Raises ``ValueError``
    when the start/end points are unusable or no order survives.
    """

    if request.start is None or request.end is None:
        raise ValueError("Start and end locations are required")

    try:
        start = _wire_location(request.start)
    except ValueError as exc:
        raise ValueError(f"Invalid start location: {exc}") from exc
    try:
        end = _wire_location(request.end)
    except ValueError as exc:
        raise ValueError(f"Invalid end location: {exc}") from exc

    wire_orders: list[WireDeliveryOrder] = []
    skipped: list[DeliveryOrder] = []
    for order in request.orders:
        try:
            wire_orders.append(_wire_order(order))
        except ValueError as exc:
            logger.warning(f"Skipping order {order.order_number} ({order.id}): {exc}")
            skipped.append(order)

    if not wire_orders:
        raise ValueError("None of the selected orders has valid pickup and delivery coordinates")

    policy = request.policy
    payload = MultiDeliveryRequest(
        driver_start_location=start,
        driver_end_location=end,
        delivery_orders=wire_orders,
        include_traffic=policy.include_traffic,
        departure_time=policy.departure_time,
        travel_mode=policy.travel_mode,
        route_type=policy.route_type,
        max_orders_per_trip=policy.max_orders_per_trip,
        force_return_to_end=policy.force_return_to_end,
        max_return_distance=policy.max_return_distance_km,
    )
    return payload, skipped


def _geo_point(location: WireLocation) -> GeoPoint:
    return GeoPoint(lat=location.lat, lng=location.lng, address=location.address or "")


def _build_stop(wire: WireStop, orders_by_id: dict[str, DeliveryOrder]) -> Stop:
    stop_type = StopType(wire.stop_type)
    order = None
    if stop_type.carries_order:
        if wire.order is None:
            raise RouteDataError(f"Stop {wire.stop_number} ({stop_type.value}) has no order attached")
        order = orders_by_id.get(wire.order.id)
        if order is None:
            raise RouteDataError(f"Stop {wire.stop_number} references unknown order '{wire.order.id}'")
    elif wire.order is not None:
        raise RouteDataError(f"Stop {wire.stop_number} ({stop_type.value}) must not carry an order")
    return Stop(
        stop_number=wire.stop_number,
        stop_type=stop_type,
        order=order,
        location=_geo_point(wire.location),
        distance_from_previous=wire.distance_from_previous,
        cumulative_distance=wire.cumulative_distance,
        estimated_time=wire.estimated_time,
        cumulative_time=wire.cumulative_time,
        traffic_delay_seconds=wire.traffic_delay,
    )


def parse_response(response: MultiDeliveryResponse, orders: Sequence[DeliveryOrder]) -> OptimizedRoute:
    """Build the domain route from a successful optimizer response.

    Raises ``RouteDataError`` when the stop sequence breaks the route invariants.
    """

    wire_route = response.optimized_route
    if wire_route is None:
        raise RouteDataError("Optimizer response has no optimized_route")

    orders_by_id = {order.id: order for order in orders}
    stops = tuple(
        _build_stop(wire, orders_by_id)
        for wire in sorted(wire_route.stops, key=lambda item: item.stop_number)
    )

    numbers = [stop.stop_number for stop in stops]
    if numbers != list(range(1, len(stops) + 1)):
        raise RouteDataError(f"Stop numbers must be contiguous from 1, got {numbers}")
    for stop_type in (StopType.START, StopType.END):
        count = sum(1 for stop in stops if stop.stop_type is stop_type)
        if count != 1:
            raise RouteDataError(f"Expected exactly one '{stop_type.value}' stop, found {count}")

    route_points = tuple(
        RoutePoint(
            lat=point.lat,
            lng=point.lng,
            instruction=point.instruction or "",
            traffic_delay_seconds=point.traffic_delay or 0.0,
            sequence=point.sequence,
            street_name=point.street_name,
            distance_from_previous=point.distance_from_previous,
        )
        for point in wire_route.route_points
    )

    traffic_conditions: dict[str, Any] = {}
    if response.traffic_conditions is not None:
        traffic_conditions = response.traffic_conditions.model_dump(exclude_none=True)
    metrics = wire_route.optimization_metrics

    return OptimizedRoute(
        total_distance=wire_route.total_distance,
        total_time=wire_route.total_time,
        total_traffic_delay=wire_route.total_traffic_delay,
        stops=stops,
        route_points=route_points,
        orders_delivered=wire_route.orders_delivered,
        route_efficiency=wire_route.route_efficiency,
        algorithm=metrics.algorithm if metrics else None,
        traffic_conditions=traffic_conditions,
    )


class OptimizationClient:
    """Calls the optimization service and normalizes every outcome.

    ``optimize`` never raises: local validation problems, transport errors,
    malformed payloads and invariant violations all come back as a failed
    ``OptimizationOutcome``. There is no automatic retry.
    """

    def __init__(
        self,
        base_url: str | None = None,
        path: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url or settings.optimizer_base_url
        self.path = path or settings.optimizer_path
        self.timeout = timeout if timeout is not None else settings.request_timeout_seconds
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=httpx.Timeout(self.timeout, connect=10.0))

    async def _post(self, url: str, body: dict) -> httpx.Response:
        if self._client is not None:
            return await self._client.post(url, json=body)
        async with self._get_client() as client:
            return await client.post(url, json=body)

    async def optimize(self, request: OptimizationRequest) -> OptimizationOutcome:
        try:
            return await self._optimize(request)
        except Exception as exc:
            logger.exception(f"Unexpected error during optimization: {exc}")
            return OptimizationOutcome.failure(f"Unexpected optimization error: {exc}")

    async def _optimize(self, request: OptimizationRequest) -> OptimizationOutcome:
        if not request.orders:
            return OptimizationOutcome.failure("Select at least one order to optimize", ErrorKind.VALIDATION)
        if request.start is None or request.end is None:
            return OptimizationOutcome.failure("Start and end locations are required", ErrorKind.VALIDATION)
        try:
            payload, skipped = build_payload(request)
        except ValueError as exc:
            return OptimizationOutcome.failure(str(exc), ErrorKind.VALIDATION)
        if not self.base_url:
            return OptimizationOutcome.failure("Optimization service is not configured", ErrorKind.SERVICE)

        url = f"{self.base_url}{self.path}"
        started = time.perf_counter()
        logger.info(
            f"Requesting optimization for {len(payload.delivery_orders)} orders "
            f"({len(skipped)} skipped for invalid coordinates)"
        )
        try:
            response = await self._post(url, payload.model_dump())
        except httpx.TimeoutException as exc:
            logger.warning(f"Optimization request timed out: {exc}")
            return OptimizationOutcome.failure("Optimization service did not respond in time")
        except httpx.HTTPError as exc:
            logger.warning(f"Optimization request failed: {exc}")
            return OptimizationOutcome.failure(f"Could not reach the optimization service: {exc}")

        try:
            data = response.json()
        except ValueError:
            data = None

        if response.status_code >= 400:
            reason = extract_error_message(data, response.text[:200] or "no details")
            logger.warning(f"Optimization service returned {response.status_code}: {reason}")
            return OptimizationOutcome.failure(
                f"Optimization service error {response.status_code}: {reason}"
            )
        if not isinstance(data, dict):
            return OptimizationOutcome.failure("Optimization service returned a non-JSON response")
        if data.get("success") is False:
            reason = extract_error_message(data, "Unknown optimization error")
            logger.warning(f"Optimization rejected: {reason}")
            return OptimizationOutcome.failure(reason)

        try:
            parsed = MultiDeliveryResponse.model_validate(data)
        except ValidationError as exc:
            logger.warning(f"Malformed optimization response: {exc.error_count()} validation errors")
            return OptimizationOutcome.failure("Optimization service returned a malformed route")

        try:
            route = parse_response(parsed, request.orders)
        except RouteDataError as exc:
            logger.error(f"Optimization response breaks route invariants: {exc}")
            return OptimizationOutcome.failure(str(exc), ErrorKind.DATA_QUALITY)

        elapsed = time.perf_counter() - started
        logger.info(
            f"Optimization finished in {elapsed:.2f}s: {len(route.stops)} stops, "
            f"{len(route.route_points)} route points, {route.orders_delivered} orders delivered"
        )
        return OptimizationOutcome.success(route)


async def check_health(base_url: str | None = None) -> bool:
    """Check that the optimization service answers HTTP requests.

    The service exposes no dedicated health endpoint, so any non-5xx answer from its
    root counts as healthy.
    """
    base = base_url or settings.optimizer_base_url
    if not base:
        return False
    try:
        async with httpx.AsyncClient(timeout=5.0) as client:
            response = await client.get(f"{base}/")
        return response.status_code < 500
    except httpx.HTTPError:
        return False
