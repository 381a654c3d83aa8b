"""Submit a persistable route to the routes backend."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Sequence

from ..backend import BackendClient, BackendError
from ..outputs.route_formatter import persistable_route_to_json
from ..results import ErrorKind, PersistOutcome
from .models import PersistableRoute, RouteStatus, SavedRoute

logger = logging.getLogger(__name__)

ROUTE_ID_KEYS = ("route_id", "uuid", "routeId", "id")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def extract_route_id(body: Any) -> str | None:
    candidates = []
    if isinstance(body, dict):
        if isinstance(body.get("data"), dict):
            candidates.append(body["data"])
        candidates.append(body)
    for candidate in candidates:
        for key in ROUTE_ID_KEYS:
            value = candidate.get(key)
            if value not in (None, ""):
                return str(value)
    return None


def build_route_payload(
    route: PersistableRoute,
    order_ids: Sequence[str],
    organization_id: str,
    route_name: str,
    description: str,
) -> dict:
    """Assemble the body of ``POST routes``.

    Every selected order is listed once, in the order its first stop is
    visited; orders the optimizer left out go last.
    """
    serialized = persistable_route_to_json(route)

    first_visit: dict[str, int] = {}
    for entry in route.visit_order:
        first_visit.setdefault(entry.order_id, entry.waypoint_index)
    ordered_ids = sorted(
        dict.fromkeys(order_ids),
        key=lambda order_id: (order_id not in first_visit, first_visit.get(order_id, 0)),
    )
    orders = [
        {
            "order_id": order_id,
            "visit_order": position,
            "waypoint_index": first_visit.get(order_id),
        }
        for position, order_id in enumerate(ordered_ids, start=1)
    ]

    return {
        "organization_id": organization_id,
        "route_name": route_name,
        "description": description,
        "origin": serialized["origin"],
        "destination": serialized["destination"],
        "waypoints": serialized["waypoints"],
        "primary_route": {
            "summary": serialized["summary"],
            "points": serialized["points"],
            "visit_order": serialized["visit_order"],
        },
        "traffic_conditions": serialized["traffic_conditions"],
        "orders": orders,
        "status": RouteStatus.PLANNED.value,
        "total_orders": len(ordered_ids),
        "total_distance": route.summary.total_distance,
        "total_time": route.summary.total_time,
        "traffic_delay": route.summary.traffic_delay,
    }


class RoutePersister:
    """Creates one saved route per successful call; never raises."""

    def __init__(self, backend: BackendClient, clock: Callable[[], datetime] = _utcnow) -> None:
        self.backend = backend
        self.clock = clock

    async def save(
        self,
        route: PersistableRoute,
        order_ids: Sequence[str],
        organization_id: str,
        route_name: str | None = None,
        description: str | None = None,
    ) -> PersistOutcome:
        if not organization_id:
            return PersistOutcome.failure("Organization is required to save a route", ErrorKind.VALIDATION)
        if not order_ids:
            return PersistOutcome.failure("At least one order is required to save a route", ErrorKind.VALIDATION)

        name = route_name or f"Optimized route {self.clock().date().isoformat()}"
        summary = description or f"Optimized route with {len(order_ids)} orders"
        payload = build_route_payload(route, order_ids, organization_id, name, summary)

        try:
            body = await self.backend.request("POST", "routes", json=payload)
        except BackendError as exc:
            logger.warning(f"Saving route '{name}' failed: {exc}")
            return PersistOutcome.failure(str(exc))
        except Exception as exc:
            logger.exception(f"Unexpected error saving route '{name}': {exc}")
            return PersistOutcome.failure(f"Unexpected error saving the route: {exc}")

        route_id = extract_route_id(body)
        if not route_id:
            logger.error("Routes backend accepted the route but returned no identifier")
            return PersistOutcome.failure("The routes backend returned no route identifier")

        logger.info(f"Saved route {route_id} ('{name}') with {len(order_ids)} orders")
        saved = SavedRoute(
            uuid=route_id,
            route_name=name,
            route=route,
            order_ids=tuple(order_ids),
            status=RouteStatus.PLANNED,
            description=summary,
        )
        return PersistOutcome.success(saved)
