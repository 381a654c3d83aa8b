"""Serializers for persistable routes."""

from __future__ import annotations

import csv
import io

from ...models.domain import GeoPoint
from ..routing.models import PersistableRoute, SavedRoute


def _point_to_json(point: GeoPoint) -> dict:
    return {"lat": point.lat, "lon": point.lng, "name": point.address}


def persistable_route_to_json(route: PersistableRoute) -> dict:
    return {
        "origin": _point_to_json(route.origin),
        "destination": _point_to_json(route.destination),
        "waypoints": [
            {
                "lat": waypoint.lat,
                "lon": waypoint.lon,
                "name": waypoint.name,
                "waypoint_type": waypoint.waypoint_type.value,
                "waypoint_index": waypoint.waypoint_index,
                "order_id": waypoint.order_id,
            }
            for waypoint in route.waypoints
        ],
        "points": [
            {
                "lat": point.lat,
                "lon": point.lon,
                "name": point.name,
                "traffic_delay": point.traffic_delay,
                "speed": point.speed,
                "congestion_level": point.congestion_level.value,
                "waypoint_type": point.waypoint_type,
                "waypoint_index": point.waypoint_index,
            }
            for point in route.route_points
        ],
        "visit_order": [
            {
                "name": entry.name,
                "waypoint_index": entry.waypoint_index,
                "order_id": entry.order_id,
            }
            for entry in route.visit_order
        ],
        "summary": {
            "total_time": route.summary.total_time,
            "total_distance": route.summary.total_distance,
            "traffic_delay": route.summary.traffic_delay,
            "base_time": route.summary.base_time,
            "traffic_time": route.summary.traffic_time,
            "fuel_consumption": route.summary.fuel_consumption,
        },
        "traffic_conditions": dict(route.traffic_conditions),
    }


def saved_route_to_json(saved: SavedRoute) -> dict:
    return {
        "uuid": saved.uuid,
        "route_name": saved.route_name,
        "description": saved.description,
        "status": saved.status.value,
        "order_ids": list(saved.order_ids),
        "quality_issues": list(saved.route.quality_issues),
        **persistable_route_to_json(saved.route),
    }


def visit_order_to_csv(route: PersistableRoute) -> str:
    buffer = io.StringIO()
    fieldnames = [
        "waypoint_index",
        "order_id",
        "waypoint_type",
        "name",
        "lat",
        "lon",
    ]
    writer = csv.DictWriter(buffer, fieldnames=fieldnames)
    writer.writeheader()
    for waypoint in route.waypoints:
        writer.writerow(
            {
                "waypoint_index": waypoint.waypoint_index,
                "order_id": waypoint.order_id,
                "waypoint_type": waypoint.waypoint_type.value,
                "name": waypoint.name,
                "lat": waypoint.lat,
                "lon": waypoint.lon,
            }
        )
    return buffer.getvalue()
