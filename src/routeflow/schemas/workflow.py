"""Workflow API request/response schemas."""

from __future__ import annotations

import math
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ..models.domain import DeliveryOrder, Driver, GeoPoint
from ..services.outputs.route_formatter import persistable_route_to_json
from ..services.routing.models import OptimizedRoute
from ..workflow.state import Notification, WorkflowState


class CreateWorkflowRequest(BaseModel):
    organization_id: str = Field(..., min_length=1)
    organization_name: str = ""
    preselect_all: bool = Field(default=True, description="Select every pending order once they are loaded.")


class OrderSelectionRequest(BaseModel):
    order_ids: List[str]


class LocationRequest(BaseModel):
    lat: float
    lng: float
    address: Optional[str] = Field(default=None, description="Reverse geocoded when omitted.")


class PolicyRequest(BaseModel):
    force_return_to_end: Optional[bool] = None
    max_return_distance_km: Optional[float] = Field(default=None, ge=0)


class AssignmentRequest(BaseModel):
    driver_id: str
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    notes: str = ""


class LocationModel(BaseModel):
    lat: Optional[float]
    lng: Optional[float]
    address: str


class OrderModel(BaseModel):
    id: str
    order_number: str
    description: str
    amount: float
    priority: int
    origin: LocationModel
    destination: LocationModel
    selected: bool


class DriverModel(BaseModel):
    id: str
    name: str
    status: str
    email: Optional[str] = None
    phone: Optional[str] = None


class StopModel(BaseModel):
    stop_number: int
    stop_type: str
    order_id: Optional[str]
    location: LocationModel
    distance_from_previous: float
    cumulative_distance: float
    estimated_time: float
    cumulative_time: float
    traffic_delay: float


class OptimizedRouteModel(BaseModel):
    total_distance: float
    total_time: float
    total_traffic_delay: float
    orders_delivered: int
    route_efficiency: Optional[float] = None
    algorithm: Optional[str] = None
    route_point_count: int
    stops: List[StopModel]


class NotificationModel(BaseModel):
    level: str
    title: str
    message: str
    duration_ms: int


class ErrorModel(BaseModel):
    step: str
    kind: str
    reason: str


class WorkflowView(BaseModel):
    workflow_id: str
    organization_id: str
    step: str
    orders_loaded: bool
    orders: List[OrderModel]
    selected_order_ids: List[str]
    start: Optional[LocationModel] = None
    end: Optional[LocationModel] = None
    policy: Dict[str, Any]
    route: Optional[OptimizedRouteModel] = None
    persistable_route: Optional[dict] = None
    saved: bool
    route_id: Optional[str] = None
    route_status: Optional[str] = None
    drivers: List[DriverModel]
    driver_id: Optional[str] = None
    schedule_start: Optional[datetime] = None
    schedule_end: Optional[datetime] = None
    notes: str
    optimizing: bool
    saving: bool
    assigning: bool
    can_advance: bool
    can_go_back: bool
    completed: bool
    last_error: Optional[ErrorModel] = None
    notifications: List[NotificationModel] = Field(default_factory=list)


def _location(point: Optional[GeoPoint]) -> Optional[LocationModel]:
    if point is None:
        return None
    # Orders with missing coordinates carry NaN, which JSON cannot encode.
    return LocationModel(
        lat=point.lat if math.isfinite(point.lat) else None,
        lng=point.lng if math.isfinite(point.lng) else None,
        address=point.address,
    )


def _order(order: DeliveryOrder, selected: set[str]) -> OrderModel:
    return OrderModel(
        id=order.id,
        order_number=order.order_number,
        description=order.description,
        amount=order.amount,
        priority=order.priority,
        origin=_location(order.origin),
        destination=_location(order.destination),
        selected=order.id in selected,
    )


def driver_model(driver: Driver) -> DriverModel:
    return DriverModel(
        id=driver.id,
        name=driver.name,
        status=driver.status.value,
        email=driver.email,
        phone=driver.phone,
    )


def _route(route: OptimizedRoute) -> OptimizedRouteModel:
    return OptimizedRouteModel(
        total_distance=route.total_distance,
        total_time=route.total_time,
        total_traffic_delay=route.total_traffic_delay,
        orders_delivered=route.orders_delivered,
        route_efficiency=route.route_efficiency,
        algorithm=route.algorithm,
        route_point_count=len(route.route_points),
        stops=[
            StopModel(
                stop_number=stop.stop_number,
                stop_type=stop.stop_type.value,
                order_id=stop.order.id if stop.order else None,
                location=_location(stop.location),
                distance_from_previous=stop.distance_from_previous,
                cumulative_distance=stop.cumulative_distance,
                estimated_time=stop.estimated_time,
                cumulative_time=stop.cumulative_time,
                traffic_delay=stop.traffic_delay_seconds,
            )
            for stop in route.stops
        ],
    )


def build_workflow_view(
    workflow_id: str,
    state: WorkflowState,
    notifications: Optional[List[Notification]] = None,
) -> WorkflowView:
    selected = set(state.selected_order_ids)
    error = None
    if state.last_error is not None:
        error = ErrorModel(
            step=state.last_error.step.value,
            kind=state.last_error.kind.value,
            reason=state.last_error.reason,
        )
    policy = state.policy
    return WorkflowView(
        workflow_id=workflow_id,
        organization_id=state.organization_id,
        step=state.step.value,
        orders_loaded=state.orders_loaded,
        orders=[_order(order, selected) for order in state.available_orders],
        selected_order_ids=list(state.selected_order_ids),
        start=_location(state.start),
        end=_location(state.end),
        policy={
            "include_traffic": policy.include_traffic,
            "departure_time": policy.departure_time,
            "travel_mode": policy.travel_mode,
            "route_type": policy.route_type,
            "max_orders_per_trip": policy.max_orders_per_trip,
            "force_return_to_end": policy.force_return_to_end,
            "max_return_distance_km": policy.max_return_distance_km,
        },
        route=_route(state.route) if state.route is not None else None,
        persistable_route=persistable_route_to_json(state.persistable) if state.persistable is not None else None,
        saved=state.saved,
        route_id=state.route_id,
        route_status=state.saved_route.status.value if state.saved_route is not None else None,
        drivers=[driver_model(driver) for driver in state.drivers],
        driver_id=state.driver_id,
        schedule_start=state.schedule_start,
        schedule_end=state.schedule_end,
        notes=state.notes,
        optimizing=state.optimizing,
        saving=state.saving,
        assigning=state.assigning,
        can_advance=state.can_advance,
        can_go_back=state.can_go_back,
        completed=state.completed,
        last_error=error,
        notifications=[
            NotificationModel(
                level=item.level.value,
                title=item.title,
                message=item.message,
                duration_ms=item.duration_ms,
            )
            for item in notifications or []
        ],
    )
