"""Wire schemas of the multi-delivery optimization service."""

from __future__ import annotations

from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class WireLocation(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    address: Optional[str] = ""


class WireDeliveryOrder(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    order_number: str
    origin: WireLocation
    destination: WireLocation
    description: Optional[str] = ""
    total_amount: float = 0.0
    priority: int = 1
    estimated_pickup_time: int = 5
    estimated_delivery_time: int = 3


class MultiDeliveryRequest(BaseModel):
    driver_start_location: WireLocation
    driver_end_location: WireLocation
    delivery_orders: List[WireDeliveryOrder]
    include_traffic: bool = True
    departure_time: str = "now"
    travel_mode: str = "car"
    route_type: str = "fastest"
    max_orders_per_trip: int = 10
    force_return_to_end: bool = False
    max_return_distance: float = 0.0


class WireStop(BaseModel):
    model_config = ConfigDict(extra="ignore")

    stop_number: int = Field(..., ge=1)
    stop_type: Literal["start", "pickup", "delivery", "end"]
    order: Optional[WireDeliveryOrder] = None
    location: WireLocation
    distance_from_previous: float = 0.0
    cumulative_distance: float = 0.0
    estimated_time: float = 0.0
    cumulative_time: float = 0.0
    traffic_delay: float = 0.0


class WireRoutePoint(BaseModel):
    model_config = ConfigDict(extra="ignore")

    lat: float
    lng: float
    sequence: Optional[int] = None
    distance_from_previous: Optional[float] = None
    instruction: Optional[str] = None
    street_name: Optional[str] = None
    traffic_delay: Optional[float] = 0.0


class WireOptimizationMetrics(BaseModel):
    model_config = ConfigDict(extra="ignore")

    algorithm: Optional[str] = None
    locations_optimized: Optional[int] = None
    traffic_enabled: Optional[bool] = None
    orders_processed: Optional[int] = None


class WireOptimizedRoute(BaseModel):
    model_config = ConfigDict(extra="ignore")

    total_distance: float = Field(..., ge=0)
    total_time: float = Field(..., ge=0)
    total_traffic_delay: float = 0.0
    stops: List[WireStop]
    route_points: List[WireRoutePoint] = Field(default_factory=list)
    orders_delivered: int = 0
    optimization_metrics: Optional[WireOptimizationMetrics] = None
    route_efficiency: Optional[float] = None


class WireTrafficConditions(BaseModel):
    model_config = ConfigDict(extra="allow")

    overall_congestion: Optional[str] = None
    total_traffic_delay: Optional[float] = None
    traffic_enabled: Optional[bool] = None


class MultiDeliveryResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    success: bool = True
    optimized_route: Optional[WireOptimizedRoute] = None
    processing_time: Optional[float] = None
    traffic_conditions: Optional[WireTrafficConditions] = None
    error: Optional[str] = None
    detail: Any = None
    message: Optional[str] = None
