"""Client for the pending-order pool of an organization."""

from __future__ import annotations

import logging
import math
from typing import Any

from pydantic import ValidationError

from ...models.domain import DeliveryOrder, GeoPoint
from ...schemas.backend import BackendOrder
from ..backend import BackendClient, BackendError
from ..geospatial import coerce_coordinate

logger = logging.getLogger(__name__)


def _coerce_amount(value: Any) -> float:
    if value is None or value == "":
        return 0.0
    try:
        return float(str(value).replace(",", ""))
    except ValueError:
        return 0.0


def order_from_backend(record: BackendOrder, pickup_minutes: int = 5, delivery_minutes: int = 3) -> DeliveryOrder:
    """Convert a backend order record into a ``DeliveryOrder``.

    Missing coordinates become NaN so the optimization step can reject the
    order; a missing pickup falls back to the delivery point.
    """

    delivery_lat = coerce_coordinate(record.delivery_lat)
    delivery_lng = coerce_coordinate(record.delivery_lng)
    delivery = GeoPoint(
        lat=delivery_lat if delivery_lat is not None else math.nan,
        lng=delivery_lng if delivery_lng is not None else math.nan,
        address=record.delivery_address or "",
    )

    pickup_lat = coerce_coordinate(record.pickup_lat)
    pickup_lng = coerce_coordinate(record.pickup_lng)
    if pickup_lat is None or pickup_lng is None:
        pickup = GeoPoint(
            lat=delivery.lat,
            lng=delivery.lng,
            address=record.pickup_address or delivery.address,
        )
    else:
        pickup = GeoPoint(lat=pickup_lat, lng=pickup_lng, address=record.pickup_address or "")

    return DeliveryOrder(
        id=record.uuid,
        order_number=record.order_number,
        origin=pickup,
        destination=delivery,
        description=record.description or "",
        amount=_coerce_amount(record.total_amount),
        priority=record.priority or 1,
        estimated_pickup_minutes=pickup_minutes,
        estimated_delivery_minutes=delivery_minutes,
    )


class OrderPool:
    def __init__(self, backend: BackendClient, pickup_minutes: int = 5, delivery_minutes: int = 3) -> None:
        self.backend = backend
        self.pickup_minutes = pickup_minutes
        self.delivery_minutes = delivery_minutes

    async def list_pending_orders(self, organization_id: str) -> list[DeliveryOrder]:
        """Return the organization's pending orders; raises ``BackendError``."""

        body = await self.backend.request("GET", f"orders/organization/{organization_id}/pending")
        records = body.get("data") if isinstance(body, dict) else body
        if not isinstance(records, list):
            raise BackendError("Pending orders response has no order list", payload=body)

        orders: list[DeliveryOrder] = []
        for raw in records:
            try:
                record = BackendOrder.model_validate(raw)
            except ValidationError as exc:
                logger.warning(f"Ignoring malformed order record: {exc.error_count()} validation errors")
                continue
            orders.append(order_from_backend(record, self.pickup_minutes, self.delivery_minutes))
        logger.info(f"Loaded {len(orders)} pending orders for organization {organization_id}")
        return orders
