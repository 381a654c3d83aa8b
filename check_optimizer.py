#!/usr/bin/env python3
"""Script to verify connectivity with the multi-delivery optimization service."""

import asyncio
import sys
from pathlib import Path

# Add src to path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root / "src"))

from routeflow.config import settings
from routeflow.models.domain import DeliveryOrder, GeoPoint
from routeflow.services.routing.models import OptimizationPolicy, OptimizationRequest
from routeflow.services.routing.optimization_client import OptimizationClient, check_health


def _sample_request() -> OptimizationRequest:
    # Two short deliveries around central Riyadh
    depot = GeoPoint(lat=24.713600, lng=46.675300, address="Depot")
    orders = (
        DeliveryOrder(
            id="probe-1",
            order_number="PROBE-1",
            origin=GeoPoint(lat=24.720000, lng=46.680000, address="Pickup 1"),
            destination=GeoPoint(lat=24.730000, lng=46.690000, address="Drop 1"),
        ),
        DeliveryOrder(
            id="probe-2",
            order_number="PROBE-2",
            origin=GeoPoint(lat=24.700000, lng=46.660000, address="Pickup 2"),
            destination=GeoPoint(lat=24.690000, lng=46.650000, address="Drop 2"),
        ),
    )
    return OptimizationRequest(start=depot, end=depot, orders=orders, policy=OptimizationPolicy.from_settings(settings))


async def run() -> int:
    print("=" * 60)
    print("Optimizer Connection Test")
    print("=" * 60)
    print()

    print("1. Checking optimizer configuration...")
    if not settings.optimizer_base_url:
        print("   [ERROR] OPTIMIZER_BASE_URL is not configured")
        print("   Please set ROUTEFLOW_OPTIMIZER_BASE_URL in your .env file")
        return 1
    print(f"   [OK] Optimizer URL: {settings.optimizer_base_url}{settings.optimizer_path}")
    print()

    print("2. Testing optimizer health check...")
    if not await check_health():
        print("   [ERROR] Optimizer service is not responding")
        return 1
    print("   [OK] Optimizer service is reachable!")
    print()

    print("3. Testing a sample optimization...")
    outcome = await OptimizationClient().optimize(_sample_request())
    if not outcome.ok:
        print(f"   [ERROR] Optimization failed ({outcome.kind.value}): {outcome.reason}")
        return 1
    route = outcome.route
    print(f"   [OK] {len(route.stops)} stops, {len(route.route_points)} route points")
    print(f"   [OK] Total distance {route.total_distance}, total time {route.total_time}")
    print()

    print("=" * 60)
    print("[SUCCESS] Optimizer is connected and working!")
    print("=" * 60)
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(run()))
