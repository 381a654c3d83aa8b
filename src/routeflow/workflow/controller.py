"""Runs workflow effects against the collaborators and feeds results back."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from ..config import settings
from ..models.domain import GeoPoint
from ..persistence.filesystem import FileStorage
from ..services.backend import BackendError
from ..services.drivers.roster import DriverRoster
from ..services.geocoding import LocationResolver
from ..services.geospatial import is_valid_coordinate
from ..services.orders.pool import OrderPool
from ..services.outputs.route_formatter import saved_route_to_json, visit_order_to_csv
from ..services.results import PersistOutcome
from ..services.routing.assigner import DriverAssigner
from ..services.routing.models import OptimizationPolicy, SavedRoute
from ..services.routing.optimization_client import OptimizationClient
from ..services.routing.persister import RoutePersister
from ..services.routing.transformer import CongestionThresholds
from .state import (
    Action,
    Advance,
    AssignDriver,
    AssignFinished,
    DriversLoaded,
    Effect,
    FetchDrivers,
    FetchOrders,
    GoBack,
    LoadOrders,
    Notification,
    Notify,
    OptimizationFinished,
    OrdersLoaded,
    PickLocation,
    RunOptimization,
    SaveFinished,
    SaveRoute,
    SelectDriver,
    SelectOrders,
    SetEndLocation,
    SetPolicy,
    SetSchedule,
    SetStartLocation,
    ToggleOrder,
    WorkflowState,
    reduce,
)

logger = logging.getLogger(__name__)

COMPLETION_ACTIONS = (OptimizationFinished, SaveFinished, AssignFinished)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def initial_state(organization_id: str, organization_name: str = "") -> WorkflowState:
    return WorkflowState(
        organization_id=organization_id,
        organization_name=organization_name,
        policy=OptimizationPolicy.from_settings(settings),
        thresholds=CongestionThresholds.from_settings(settings),
        route_speed_kmh=settings.default_route_speed_kmh,
        max_notes_length=settings.max_driver_notes_length,
    )


class WorkflowController:
    """Owns one route creation workflow.

    ``dispatch`` applies an action through the reducer and runs the resulting
    effects. With ``wait=False`` remote calls are scheduled as tasks and the
    optimistic state is returned immediately; ``settle`` waits for them.
    """

    def __init__(
        self,
        organization_id: str,
        *,
        order_pool: OrderPool,
        driver_roster: DriverRoster,
        optimizer: OptimizationClient,
        persister: RoutePersister,
        assigner: DriverAssigner,
        resolver: LocationResolver | None = None,
        storage: FileStorage | None = None,
        organization_name: str = "",
        clock: Callable[[], datetime] = _utcnow,
        state: WorkflowState | None = None,
    ) -> None:
        self.state = state or initial_state(organization_id, organization_name)
        self.order_pool = order_pool
        self.driver_roster = driver_roster
        self.optimizer = optimizer
        self.persister = persister
        self.assigner = assigner
        self.resolver = resolver or LocationResolver()
        self.storage = storage
        self.clock = clock
        self.notifications: list[Notification] = []
        self._tasks: set[asyncio.Task] = set()

    # Core loop ---------------------------------------------------------------

    async def dispatch(self, action: Action, wait: bool = True) -> WorkflowState:
        previous = self.state
        transition = reduce(previous, action)
        if isinstance(action, COMPLETION_ACTIONS) and transition.state is previous:
            logger.info(f"Discarding stale {type(action).__name__} (ticket {action.ticket})")
        if transition.state.step is not previous.step:
            logger.info(f"Workflow for {previous.organization_id}: {previous.step.value} -> {transition.state.step.value}")
        self.state = transition.state

        for effect in transition.effects:
            if isinstance(effect, Notify):
                self.notifications.append(effect.notification)
                continue
            if wait:
                await self._run(effect)
            else:
                task = asyncio.create_task(self._run(effect))
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)
        return self.state

    async def _run(self, effect: Effect) -> None:
        completion = await self._execute(effect)
        await self.dispatch(completion, wait=True)

    async def settle(self) -> WorkflowState:
        """Wait until no scheduled effect is outstanding."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks))
        return self.state

    async def _execute(self, effect: Effect) -> Action:
        if isinstance(effect, RunOptimization):
            outcome = await self.optimizer.optimize(effect.request)
            return OptimizationFinished(ticket=effect.ticket, outcome=outcome)
        if isinstance(effect, SaveRoute):
            return SaveFinished(ticket=effect.ticket, outcome=await self._save(effect))
        if isinstance(effect, AssignDriver):
            outcome = await self.assigner.assign(
                effect.route_id,
                effect.driver,
                start_time=effect.start_time,
                end_time=effect.end_time,
                notes=effect.notes or None,
            )
            return AssignFinished(ticket=effect.ticket, outcome=outcome)
        if isinstance(effect, FetchOrders):
            try:
                orders = await self.order_pool.list_pending_orders(effect.organization_id)
            except BackendError as exc:
                logger.warning(f"Loading pending orders failed: {exc}")
                return OrdersLoaded(preselect_all=effect.preselect_all, error=str(exc))
            return OrdersLoaded(orders=tuple(orders), preselect_all=effect.preselect_all)
        if isinstance(effect, FetchDrivers):
            try:
                drivers = await self.driver_roster.list_active_drivers(effect.organization_id)
            except BackendError as exc:
                logger.warning(f"Loading the driver roster failed: {exc}")
                return DriversLoaded(error=str(exc))
            return DriversLoaded(drivers=tuple(drivers))
        raise TypeError(f"Unknown workflow effect: {effect!r}")

    async def _save(self, effect: SaveRoute) -> PersistOutcome:
        for issue in effect.route.quality_issues:
            logger.warning(f"Route data problem: {issue}")
        route_name = None
        if effect.organization_name:
            route_name = f"Deliveries {effect.organization_name} - {self.clock().date().isoformat()}"
        outcome = await self.persister.save(
            effect.route,
            effect.order_ids,
            effect.organization_id,
            route_name=route_name,
        )
        if outcome.ok and outcome.saved_route is not None and self.storage is not None:
            await self._archive(outcome.saved_route)
        return outcome

    async def _archive(self, saved: SavedRoute) -> None:
        try:
            directory = await asyncio.to_thread(self._write_archive, saved)
        except OSError as exc:
            logger.error(f"Archiving route {saved.uuid} failed: {exc}")
            return
        logger.info(f"Archived route {saved.uuid} to {directory}")

    def _write_archive(self, saved: SavedRoute) -> Path:
        directory = self.storage.make_run_directory(prefix="route")
        self.storage.write_json(directory / "route.json", saved_route_to_json(saved))
        self.storage.write_csv(directory / "visit_order.csv", visit_order_to_csv(saved.route))
        return directory

    # Convenience API ---------------------------------------------------------

    async def start(self, preselect_all: bool = True) -> WorkflowState:
        return await self.dispatch(LoadOrders(preselect_all=preselect_all))

    async def select_orders(self, order_ids) -> WorkflowState:
        return await self.dispatch(SelectOrders(tuple(order_ids)))

    async def toggle_order(self, order_id: str) -> WorkflowState:
        return await self.dispatch(ToggleOrder(order_id))

    async def _locate(self, lat: float, lng: float, address: Optional[str]) -> GeoPoint:
        # Out-of-range points are passed through so the reducer can reject them.
        if address or not is_valid_coordinate(lat, lng):
            return GeoPoint(lat=lat, lng=lng, address=address or "")
        resolved = await self.resolver.resolve(lat, lng)
        return resolved.point

    async def set_start_location(self, lat: float, lng: float, address: Optional[str] = None) -> WorkflowState:
        return await self.dispatch(SetStartLocation(await self._locate(lat, lng, address)))

    async def set_end_location(self, lat: float, lng: float, address: Optional[str] = None) -> WorkflowState:
        return await self.dispatch(SetEndLocation(await self._locate(lat, lng, address)))

    async def pick_location(self, lat: float, lng: float) -> WorkflowState:
        return await self.dispatch(PickLocation(await self._locate(lat, lng, None)))

    async def set_policy(
        self, force_return_to_end: Optional[bool] = None, max_return_distance_km: Optional[float] = None
    ) -> WorkflowState:
        return await self.dispatch(SetPolicy(force_return_to_end, max_return_distance_km))

    async def select_driver(self, driver_id: str) -> WorkflowState:
        return await self.dispatch(SelectDriver(driver_id))

    async def set_schedule(
        self, start_time: Optional[datetime] = None, end_time: Optional[datetime] = None, notes: str = ""
    ) -> WorkflowState:
        return await self.dispatch(SetSchedule(start_time, end_time, notes))

    async def refresh_drivers(self) -> WorkflowState:
        completion = await self._execute(FetchDrivers(self.state.organization_id))
        return await self.dispatch(completion)

    async def advance(self, wait: bool = True) -> WorkflowState:
        return await self.dispatch(Advance(), wait=wait)

    async def back(self) -> WorkflowState:
        return await self.dispatch(GoBack())

    def drain_notifications(self) -> list[Notification]:
        drained, self.notifications = self.notifications, []
        return drained
