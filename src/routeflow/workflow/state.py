"""Route creation workflow as an explicit state record and a pure reducer.

``reduce(state, action)`` never performs I/O. It returns the next state and
a tuple of effects (remote calls to make, notifications to show). The
controller runs the effects and feeds their completions back in as actions.

Every remote call launched by the reducer carries a ticket. A completion is
applied only while its ticket is still the pending one; anything else is a
stale response (the user navigated away, or a newer call replaced it) and is
dropped.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Optional, Union

from ..models.domain import DeliveryOrder, Driver, GeoPoint
from ..services.geospatial import is_valid_coordinate
from ..services.results import (
    AssignOutcome,
    ErrorKind,
    OptimizationOutcome,
    PersistOutcome,
    RouteDataError,
)
from ..services.routing.models import (
    OptimizationPolicy,
    OptimizationRequest,
    OptimizedRoute,
    PersistableRoute,
    SavedRoute,
)
from ..services.routing.transformer import (
    DEFAULT_CONGESTION_THRESHOLDS,
    DEFAULT_ROUTE_SPEED_KMH,
    CongestionThresholds,
    transform_route,
)

VALIDATION_TOAST_MS = 3000
SUCCESS_TOAST_MS = 5000
OPTIMIZATION_ERROR_TOAST_MS = 5000
SAVE_ERROR_TOAST_MS = 6000


class Step(str, Enum):
    SELECT = "select"
    LOCATIONS = "locations"
    REVIEW = "review"
    ASSIGN = "assign"

    @property
    def previous(self) -> Optional[Step]:
        index = STEP_ORDER.index(self)
        return STEP_ORDER[index - 1] if index > 0 else None


STEP_ORDER = (Step.SELECT, Step.LOCATIONS, Step.REVIEW, Step.ASSIGN)


class CallKind(str, Enum):
    OPTIMIZE = "optimize"
    SAVE = "save"
    ASSIGN = "assign"


class NotificationLevel(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass(frozen=True, slots=True)
class Notification:
    level: NotificationLevel
    title: str
    message: str
    duration_ms: int = SUCCESS_TOAST_MS


@dataclass(frozen=True, slots=True)
class StepError:
    step: Step
    kind: ErrorKind
    reason: str


@dataclass(frozen=True, slots=True)
class PendingCall:
    ticket: int
    kind: CallKind


@dataclass(frozen=True, slots=True)
class WorkflowState:
    organization_id: str
    organization_name: str = ""
    step: Step = Step.SELECT
    available_orders: tuple[DeliveryOrder, ...] = ()
    orders_loaded: bool = False
    selected_order_ids: tuple[str, ...] = ()
    start: Optional[GeoPoint] = None
    end: Optional[GeoPoint] = None
    policy: OptimizationPolicy = field(default_factory=OptimizationPolicy)
    route: Optional[OptimizedRoute] = None
    persistable: Optional[PersistableRoute] = None
    saved: bool = False
    route_id: Optional[str] = None
    saved_route: Optional[SavedRoute] = None
    drivers: tuple[Driver, ...] = ()
    driver_id: Optional[str] = None
    schedule_start: Optional[datetime] = None
    schedule_end: Optional[datetime] = None
    notes: str = ""
    completed: bool = False
    pending: Optional[PendingCall] = None
    next_ticket: int = 1
    last_error: Optional[StepError] = None
    thresholds: CongestionThresholds = DEFAULT_CONGESTION_THRESHOLDS
    route_speed_kmh: float = DEFAULT_ROUTE_SPEED_KMH
    max_notes_length: int = 500

    @property
    def selected_orders(self) -> tuple[DeliveryOrder, ...]:
        selected = set(self.selected_order_ids)
        return tuple(order for order in self.available_orders if order.id in selected)

    @property
    def selected_driver(self) -> Optional[Driver]:
        for driver in self.drivers:
            if driver.id == self.driver_id:
                return driver
        return None

    @property
    def optimizing(self) -> bool:
        return self.pending is not None and self.pending.kind is CallKind.OPTIMIZE

    @property
    def saving(self) -> bool:
        return self.pending is not None and self.pending.kind is CallKind.SAVE

    @property
    def assigning(self) -> bool:
        return self.pending is not None and self.pending.kind is CallKind.ASSIGN

    @property
    def busy(self) -> bool:
        return self.pending is not None

    @property
    def can_advance(self) -> bool:
        if self.completed or self.busy:
            return False
        if self.step is Step.SELECT:
            return bool(self.selected_order_ids)
        if self.step is Step.LOCATIONS:
            return self.start is not None and self.end is not None
        if self.step is Step.REVIEW:
            # Without a route the forward action retries the optimization.
            return not self.saved
        if self.step is Step.ASSIGN:
            return self.selected_driver is not None
        raise AssertionError(f"Unhandled step {self.step}")

    @property
    def can_go_back(self) -> bool:
        if self.completed or self.saved or self.step.previous is None:
            return False
        return not self.busy or self.optimizing


# Actions -------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class LoadOrders:
    preselect_all: bool = True


@dataclass(frozen=True, slots=True)
class OrdersLoaded:
    orders: tuple[DeliveryOrder, ...] = ()
    preselect_all: bool = True
    error: Optional[str] = None


@dataclass(frozen=True, slots=True)
class SelectOrders:
    order_ids: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class ToggleOrder:
    order_id: str


@dataclass(frozen=True, slots=True)
class SelectAllOrders:
    pass


@dataclass(frozen=True, slots=True)
class ClearSelection:
    pass


@dataclass(frozen=True, slots=True)
class SetStartLocation:
    point: GeoPoint


@dataclass(frozen=True, slots=True)
class SetEndLocation:
    point: GeoPoint


@dataclass(frozen=True, slots=True)
class PickLocation:
    point: GeoPoint


@dataclass(frozen=True, slots=True)
class SetPolicy:
    force_return_to_end: Optional[bool] = None
    max_return_distance_km: Optional[float] = None


@dataclass(frozen=True, slots=True)
class SelectDriver:
    driver_id: str


@dataclass(frozen=True, slots=True)
class SetSchedule:
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    notes: str = ""


@dataclass(frozen=True, slots=True)
class DriversLoaded:
    drivers: tuple[Driver, ...] = ()
    error: Optional[str] = None


@dataclass(frozen=True, slots=True)
class Advance:
    pass


@dataclass(frozen=True, slots=True)
class GoBack:
    pass


@dataclass(frozen=True, slots=True)
class OptimizationFinished:
    ticket: int
    outcome: OptimizationOutcome


@dataclass(frozen=True, slots=True)
class SaveFinished:
    ticket: int
    outcome: PersistOutcome


@dataclass(frozen=True, slots=True)
class AssignFinished:
    ticket: int
    outcome: AssignOutcome


Action = Union[
    LoadOrders,
    OrdersLoaded,
    SelectOrders,
    ToggleOrder,
    SelectAllOrders,
    ClearSelection,
    SetStartLocation,
    SetEndLocation,
    PickLocation,
    SetPolicy,
    SelectDriver,
    SetSchedule,
    DriversLoaded,
    Advance,
    GoBack,
    OptimizationFinished,
    SaveFinished,
    AssignFinished,
]


# Effects -------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Notify:
    notification: Notification


@dataclass(frozen=True, slots=True)
class FetchOrders:
    organization_id: str
    preselect_all: bool = True


@dataclass(frozen=True, slots=True)
class FetchDrivers:
    organization_id: str


@dataclass(frozen=True, slots=True)
class RunOptimization:
    ticket: int
    request: OptimizationRequest


@dataclass(frozen=True, slots=True)
class SaveRoute:
    ticket: int
    route: PersistableRoute
    order_ids: tuple[str, ...]
    organization_id: str
    organization_name: str


@dataclass(frozen=True, slots=True)
class AssignDriver:
    ticket: int
    route_id: str
    driver: Driver
    start_time: Optional[datetime]
    end_time: Optional[datetime]
    notes: str


Effect = Union[Notify, FetchOrders, FetchDrivers, RunOptimization, SaveRoute, AssignDriver]


@dataclass(frozen=True, slots=True)
class Transition:
    state: WorkflowState
    effects: tuple[Effect, ...] = ()


# Reducer -------------------------------------------------------------------


def _notify(level: NotificationLevel, title: str, message: str, duration_ms: int) -> Notify:
    return Notify(Notification(level=level, title=title, message=message, duration_ms=duration_ms))


def _reject(state: WorkflowState, title: str, reason: str) -> Transition:
    error = StepError(step=state.step, kind=ErrorKind.VALIDATION, reason=reason)
    return Transition(
        replace(state, last_error=error),
        (_notify(NotificationLevel.ERROR, title, reason, VALIDATION_TOAST_MS),),
    )


def _wrong_step(state: WorkflowState, expected: Step) -> Transition:
    return Transition(
        state,
        (
            _notify(
                NotificationLevel.WARNING,
                "Not available now",
                f"This change belongs to the '{expected.value}' step; the workflow is on '{state.step.value}'.",
                VALIDATION_TOAST_MS,
            ),
        ),
    )


def _wait(state: WorkflowState) -> Transition:
    return Transition(
        state,
        (_notify(NotificationLevel.INFO, "Please wait", "The previous request is still running.", VALIDATION_TOAST_MS),),
    )


def _error_title(kind: ErrorKind, default: str) -> str:
    return "Route data problem" if kind is ErrorKind.DATA_QUALITY else default


def _failure(state: WorkflowState, title: str, kind: ErrorKind, reason: str, duration_ms: int) -> Transition:
    return Transition(
        replace(state, last_error=StepError(step=state.step, kind=kind, reason=reason)),
        (_notify(NotificationLevel.ERROR, _error_title(kind, title), reason, duration_ms),),
    )


def _valid_point(point: GeoPoint) -> bool:
    return is_valid_coordinate(point.lat, point.lng)


def _launch_optimization(state: WorkflowState) -> Transition:
    ticket = state.next_ticket
    request = OptimizationRequest(
        start=state.start,
        end=state.end,
        orders=state.selected_orders,
        policy=state.policy,
    )
    next_state = replace(
        state,
        step=Step.REVIEW,
        route=None,
        persistable=None,
        pending=PendingCall(ticket=ticket, kind=CallKind.OPTIMIZE),
        next_ticket=ticket + 1,
        last_error=None,
    )
    return Transition(next_state, (RunOptimization(ticket=ticket, request=request),))


def _advance_select(state: WorkflowState) -> Transition:
    if not state.selected_order_ids:
        return _reject(state, "Orders required", "Select at least one order to continue.")
    return Transition(replace(state, step=Step.LOCATIONS, last_error=None))


def _advance_locations(state: WorkflowState) -> Transition:
    if state.start is None:
        return _reject(state, "Location required", "Select the start location to continue.")
    if state.end is None:
        return _reject(state, "Location required", "Select the end location to continue.")
    if not state.selected_order_ids:
        return _reject(state, "Orders required", "Select at least one order to continue.")
    return _launch_optimization(state)


def _advance_review(state: WorkflowState) -> Transition:
    if state.saved:
        return Transition(state)
    if state.route is None:
        # Review with no route and nothing in flight re-runs the optimization.
        # Failed optimizations roll back to locations, so this only covers
        # states restored or built without a route.
        return _launch_optimization(state)

    try:
        persistable = transform_route(state.route, state.thresholds, state.route_speed_kmh)
    except RouteDataError as exc:
        return _failure(state, "Route data problem", ErrorKind.DATA_QUALITY, str(exc), SAVE_ERROR_TOAST_MS)
    if state.selected_order_ids and not persistable.waypoints:
        return _failure(
            state,
            "Route data problem",
            ErrorKind.DATA_QUALITY,
            "The optimized route has no stops bound to the selected orders.",
            SAVE_ERROR_TOAST_MS,
        )

    effects: list[Effect] = []
    for issue in persistable.quality_issues:
        effects.append(_notify(NotificationLevel.WARNING, "Route data problem", issue, SAVE_ERROR_TOAST_MS))

    ticket = state.next_ticket
    next_state = replace(
        state,
        persistable=persistable,
        pending=PendingCall(ticket=ticket, kind=CallKind.SAVE),
        next_ticket=ticket + 1,
        last_error=None,
    )
    effects.append(
        SaveRoute(
            ticket=ticket,
            route=persistable,
            order_ids=tuple(order.id for order in state.selected_orders),
            organization_id=state.organization_id,
            organization_name=state.organization_name,
        )
    )
    return Transition(next_state, tuple(effects))


def _schedule_problem(state: WorkflowState, start: Optional[datetime], end: Optional[datetime], notes: str) -> Optional[str]:
    if start is not None and end is not None and end <= start:
        return "The end time must be after the start time."
    if len(notes) > state.max_notes_length:
        return f"Notes are limited to {state.max_notes_length} characters."
    return None


def _advance_assign(state: WorkflowState) -> Transition:
    driver = state.selected_driver
    if state.driver_id is None:
        return _reject(state, "Driver required", "Select a driver to assign the route.")
    if driver is None or not driver.is_active:
        return _reject(state, "Driver unavailable", "The selected driver is not an active member of the roster.")
    problem = _schedule_problem(state, state.schedule_start, state.schedule_end, state.notes)
    if problem:
        return _reject(state, "Invalid schedule", problem)
    if not state.route_id:
        return _reject(state, "Route not saved", "Save the route before assigning a driver.")

    ticket = state.next_ticket
    next_state = replace(
        state,
        pending=PendingCall(ticket=ticket, kind=CallKind.ASSIGN),
        next_ticket=ticket + 1,
        last_error=None,
    )
    effect = AssignDriver(
        ticket=ticket,
        route_id=state.route_id,
        driver=driver,
        start_time=state.schedule_start,
        end_time=state.schedule_end,
        notes=state.notes,
    )
    return Transition(next_state, (effect,))


def _advance(state: WorkflowState) -> Transition:
    if state.busy:
        return _wait(state)
    if state.step is Step.SELECT:
        return _advance_select(state)
    if state.step is Step.LOCATIONS:
        return _advance_locations(state)
    if state.step is Step.REVIEW:
        return _advance_review(state)
    if state.step is Step.ASSIGN:
        return _advance_assign(state)
    raise AssertionError(f"Unhandled step {state.step}")


def _go_back(state: WorkflowState) -> Transition:
    if state.saved:
        return Transition(
            state,
            (
                _notify(
                    NotificationLevel.WARNING,
                    "Route already saved",
                    "The route has been saved; earlier steps can no longer be changed.",
                    VALIDATION_TOAST_MS,
                ),
            ),
        )
    previous = state.step.previous
    if previous is None:
        return Transition(state)
    if state.step is Step.REVIEW:
        # Abandons any optimization still in flight; its response will be stale.
        return Transition(
            replace(state, step=previous, route=None, persistable=None, pending=None, last_error=None)
        )
    return Transition(replace(state, step=previous, last_error=None))


def _finish_optimization(state: WorkflowState, action: OptimizationFinished) -> Transition:
    outcome = action.outcome
    if outcome.ok and outcome.route is not None:
        route = outcome.route
        message = f"{len(route.stops)} stops, {route.orders_delivered} orders delivered."
        return Transition(
            replace(state, pending=None, route=route, last_error=None),
            (_notify(NotificationLevel.SUCCESS, "Route optimized", message, SUCCESS_TOAST_MS),),
        )
    kind = outcome.kind or ErrorKind.SERVICE
    reason = outcome.reason or "The route could not be optimized."
    # Roll the optimistic transition back; locations and policy stay as entered.
    rolled_back = replace(state, pending=None, route=None, step=Step.LOCATIONS)
    return _failure(rolled_back, "Optimization failed", kind, reason, OPTIMIZATION_ERROR_TOAST_MS)


def _finish_save(state: WorkflowState, action: SaveFinished) -> Transition:
    outcome = action.outcome
    if outcome.ok and outcome.route_id:
        next_state = replace(
            state,
            pending=None,
            saved=True,
            route_id=outcome.route_id,
            saved_route=outcome.saved_route,
            step=Step.ASSIGN,
            last_error=None,
        )
        count = len(state.selected_order_ids)
        return Transition(
            next_state,
            (
                _notify(
                    NotificationLevel.SUCCESS,
                    "Route saved",
                    f"The route with {count} orders has been saved.",
                    SUCCESS_TOAST_MS,
                ),
                FetchDrivers(organization_id=state.organization_id),
            ),
        )
    kind = outcome.kind or ErrorKind.SERVICE
    reason = outcome.reason or "The route could not be saved. Please try again."
    return _failure(replace(state, pending=None), "Could not save the route", kind, reason, SAVE_ERROR_TOAST_MS)


def _finish_assign(state: WorkflowState, action: AssignFinished) -> Transition:
    outcome = action.outcome
    if outcome.ok:
        driver = state.selected_driver
        saved_route = state.saved_route.mark_assigned() if state.saved_route is not None else None
        next_state = replace(
            state,
            pending=None,
            completed=True,
            saved_route=saved_route,
            schedule_start=outcome.start_time or state.schedule_start,
            schedule_end=outcome.end_time or state.schedule_end,
            last_error=None,
        )
        name = driver.name if driver else "the driver"
        return Transition(
            next_state,
            (_notify(NotificationLevel.SUCCESS, "Route assigned", f"The route has been assigned to {name}.", SUCCESS_TOAST_MS),),
        )
    kind = outcome.kind or ErrorKind.SERVICE
    reason = outcome.reason or "The route could not be assigned to the driver."
    return _failure(replace(state, pending=None), "Could not assign the route", kind, reason, SAVE_ERROR_TOAST_MS)


def _is_current(state: WorkflowState, ticket: int, kind: CallKind) -> bool:
    return state.pending is not None and state.pending.ticket == ticket and state.pending.kind is kind


def _pick_location(state: WorkflowState, point: GeoPoint) -> Transition:
    if state.start is None:
        return Transition(replace(state, start=point, last_error=None))
    return Transition(replace(state, end=point, last_error=None))


def reduce(state: WorkflowState, action: Action) -> Transition:
    """Compute the next workflow state and the effects to run."""

    if state.completed:
        return Transition(state)

    if isinstance(action, OptimizationFinished):
        if not _is_current(state, action.ticket, CallKind.OPTIMIZE):
            return Transition(state)
        return _finish_optimization(state, action)
    if isinstance(action, SaveFinished):
        if not _is_current(state, action.ticket, CallKind.SAVE):
            return Transition(state)
        return _finish_save(state, action)
    if isinstance(action, AssignFinished):
        if not _is_current(state, action.ticket, CallKind.ASSIGN):
            return Transition(state)
        return _finish_assign(state, action)

    if isinstance(action, Advance):
        return _advance(state)
    if isinstance(action, GoBack):
        # Only an optimization may be abandoned; saves and assignments run to completion.
        if state.busy and not state.optimizing:
            return _wait(state)
        return _go_back(state)

    if isinstance(action, LoadOrders):
        return Transition(state, (FetchOrders(state.organization_id, action.preselect_all),))
    if isinstance(action, OrdersLoaded):
        if action.error is not None:
            return Transition(
                replace(state, orders_loaded=True),
                (_notify(NotificationLevel.ERROR, "Could not load orders", action.error, SAVE_ERROR_TOAST_MS),),
            )
        orders = tuple(action.orders)
        known = {order.id for order in orders}
        if action.preselect_all and state.step is Step.SELECT:
            selected = tuple(order.id for order in orders)
        else:
            selected = tuple(order_id for order_id in state.selected_order_ids if order_id in known)
        return Transition(replace(state, available_orders=orders, orders_loaded=True, selected_order_ids=selected))
    if isinstance(action, DriversLoaded):
        if action.error is not None:
            return Transition(
                state,
                (_notify(NotificationLevel.ERROR, "Could not load drivers", action.error, SAVE_ERROR_TOAST_MS),),
            )
        drivers = tuple(action.drivers)
        driver_id = state.driver_id if any(d.id == state.driver_id for d in drivers) else None
        return Transition(replace(state, drivers=drivers, driver_id=driver_id))

    if isinstance(action, (SelectOrders, ToggleOrder, SelectAllOrders, ClearSelection)):
        if state.step is not Step.SELECT:
            return _wrong_step(state, Step.SELECT)
        known = [order.id for order in state.available_orders]
        if isinstance(action, SelectOrders):
            wanted = set(action.order_ids)
            selected = tuple(order_id for order_id in known if order_id in wanted)
        elif isinstance(action, ToggleOrder):
            if action.order_id not in known:
                return Transition(state)
            if action.order_id in state.selected_order_ids:
                selected = tuple(oid for oid in state.selected_order_ids if oid != action.order_id)
            else:
                selected = state.selected_order_ids + (action.order_id,)
        elif isinstance(action, SelectAllOrders):
            selected = tuple(known)
        else:
            selected = ()
        return Transition(replace(state, selected_order_ids=selected, last_error=None))

    if isinstance(action, (SetStartLocation, SetEndLocation, PickLocation, SetPolicy)):
        if state.step is not Step.LOCATIONS:
            return _wrong_step(state, Step.LOCATIONS)
        if isinstance(action, SetPolicy):
            policy = state.policy
            if action.force_return_to_end is not None:
                policy = replace(policy, force_return_to_end=action.force_return_to_end)
            if action.max_return_distance_km is not None:
                if action.max_return_distance_km < 0:
                    return _reject(state, "Invalid policy", "The maximum return distance cannot be negative.")
                policy = replace(policy, max_return_distance_km=action.max_return_distance_km)
            return Transition(replace(state, policy=policy))
        if not _valid_point(action.point):
            return _reject(state, "Invalid location", "Latitude must be within ±90 and longitude within ±180.")
        if isinstance(action, SetStartLocation):
            return Transition(replace(state, start=action.point, last_error=None))
        if isinstance(action, SetEndLocation):
            return Transition(replace(state, end=action.point, last_error=None))
        return _pick_location(state, action.point)

    if isinstance(action, (SelectDriver, SetSchedule)):
        if state.step is not Step.ASSIGN:
            return _wrong_step(state, Step.ASSIGN)
        if state.assigning:
            return _wait(state)
        if isinstance(action, SelectDriver):
            if not any(driver.id == action.driver_id and driver.is_active for driver in state.drivers):
                return _reject(state, "Driver unavailable", "The selected driver is not an active member of the roster.")
            return Transition(replace(state, driver_id=action.driver_id, last_error=None))
        problem = _schedule_problem(state, action.start_time, action.end_time, action.notes)
        if problem:
            return _reject(state, "Invalid schedule", problem)
        return Transition(
            replace(
                state,
                schedule_start=action.start_time,
                schedule_end=action.end_time,
                notes=action.notes,
                last_error=None,
            )
        )

    raise TypeError(f"Unknown workflow action: {action!r}")
