from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from src.routeflow.models.domain import GeoPoint
from src.routeflow.services.results import (
    AssignOutcome,
    ErrorKind,
    OptimizationOutcome,
    PersistOutcome,
)
from src.routeflow.services.routing.models import RouteStatus, SavedRoute, StopType
from src.routeflow.workflow.state import (
    Advance,
    AssignDriver,
    AssignFinished,
    ClearSelection,
    DriversLoaded,
    FetchDrivers,
    FetchOrders,
    GoBack,
    LoadOrders,
    NotificationLevel,
    Notify,
    OptimizationFinished,
    OrdersLoaded,
    PickLocation,
    RunOptimization,
    SaveFinished,
    SaveRoute,
    SelectAllOrders,
    SelectDriver,
    SelectOrders,
    SetPolicy,
    SetSchedule,
    SetStartLocation,
    Step,
    ToggleOrder,
    WorkflowState,
    reduce,
)
from tests.helpers import DEPOT, YARD, driver, orders, route_for, simple_route, stop

POOL = orders("A", "B", "C")
LATER = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _state(**changes) -> WorkflowState:
    base = WorkflowState(
        organization_id="org-1",
        organization_name="Acme",
        available_orders=POOL,
        orders_loaded=True,
    )
    return replace(base, **changes)


def _at_locations(**changes) -> WorkflowState:
    values = {"step": Step.LOCATIONS, "selected_order_ids": ("A", "B"), "start": DEPOT, "end": YARD}
    values.update(changes)
    return _state(**values)


def _notifications(transition):
    return [effect.notification for effect in transition.effects if isinstance(effect, Notify)]


def _remote(transition):
    return [effect for effect in transition.effects if not isinstance(effect, Notify)]


def _optimized():
    """Advance from locations and complete the optimization successfully."""
    launched = reduce(_at_locations(), Advance())
    (effect,) = _remote(launched)
    return reduce(launched.state, OptimizationFinished(effect.ticket, OptimizationOutcome.success(simple_route(effect.request.orders))))


def _saved():
    reviewed = _optimized().state
    saving = reduce(reviewed, Advance())
    (effect,) = [e for e in _remote(saving) if isinstance(e, SaveRoute)]
    saved_route = SavedRoute(uuid="route-1", route_name="r", route=effect.route, order_ids=effect.order_ids)
    return reduce(saving.state, SaveFinished(effect.ticket, PersistOutcome.success(saved_route)))


def _assign_ready(**changes):
    saved = _saved().state
    loaded = reduce(saved, DriversLoaded(drivers=(driver("m-1"), driver("m-2", name="Omar", active=False)))).state
    return replace(reduce(loaded, SelectDriver("m-1")).state, **changes)


# select ---------------------------------------------------------------------


def test_load_orders_requests_pool_and_preselects_everything() -> None:
    fresh = WorkflowState(organization_id="org-1")

    requested = reduce(fresh, LoadOrders())
    loaded = reduce(requested.state, OrdersLoaded(orders=POOL, preselect_all=True))

    assert requested.effects == (FetchOrders("org-1", True),)
    assert loaded.state.selected_order_ids == ("A", "B", "C")
    assert loaded.state.orders_loaded


def test_loaded_orders_without_preselection_start_empty() -> None:
    loaded = reduce(WorkflowState(organization_id="org-1"), OrdersLoaded(orders=POOL, preselect_all=False))

    assert loaded.state.selected_order_ids == ()
    assert not loaded.state.can_advance


def test_order_load_failure_becomes_error_toast() -> None:
    failed = reduce(WorkflowState(organization_id="org-1"), OrdersLoaded(error="backend down"))

    (note,) = _notifications(failed)
    assert note.level is NotificationLevel.ERROR
    assert failed.state.available_orders == ()


def test_advance_with_empty_selection_is_rejected() -> None:
    state = _state()

    transition = reduce(state, Advance())

    assert transition.state.step is Step.SELECT
    assert transition.state.last_error.kind is ErrorKind.VALIDATION
    assert _remote(transition) == []
    (note,) = _notifications(transition)
    assert note.title == "Orders required"
    assert note.duration_ms == 3000


def test_selection_actions_ignore_unknown_orders() -> None:
    state = reduce(_state(), SelectOrders(("C", "ghost", "A"))).state
    assert state.selected_order_ids == ("A", "C")

    state = reduce(state, ToggleOrder("A")).state
    assert state.selected_order_ids == ("C",)

    state = reduce(state, ToggleOrder("B")).state
    assert state.selected_order_ids == ("C", "B")

    assert reduce(state, ToggleOrder("ghost")).state == state
    assert reduce(state, SelectAllOrders()).state.selected_order_ids == ("A", "B", "C")
    assert reduce(state, ClearSelection()).state.selected_order_ids == ()


def test_advance_from_select_moves_to_locations_without_effects() -> None:
    transition = reduce(_state(selected_order_ids=("A",)), Advance())

    assert transition.state.step is Step.LOCATIONS
    assert transition.effects == ()


def test_selection_is_owned_by_select_step() -> None:
    state = _at_locations()

    transition = reduce(state, SelectOrders(("C",)))

    assert transition.state.selected_order_ids == ("A", "B")
    assert _notifications(transition)[0].level is NotificationLevel.WARNING


# locations ------------------------------------------------------------------


def test_pick_location_sets_start_then_end_then_replaces_end() -> None:
    first = GeoPoint(lat=24.1, lng=46.1, address="first")
    second = GeoPoint(lat=24.2, lng=46.2, address="second")
    third = GeoPoint(lat=24.3, lng=46.3, address="third")
    state = _state(step=Step.LOCATIONS, selected_order_ids=("A",))

    for point in (first, second, third):
        state = reduce(state, PickLocation(point)).state

    assert state.start == first
    assert state.end == third


def test_out_of_range_location_is_rejected() -> None:
    state = _state(step=Step.LOCATIONS, selected_order_ids=("A",))

    transition = reduce(state, SetStartLocation(GeoPoint(lat=91.0, lng=10.0, address="")))

    assert transition.state.start is None
    assert transition.state.last_error.kind is ErrorKind.VALIDATION


def test_policy_updates_only_given_fields() -> None:
    state = reduce(_at_locations(), SetPolicy(force_return_to_end=True)).state
    state = reduce(state, SetPolicy(max_return_distance_km=12.0)).state

    assert state.policy.force_return_to_end is True
    assert state.policy.max_return_distance_km == 12.0
    assert reduce(state, SetPolicy(max_return_distance_km=-1)).state.policy.max_return_distance_km == 12.0


def test_advance_from_locations_requires_both_points() -> None:
    state = _state(step=Step.LOCATIONS, selected_order_ids=("A",), start=DEPOT)

    transition = reduce(state, Advance())

    assert transition.state.step is Step.LOCATIONS
    assert _remote(transition) == []
    assert _notifications(transition)[0].title == "Location required"


def test_advance_from_locations_launches_optimization_optimistically() -> None:
    state = _at_locations(policy=replace(_state().policy, force_return_to_end=True))

    transition = reduce(state, Advance())

    assert transition.state.step is Step.REVIEW
    assert transition.state.optimizing
    assert not transition.state.can_advance
    (effect,) = transition.effects
    assert isinstance(effect, RunOptimization)
    assert [o.id for o in effect.request.orders] == ["A", "B"]
    assert effect.request.orders[0] is POOL[0]
    assert effect.request.start == DEPOT and effect.request.end == YARD
    assert effect.request.policy.force_return_to_end is True


# review ---------------------------------------------------------------------


def test_successful_optimization_shows_route() -> None:
    transition = _optimized()

    assert transition.state.step is Step.REVIEW
    assert transition.state.route is not None
    assert not transition.state.optimizing
    assert transition.state.can_advance
    assert _notifications(transition)[0].level is NotificationLevel.SUCCESS


def test_failed_optimization_rolls_back_to_locations() -> None:
    launched = reduce(_at_locations(), Advance())
    (effect,) = launched.effects

    failed = reduce(launched.state, OptimizationFinished(effect.ticket, OptimizationOutcome.failure("No feasible route")))

    assert failed.state.step is Step.LOCATIONS
    assert failed.state.start == DEPOT and failed.state.end == YARD
    assert failed.state.last_error.reason == "No feasible route"
    assert failed.state.last_error.kind is ErrorKind.SERVICE
    (note,) = _notifications(failed)
    assert note.title == "Optimization failed"
    assert note.duration_ms == 5000

    retried = reduce(failed.state, Advance())
    (retry,) = retried.effects
    assert isinstance(retry, RunOptimization)
    assert retry.ticket != effect.ticket


def test_data_quality_failure_uses_distinct_title() -> None:
    launched = reduce(_at_locations(), Advance())
    (effect,) = launched.effects
    outcome = OptimizationOutcome.failure("Expected exactly one 'end' stop", ErrorKind.DATA_QUALITY)

    failed = reduce(launched.state, OptimizationFinished(effect.ticket, outcome))

    assert _notifications(failed)[0].title == "Route data problem"
    assert failed.state.last_error.kind is ErrorKind.DATA_QUALITY


def test_stale_optimization_result_is_discarded() -> None:
    first = reduce(_at_locations(), Advance())
    (old,) = first.effects
    back = reduce(first.state, GoBack())
    assert back.state.step is Step.LOCATIONS
    assert not back.state.optimizing
    second = reduce(back.state, Advance())
    (current,) = second.effects

    stale = reduce(second.state, OptimizationFinished(old.ticket, OptimizationOutcome.success(simple_route(POOL[:2]))))
    assert stale.state is second.state
    assert stale.effects == ()

    fresh = reduce(second.state, OptimizationFinished(current.ticket, OptimizationOutcome.failure("later")))
    assert fresh.state.last_error.reason == "later"


def test_advance_while_optimizing_does_not_launch_again() -> None:
    launched = reduce(_at_locations(), Advance())

    again = reduce(launched.state, Advance())

    assert _remote(again) == []
    assert again.state.pending == launched.state.pending
    assert _notifications(again)[0].level is NotificationLevel.INFO


def test_review_without_route_reoptimizes() -> None:
    state = _at_locations(step=Step.REVIEW)

    transition = reduce(state, Advance())

    (effect,) = transition.effects
    assert isinstance(effect, RunOptimization)


def test_review_advance_transforms_and_saves() -> None:
    reviewed = _optimized().state

    transition = reduce(reviewed, Advance())

    assert transition.state.saving
    (effect,) = _remote(transition)
    assert isinstance(effect, SaveRoute)
    assert effect.order_ids == ("A", "B")
    assert effect.organization_id == "org-1"
    assert [w.order_id for w in effect.route.waypoints] == ["A", "A", "B", "B"]
    assert transition.state.persistable == effect.route


def test_route_without_order_stops_is_not_saved() -> None:
    empty = route_for([stop(1, StopType.START), stop(2, StopType.END)])
    state = _at_locations(step=Step.REVIEW, route=empty)

    transition = reduce(state, Advance())

    assert _remote(transition) == []
    assert transition.state.last_error.kind is ErrorKind.DATA_QUALITY
    assert not transition.state.saving


def test_route_missing_terminal_stop_is_not_saved() -> None:
    (only,) = orders("A")
    broken = route_for([stop(1, StopType.START), stop(2, StopType.DELIVERY, only)])
    state = _at_locations(step=Step.REVIEW, route=broken)

    transition = reduce(state, Advance())

    assert _remote(transition) == []
    assert transition.state.last_error.kind is ErrorKind.DATA_QUALITY
    assert _notifications(transition)[0].title == "Route data problem"


def test_clamped_base_time_warns_but_still_saves() -> None:
    (only,) = orders("A")
    odd = route_for(
        [stop(1, StopType.START), stop(2, StopType.DELIVERY, only), stop(3, StopType.END)],
        total_time=60,
        total_traffic_delay=90,
    )
    state = _at_locations(step=Step.REVIEW, route=odd)

    transition = reduce(state, Advance())

    assert any(isinstance(e, SaveRoute) for e in transition.effects)
    assert _notifications(transition)[0].level is NotificationLevel.WARNING


def test_save_success_moves_to_assign_and_loads_drivers() -> None:
    transition = _saved()

    assert transition.state.step is Step.ASSIGN
    assert transition.state.saved
    assert transition.state.route_id == "route-1"
    assert transition.state.saved_route.status is RouteStatus.PLANNED
    assert FetchDrivers("org-1") in transition.effects
    assert _notifications(transition)[0].title == "Route saved"


def test_save_failure_stays_on_review() -> None:
    reviewed = _optimized().state
    saving = reduce(reviewed, Advance())
    (effect,) = _remote(saving)

    failed = reduce(saving.state, SaveFinished(effect.ticket, PersistOutcome.failure("Database unavailable")))

    assert failed.state.step is Step.REVIEW
    assert not failed.state.saved
    assert failed.state.route is not None
    (note,) = _notifications(failed)
    assert note.duration_ms == 6000
    assert isinstance(_remote(reduce(failed.state, Advance()))[0], SaveRoute)


def test_review_advance_after_save_is_noop() -> None:
    saved = _saved().state
    state = replace(saved, step=Step.REVIEW)

    transition = reduce(state, Advance())

    assert transition.effects == ()
    assert transition.state is state


def test_going_back_after_save_is_disabled() -> None:
    saved = _saved().state

    transition = reduce(saved, GoBack())

    assert transition.state.step is Step.ASSIGN
    assert not saved.can_go_back
    assert _notifications(transition)[0].title == "Route already saved"


def test_going_back_from_review_discards_route() -> None:
    reviewed = _optimized().state

    back = reduce(reviewed, GoBack())

    assert back.state.step is Step.LOCATIONS
    assert back.state.route is None
    assert back.state.start == DEPOT


def test_going_back_while_saving_waits_for_the_save() -> None:
    saving = reduce(_optimized().state, Advance())
    (effect,) = _remote(saving)
    assert not saving.state.can_go_back

    blocked = reduce(saving.state, GoBack())

    assert blocked.state is saving.state
    assert _notifications(blocked)[0].title == "Please wait"
    saved_route = SavedRoute(uuid="route-1", route_name="r", route=effect.route, order_ids=effect.order_ids)
    done = reduce(blocked.state, SaveFinished(effect.ticket, PersistOutcome.success(saved_route)))
    assert done.state.saved
    assert done.state.step is Step.ASSIGN


def test_going_back_while_optimizing_is_allowed() -> None:
    launched = reduce(_at_locations(), Advance())

    assert launched.state.can_go_back
    assert reduce(launched.state, GoBack()).state.step is Step.LOCATIONS


# assign ---------------------------------------------------------------------


def test_only_active_roster_drivers_can_be_selected() -> None:
    saved = _saved().state
    loaded = reduce(saved, DriversLoaded(drivers=(driver("m-1"), driver("m-2", active=False)))).state

    assert reduce(loaded, SelectDriver("m-2")).state.driver_id is None
    assert reduce(loaded, SelectDriver("ghost")).state.driver_id is None
    assert reduce(loaded, SelectDriver("m-1")).state.driver_id == "m-1"


def test_advance_without_driver_is_rejected() -> None:
    saved = _saved().state

    transition = reduce(saved, Advance())

    assert _remote(transition) == []
    assert _notifications(transition)[0].title == "Driver required"


def test_schedule_validation() -> None:
    state = _assign_ready()

    inverted = reduce(state, SetSchedule(LATER, LATER - timedelta(hours=1)))
    wordy = reduce(state, SetSchedule(notes="x" * 501))
    valid = reduce(state, SetSchedule(LATER, LATER + timedelta(hours=2), "Call on arrival"))

    assert inverted.state.schedule_start is None
    assert inverted.state.last_error.kind is ErrorKind.VALIDATION
    assert wordy.state.notes == ""
    assert valid.state.schedule_end == LATER + timedelta(hours=2)
    assert valid.state.notes == "Call on arrival"


def test_assignment_completes_workflow() -> None:
    state = reduce(_assign_ready(), SetSchedule(LATER, LATER + timedelta(hours=2), "Fragile")).state

    launched = reduce(state, Advance())
    (effect,) = launched.effects
    assert isinstance(effect, AssignDriver)
    assert effect.route_id == "route-1"
    assert effect.driver.id == "m-1"
    assert effect.notes == "Fragile"
    assert launched.state.assigning

    done = reduce(launched.state, AssignFinished(effect.ticket, AssignOutcome.success(LATER, LATER + timedelta(hours=2))))
    assert done.state.completed
    assert done.state.saved_route.status is RouteStatus.ASSIGNED
    assert not done.state.can_advance
    assert "Sara" in _notifications(done)[0].message

    again = reduce(done.state, Advance())
    assert again.state is done.state
    assert again.effects == ()
    assert reduce(done.state, SelectDriver("m-1")).state is done.state


def test_failed_assignment_can_be_retried() -> None:
    launched = reduce(_assign_ready(), Advance())
    (effect,) = launched.effects

    failed = reduce(launched.state, AssignFinished(effect.ticket, AssignOutcome.failure("Route not found")))

    assert not failed.state.completed
    assert failed.state.step is Step.ASSIGN
    assert _notifications(failed)[0].duration_ms == 6000
    (retry,) = reduce(failed.state, Advance()).effects
    assert isinstance(retry, AssignDriver)


def test_unknown_action_is_a_type_error() -> None:
    with pytest.raises(TypeError):
        reduce(_state(), object())


def test_step_previous() -> None:
    assert Step.SELECT.previous is None
    assert Step.ASSIGN.previous is Step.REVIEW
