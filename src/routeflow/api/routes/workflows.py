"""Route creation workflow endpoints.

Step failures (validation, optimizer or backend errors) are not HTTP errors:
the endpoints answer 200 with the workflow view and the notifications the
step produced.
"""

from __future__ import annotations

import logging
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status

from ...schemas.workflow import (
    AssignmentRequest,
    CreateWorkflowRequest,
    DriverModel,
    LocationRequest,
    OrderSelectionRequest,
    PolicyRequest,
    WorkflowView,
    build_workflow_view,
    driver_model,
)
from ...workflow.controller import WorkflowController
from ...workflow.registry import WorkflowRegistry, get_registry

router = APIRouter(prefix="/workflows", tags=["workflows"])


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() == "bearer" and token.strip():
        return token.strip()
    return authorization.strip() or None


def _controller(registry: WorkflowRegistry, workflow_id: str) -> WorkflowController:
    try:
        return registry.get(workflow_id)
    except KeyError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Workflow {workflow_id} not found",
        ) from exc


def _view(workflow_id: str, controller: WorkflowController) -> WorkflowView:
    return build_workflow_view(workflow_id, controller.state, controller.drain_notifications())


@router.post("", response_model=WorkflowView, status_code=status.HTTP_201_CREATED)
async def create_workflow(
    payload: CreateWorkflowRequest,
    authorization: Optional[str] = Header(default=None),
    registry: WorkflowRegistry = Depends(get_registry),
) -> WorkflowView:
    try:
        workflow_id, controller = registry.create(
            payload.organization_id,
            payload.organization_name,
            _bearer_token(authorization),
        )
        await controller.start(preselect_all=payload.preselect_all)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except Exception as exc:
        logging.exception(f"Error creating workflow: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to create workflow: {str(exc)}",
        ) from exc
    return _view(workflow_id, controller)


@router.get("/{workflow_id}", response_model=WorkflowView)
def get_workflow(workflow_id: str, registry: WorkflowRegistry = Depends(get_registry)) -> WorkflowView:
    return _view(workflow_id, _controller(registry, workflow_id))


@router.delete("/{workflow_id}", status_code=status.HTTP_200_OK)
def delete_workflow(workflow_id: str, registry: WorkflowRegistry = Depends(get_registry)) -> dict:
    if not registry.discard(workflow_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Workflow {workflow_id} not found",
        )
    return {"success": True, "message": f"Workflow {workflow_id} discarded"}


@router.put("/{workflow_id}/orders", response_model=WorkflowView)
async def select_orders(
    workflow_id: str,
    payload: OrderSelectionRequest,
    registry: WorkflowRegistry = Depends(get_registry),
) -> WorkflowView:
    controller = _controller(registry, workflow_id)
    await controller.select_orders(payload.order_ids)
    return _view(workflow_id, controller)


@router.post("/{workflow_id}/orders/{order_id}/toggle", response_model=WorkflowView)
async def toggle_order(
    workflow_id: str,
    order_id: str,
    registry: WorkflowRegistry = Depends(get_registry),
) -> WorkflowView:
    controller = _controller(registry, workflow_id)
    await controller.toggle_order(order_id)
    return _view(workflow_id, controller)


@router.put("/{workflow_id}/locations/{which}", response_model=WorkflowView)
async def set_location(
    workflow_id: str,
    which: Literal["start", "end"],
    payload: LocationRequest,
    registry: WorkflowRegistry = Depends(get_registry),
) -> WorkflowView:
    controller = _controller(registry, workflow_id)
    if which == "start":
        await controller.set_start_location(payload.lat, payload.lng, payload.address)
    else:
        await controller.set_end_location(payload.lat, payload.lng, payload.address)
    return _view(workflow_id, controller)


@router.post("/{workflow_id}/locations/pick", response_model=WorkflowView)
async def pick_location(
    workflow_id: str,
    payload: LocationRequest,
    registry: WorkflowRegistry = Depends(get_registry),
) -> WorkflowView:
    """Map click: the first pick sets the start, later picks set the end."""
    controller = _controller(registry, workflow_id)
    await controller.pick_location(payload.lat, payload.lng)
    return _view(workflow_id, controller)


@router.put("/{workflow_id}/policy", response_model=WorkflowView)
async def set_policy(
    workflow_id: str,
    payload: PolicyRequest,
    registry: WorkflowRegistry = Depends(get_registry),
) -> WorkflowView:
    controller = _controller(registry, workflow_id)
    await controller.set_policy(payload.force_return_to_end, payload.max_return_distance_km)
    return _view(workflow_id, controller)


@router.get("/{workflow_id}/drivers", response_model=List[DriverModel])
async def list_drivers(
    workflow_id: str,
    refresh: bool = Query(default=False, description="Reload the roster from the backend."),
    registry: WorkflowRegistry = Depends(get_registry),
) -> List[DriverModel]:
    controller = _controller(registry, workflow_id)
    if refresh:
        await controller.refresh_drivers()
    return [driver_model(driver) for driver in controller.state.drivers]


@router.put("/{workflow_id}/assignment", response_model=WorkflowView)
async def set_assignment(
    workflow_id: str,
    payload: AssignmentRequest,
    registry: WorkflowRegistry = Depends(get_registry),
) -> WorkflowView:
    controller = _controller(registry, workflow_id)
    await controller.select_driver(payload.driver_id)
    if controller.state.driver_id == payload.driver_id:
        await controller.set_schedule(payload.start_time, payload.end_time, payload.notes)
    return _view(workflow_id, controller)


@router.post("/{workflow_id}/advance", response_model=WorkflowView)
async def advance(
    workflow_id: str,
    wait: bool = Query(default=True, description="Wait for the step's remote call to finish."),
    registry: WorkflowRegistry = Depends(get_registry),
) -> WorkflowView:
    controller = _controller(registry, workflow_id)
    await controller.advance(wait=wait)
    return _view(workflow_id, controller)


@router.post("/{workflow_id}/back", response_model=WorkflowView)
async def go_back(workflow_id: str, registry: WorkflowRegistry = Depends(get_registry)) -> WorkflowView:
    controller = _controller(registry, workflow_id)
    await controller.back()
    return _view(workflow_id, controller)
