"""In-memory store of the workflows driven through the HTTP API."""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass
from typing import Callable, Optional

from ..config import settings
from ..persistence.filesystem import FileStorage
from ..services.backend import BackendClient
from ..services.drivers.roster import DriverRoster
from ..services.geocoding import LocationResolver
from ..services.orders.pool import OrderPool
from ..services.routing.assigner import DriverAssigner
from ..services.routing.optimization_client import OptimizationClient
from ..services.routing.persister import RoutePersister
from .controller import WorkflowController

logger = logging.getLogger(__name__)

ControllerFactory = Callable[[str, str, Optional[str]], WorkflowController]


def build_controller(
    organization_id: str,
    organization_name: str = "",
    access_token: Optional[str] = None,
) -> WorkflowController:
    """Wire a controller to the configured optimizer, backend and geocoder."""

    backend = BackendClient(access_token=access_token, organization_id=organization_id)
    storage = FileStorage() if settings.archive_saved_routes else None
    return WorkflowController(
        organization_id,
        organization_name=organization_name,
        order_pool=OrderPool(
            backend,
            pickup_minutes=settings.estimated_pickup_minutes,
            delivery_minutes=settings.estimated_delivery_minutes,
        ),
        driver_roster=DriverRoster(backend),
        optimizer=OptimizationClient(),
        persister=RoutePersister(backend),
        assigner=DriverAssigner(backend),
        resolver=LocationResolver(),
        storage=storage,
    )


@dataclass(slots=True)
class _Entry:
    controller: WorkflowController
    touched: float


class WorkflowRegistry:
    """Workflows by id, dropped once idle, completed or over capacity.

    Idle workflows expire after ``idle_ttl`` seconds and completed ones after
    ``completed_ttl``. When more than ``max_workflows`` are held the least
    recently used are dropped first.
    """

    def __init__(
        self,
        factory: ControllerFactory = build_controller,
        *,
        idle_ttl: Optional[float] = None,
        completed_ttl: Optional[float] = None,
        max_workflows: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.factory = factory
        self.idle_ttl = idle_ttl if idle_ttl is not None else settings.workflow_idle_ttl_seconds
        self.completed_ttl = completed_ttl if completed_ttl is not None else settings.completed_workflow_ttl_seconds
        self.max_workflows = max_workflows if max_workflows is not None else settings.max_workflows
        self.clock = clock
        self._workflows: dict[str, _Entry] = {}

    def create(
        self,
        organization_id: str,
        organization_name: str = "",
        access_token: Optional[str] = None,
    ) -> tuple[str, WorkflowController]:
        self._prune()
        workflow_id = uuid.uuid4().hex
        controller = self.factory(organization_id, organization_name, access_token)
        self._workflows[workflow_id] = _Entry(controller=controller, touched=self.clock())
        while len(self._workflows) > self.max_workflows:
            oldest = next(iter(self._workflows))
            self._drop(oldest, "capacity reached")
        logger.info(f"Created workflow {workflow_id} for organization {organization_id}")
        return workflow_id, controller

    def get(self, workflow_id: str) -> WorkflowController:
        """Raises ``KeyError`` for unknown or expired workflows."""
        self._prune()
        entry = self._workflows.pop(workflow_id)
        entry.touched = self.clock()
        # Re-insert so iteration order stays least recently used first.
        self._workflows[workflow_id] = entry
        return entry.controller

    def discard(self, workflow_id: str) -> bool:
        removed = self._workflows.pop(workflow_id, None)
        if removed is not None:
            logger.info(f"Discarded workflow {workflow_id}")
        return removed is not None

    def _prune(self) -> None:
        now = self.clock()
        for workflow_id, entry in list(self._workflows.items()):
            ttl = self.completed_ttl if entry.controller.state.completed else self.idle_ttl
            if now - entry.touched > ttl:
                self._drop(workflow_id, "expired")

    def _drop(self, workflow_id: str, reason: str) -> None:
        del self._workflows[workflow_id]
        logger.info(f"Dropped workflow {workflow_id}: {reason}")


registry = WorkflowRegistry()


def get_registry() -> WorkflowRegistry:
    return registry
