"""Outcome records returned by the fallible workflow operations.

Operations that talk to remote services never raise to their caller; they
return one of these records instead. ``kind`` separates local validation
problems, remote service failures and upstream data-quality problems so the
workflow can surface them differently.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from .routing.models import OptimizedRoute, SavedRoute


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    SERVICE = "service"
    DATA_QUALITY = "data_quality"


class RouteDataError(ValueError):
    """Raised when optimizer output violates an invariant of the route model."""


@dataclass(frozen=True, slots=True)
class OptimizationOutcome:
    ok: bool
    route: Optional[OptimizedRoute] = None
    reason: Optional[str] = None
    kind: Optional[ErrorKind] = None

    @classmethod
    def success(cls, route: OptimizedRoute) -> OptimizationOutcome:
        return cls(ok=True, route=route)

    @classmethod
    def failure(cls, reason: str, kind: ErrorKind = ErrorKind.SERVICE) -> OptimizationOutcome:
        return cls(ok=False, reason=reason, kind=kind)


@dataclass(frozen=True, slots=True)
class PersistOutcome:
    ok: bool
    route_id: Optional[str] = None
    saved_route: Optional[SavedRoute] = None
    reason: Optional[str] = None
    kind: Optional[ErrorKind] = None

    @classmethod
    def success(cls, saved_route: SavedRoute) -> PersistOutcome:
        return cls(ok=True, route_id=saved_route.uuid, saved_route=saved_route)

    @classmethod
    def failure(cls, reason: str, kind: ErrorKind = ErrorKind.SERVICE) -> PersistOutcome:
        return cls(ok=False, reason=reason, kind=kind)


@dataclass(frozen=True, slots=True)
class AssignOutcome:
    ok: bool
    reason: Optional[str] = None
    kind: Optional[ErrorKind] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    @classmethod
    def success(cls, start_time: datetime, end_time: datetime) -> AssignOutcome:
        return cls(ok=True, start_time=start_time, end_time=end_time)

    @classmethod
    def failure(cls, reason: str, kind: ErrorKind = ErrorKind.SERVICE) -> AssignOutcome:
        return cls(ok=False, reason=reason, kind=kind)


def extract_error_message(data: Any, default: str) -> str:
    """Pick the readable message out of an error payload."""

    if isinstance(data, dict):
        for key in ("error", "message", "detail"):
            value = data.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
            if isinstance(value, list) and value:
                first = value[0]
                if isinstance(first, dict) and first.get("msg"):
                    return str(first["msg"])
                return str(first)
    return default

