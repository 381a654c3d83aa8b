"""Wire schemas of the operations backend (orders and organization members)."""

from __future__ import annotations

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict


class BackendOrder(BaseModel):
    model_config = ConfigDict(extra="ignore")

    uuid: str
    order_number: str
    description: Optional[str] = None
    total_amount: Any = 0
    pickup_address: Optional[str] = None
    delivery_address: Optional[str] = None
    pickup_lat: Any = None
    pickup_lng: Any = None
    delivery_lat: Any = None
    delivery_lng: Any = None
    priority: Optional[int] = None
    status: Optional[str] = None


class BackendMemberRole(BaseModel):
    model_config = ConfigDict(extra="ignore")

    role_name: str


class BackendMember(BaseModel):
    model_config = ConfigDict(extra="ignore")

    user_uuid: Optional[str] = None
    organization_membership_uuid: Optional[str] = None
    membership_uuid: Optional[str] = None
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    status: str = "INACTIVE"
    roles: List[BackendMemberRole] = []
