"""Application configuration and settings management."""

from pathlib import Path
from typing import Any, Literal, Optional

import json
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="ROUTEFLOW_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "Route Creation Workflow API"
    api_prefix: str = "/api"
    data_root: Path = Field(default=Path("data"), description="Root directory for archived route payloads.")
    archive_saved_routes: bool = Field(
        default=False,
        description="Write a JSON/CSV copy of every saved route under data_root/outputs.",
    )

    # Upstream services
    optimizer_base_url: Optional[str] = Field(
        default=None,
        description="Base URL of the multi-delivery optimization service (e.g., http://localhost:8001).",
    )
    optimizer_path: str = Field(default="/api/v1/routes/optimize-multi-delivery")
    api_base_url: Optional[str] = Field(
        default=None,
        description="Base URL of the operations backend that stores orders, routes and drivers.",
    )
    api_access_token: Optional[str] = Field(
        default=None,
        description="Bearer token forwarded to the operations backend when the caller supplies none.",
    )
    geocoder_base_url: str = Field(
        default="https://nominatim.openstreetmap.org",
        description="Nominatim-compatible reverse geocoding endpoint.",
    )
    geocoder_user_agent: str = "routeflow/0.1"
    request_timeout_seconds: float = Field(default=30.0, gt=0.0)
    geocoder_timeout_seconds: float = Field(default=5.0, gt=0.0)

    # Congestion buckets (seconds of traffic delay, strict lower bounds)
    congestion_light_seconds: float = Field(default=5.0, ge=0.0)
    congestion_moderate_seconds: float = Field(default=15.0, ge=0.0)
    congestion_heavy_seconds: float = Field(default=30.0, ge=0.0)
    congestion_severe_seconds: float = Field(default=60.0, ge=0.0)
    default_route_speed_kmh: float = Field(default=35.0, gt=0.0)

    # Optimization policy defaults
    include_traffic: bool = True
    departure_time: str = "now"
    travel_mode: Literal["car", "truck", "bicycle", "pedestrian", "motorcycle"] = "car"
    route_type: Literal["fastest", "shortest", "eco", "thrilling"] = "fastest"
    max_orders_per_trip: int = Field(default=10, ge=1)
    force_return_to_end: bool = False
    max_return_distance_km: float = Field(default=0.0, ge=0.0)
    estimated_pickup_minutes: int = Field(default=5, ge=0)
    estimated_delivery_minutes: int = Field(default=3, ge=0)

    # Driver assignment schedule defaults
    assignment_start_offset_minutes: int = Field(default=30, ge=0)
    assignment_end_offset_minutes: int = Field(default=120, ge=1)
    max_driver_notes_length: int = Field(default=500, ge=1)

    # In-memory workflow retention
    workflow_idle_ttl_seconds: float = Field(
        default=3600.0,
        gt=0.0,
        description="Workflows untouched for longer than this are dropped.",
    )
    completed_workflow_ttl_seconds: float = Field(
        default=300.0,
        gt=0.0,
        description="Completed workflows are kept this long after their last access.",
    )
    max_workflows: int = Field(default=1000, ge=1)

    frontend_allowed_origins: tuple[str, ...] = Field(
        default=(
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ),
        description="Permitted web origins for browser clients (CORS).",
    )

    @field_validator("data_root", mode="before")
    @classmethod
    def _expand_path(cls, value: Any) -> Path:
        path_value = value if isinstance(value, Path) else Path(str(value))
        return path_value.expanduser().resolve()

    @field_validator("optimizer_base_url", "api_base_url", "geocoder_base_url", mode="before")
    @classmethod
    def _strip_trailing_slash(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip().rstrip("/")
            return value or None
        return value

    @field_validator("frontend_allowed_origins", mode="before")
    @classmethod
    def _parse_str_tuple_from_env(cls, value: Any) -> tuple[str, ...]:
        """Parse string tuple from environment variable (comma-separated or JSON array)."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(str(item) for item in value)
        if isinstance(value, str):
            # Try JSON first
            try:
                parsed = json.loads(value)
                if isinstance(parsed, list):
                    return tuple(str(item) for item in parsed)
            except (json.JSONDecodeError, TypeError):
                pass
            if "," in value:
                return tuple(item.strip() for item in value.split(",") if item.strip())
            if value.strip():
                return (value.strip(),)
        return tuple()


settings = Settings()
