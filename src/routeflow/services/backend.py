"""Shared HTTP plumbing for the operations backend (orders, routes, drivers)."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..config import settings
from .results import extract_error_message

logger = logging.getLogger(__name__)


class BackendError(RuntimeError):
    """Raised when the operations backend cannot fulfil a request."""

    def __init__(self, message: str, status_code: int | None = None, payload: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


class BackendClient:
    """Thin async wrapper that sends JSON requests to the operations backend.

    Responses follow the ``{success, data, error}`` envelope used by the
    backend; ``request`` returns the decoded body and raises ``BackendError``
    for transport failures, non-2xx answers and ``success: false`` bodies.
    """

    def __init__(
        self,
        base_url: str | None = None,
        access_token: str | None = None,
        organization_id: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url or settings.api_base_url
        self.access_token = access_token or settings.api_access_token
        self.organization_id = organization_id
        self.timeout = timeout if timeout is not None else settings.request_timeout_seconds
        self._client = client

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        if self.organization_id:
            headers["organization-id"] = self.organization_id
        return headers

    def _get_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=httpx.Timeout(self.timeout, connect=10.0))

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        if self._client is not None:
            return await self._client.request(method, url, headers=self._headers(), **kwargs)
        async with self._get_client() as client:
            return await client.request(method, url, headers=self._headers(), **kwargs)

    async def request(self, method: str, endpoint: str, **kwargs: Any) -> Any:
        if not self.base_url:
            raise BackendError("Operations backend URL is not configured")
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        try:
            response = await self._send(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            logger.warning(f"{method} {url} timed out: {exc}")
            raise BackendError("The operations backend did not respond in time") from exc
        except httpx.HTTPError as exc:
            logger.warning(f"{method} {url} failed: {exc}")
            raise BackendError(f"Could not reach the operations backend: {exc}") from exc

        try:
            data = response.json()
        except ValueError:
            data = None

        if response.is_error:
            message = extract_error_message(data, f"HTTP {response.status_code}: {response.reason_phrase}")
            logger.warning(f"{method} {url} returned {response.status_code}: {message}")
            raise BackendError(message, status_code=response.status_code, payload=data)
        if isinstance(data, dict) and data.get("success") is False:
            message = extract_error_message(data, "The operations backend rejected the request")
            raise BackendError(message, status_code=response.status_code, payload=data)
        if data is None:
            raise BackendError("The operations backend returned a non-JSON response", status_code=response.status_code)
        return data
