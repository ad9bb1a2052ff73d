"""Async HTTP client for the edge inventory service.

Only transport lives here: every method issues one request, raises
``InventoryAPIError`` on any HTTP or connection failure and returns parsed
Pydantic models. Batch and retry decisions belong to the callers.
"""

from __future__ import annotations

from collections.abc import Sequence
from types import TracebackType
from typing import Any

import httpx
import structlog
from pydantic import ValidationError

from edgehost_cli.core.exceptions import InventoryAPIError
from edgehost_cli.core.models import (
    HostRead,
    HostsPage,
    InstanceRead,
    MetadataPair,
    SecurityFeature,
)

logger = structlog.get_logger(__name__)

INSTANCE_KIND_METAL = "INSTANCE_KIND_METAL"
DEFAULT_TIMEOUT = 30.0


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(payload, dict):
        message = payload.get("message") or payload.get("detail")
        if message:
            return str(message)
    return response.reason_phrase or f"HTTP {response.status_code}"


def _compact(payload: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in payload.items() if value is not None}


class InventoryClient:
    """HTTP client bound to one inventory project."""

    def __init__(
        self,
        base_url: str,
        project: str,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.project = project
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            follow_redirects=True,
        )

    async def __aenter__(self) -> InventoryClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def _path(self, suffix: str) -> str:
        return f"/v1/projects/{self.project}/{suffix}"

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        logger.debug("inventory-request", method=method, path=path)
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.RequestError as exc:
            raise InventoryAPIError(0, f"Request failed: {exc}") from exc
        if response.is_error:
            message = _error_message(response)
            logger.warning("inventory-error", method=method, path=path, status=response.status_code, error=message)
            raise InventoryAPIError(response.status_code, message)
        if response.status_code == 204 or not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise InventoryAPIError(response.status_code, f"Invalid JSON response: {exc}") from exc

    async def register_host(
        self,
        *,
        name: str,
        serial_number: str | None = None,
        uuid: str | None = None,
        auto_onboard: bool = True,
    ) -> HostRead:
        """POST /compute/hosts/register"""
        body = _compact(
            {
                "name": name,
                "serialNumber": serial_number,
                "uuid": uuid,
                "autoOnboard": auto_onboard,
            }
        )
        data = await self._request("POST", self._path("compute/hosts/register"), json=body)
        return self._parse(HostRead, data, label="register host")

    async def patch_host(
        self,
        host_id: str,
        *,
        name: str,
        site_id: str | None = None,
        metadata: Sequence[MetadataPair] = (),
    ) -> HostRead:
        """PATCH /compute/hosts/{host_id}"""
        body = _compact(
            {
                "name": name,
                "siteId": site_id,
                "metadata": [pair.model_dump() for pair in metadata],
            }
        )
        data = await self._request("PATCH", self._path(f"compute/hosts/{host_id}"), json=body)
        return self._parse(HostRead, data, label="patch host")

    async def create_instance(
        self,
        *,
        host_id: str,
        name: str,
        os_id: str | None,
        security_feature: SecurityFeature | None,
        local_account_id: str | None = None,
        kind: str = INSTANCE_KIND_METAL,
    ) -> InstanceRead:
        """POST /compute/instances"""
        body = _compact(
            {
                "securityFeature": str(security_feature) if security_feature else None,
                "osID": os_id,
                "kind": kind,
                "hostID": host_id,
                "name": name,
                "localAccountID": local_account_id,
            }
        )
        data = await self._request("POST", self._path("compute/instances"), json=body)
        return self._parse(InstanceRead, data, label="create instance")

    async def list_hosts(
        self,
        filter: str | None = None,
        *,
        offset: int = 0,
        page_size: int = 20,
        order_by: str | None = None,
    ) -> HostsPage:
        """GET /compute/hosts"""
        params = _compact(
            {
                "filter": filter,
                "offset": offset,
                "pageSize": page_size,
                "orderBy": order_by,
            }
        )
        data = await self._request("GET", self._path("compute/hosts"), params=params)
        return self._parse(HostsPage, data, label="list hosts")

    def _parse(self, model: Any, data: Any, *, label: str) -> Any:
        try:
            return model.model_validate(data)
        except ValidationError as exc:
            raise InventoryAPIError(0, f"Invalid {label} payload: {exc}") from exc


__all__ = ["INSTANCE_KIND_METAL", "InventoryClient"]
