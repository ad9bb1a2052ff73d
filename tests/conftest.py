from __future__ import annotations

from collections.abc import Sequence

import pytest

from edgehost_cli.core.exceptions import InventoryAPIError
from edgehost_cli.core.models import HostRead, InstanceRead, MetadataPair, SecurityFeature


class FakeInventory:
    """In-memory inventory that counts calls and fails on demand per host name."""

    def __init__(self) -> None:
        self.register_calls: list[str] = []
        self.patch_calls: list[str] = []
        self.instance_calls: list[str] = []
        self.patch_payloads: dict[str, dict[str, object]] = {}
        self.instance_payloads: dict[str, dict[str, object]] = {}
        self.register_failures: dict[str, str] = {}
        self.patch_failures: dict[str, str] = {}
        self.instance_failures: dict[str, str] = {}
        self._names_by_id: dict[str, str] = {}

    async def register_host(
        self,
        *,
        name: str,
        serial_number: str | None = None,
        uuid: str | None = None,
        auto_onboard: bool = True,
    ) -> HostRead:
        self.register_calls.append(name)
        if name in self.register_failures:
            raise InventoryAPIError(400, self.register_failures[name])
        host_id = f"host-{name}"
        self._names_by_id[host_id] = name
        return HostRead(resource_id=host_id, name=name, serial_number=serial_number, uuid=uuid)

    async def patch_host(
        self,
        host_id: str,
        *,
        name: str,
        site_id: str | None = None,
        metadata: Sequence[MetadataPair] = (),
    ) -> HostRead:
        self.patch_calls.append(name)
        if name in self.patch_failures:
            raise InventoryAPIError(500, self.patch_failures[name])
        self.patch_payloads[name] = {"host_id": host_id, "site_id": site_id, "metadata": list(metadata)}
        return HostRead(resource_id=host_id, name=name)

    async def create_instance(
        self,
        *,
        host_id: str,
        name: str,
        os_id: str | None,
        security_feature: SecurityFeature | None,
        local_account_id: str | None = None,
    ) -> InstanceRead:
        host_name = self._names_by_id.get(host_id, name.removesuffix("-instance"))
        self.instance_calls.append(host_name)
        if host_name in self.instance_failures:
            raise InventoryAPIError(409, self.instance_failures[host_name])
        self.instance_payloads[host_name] = {
            "host_id": host_id,
            "name": name,
            "os_id": os_id,
            "security_feature": security_feature,
            "local_account_id": local_account_id,
        }
        return InstanceRead(resource_id=f"inst-{host_name}", name=name)


@pytest.fixture
def inventory() -> FakeInventory:
    return FakeInventory()
