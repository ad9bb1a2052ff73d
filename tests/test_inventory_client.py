from __future__ import annotations

import json
from collections.abc import Callable

import httpx
import pytest
import structlog

from edgehost_cli.core.exceptions import InventoryAPIError
from edgehost_cli.core.models import MetadataPair, SecurityFeature
from edgehost_cli.utils.inventory import InventoryClient
from edgehost_cli.utils.logging import inventory_context

BASE_URL = "https://inventory.example.com"


def _client(handler: Callable[[httpx.Request], httpx.Response]) -> InventoryClient:
    return InventoryClient(BASE_URL, "lab", transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_register_host_posts_camel_case_body() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"resourceId": "host-1", "name": "edge-1", "serialNumber": "SN1"})

    async with _client(handler) as client:
        host = await client.register_host(name="edge-1", serial_number="SN1", auto_onboard=False)

    assert host.resource_id == "host-1"
    assert host.serial_number == "SN1"
    request = seen[0]
    assert request.method == "POST"
    assert request.url.path == "/v1/projects/lab/compute/hosts/register"
    assert json.loads(request.content) == {"name": "edge-1", "serialNumber": "SN1", "autoOnboard": False}


@pytest.mark.asyncio
async def test_patch_host_sends_site_and_metadata() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"resourceId": "host-1", "name": "edge-1", "metadata": None})

    async with _client(handler) as client:
        host = await client.patch_host(
            "host-1",
            name="edge-1",
            site_id="site-1",
            metadata=[MetadataPair(key="env", value="prod")],
        )

    assert host.metadata == []
    request = seen[0]
    assert request.method == "PATCH"
    assert request.url.path == "/v1/projects/lab/compute/hosts/host-1"
    assert json.loads(request.content) == {
        "name": "edge-1",
        "siteId": "site-1",
        "metadata": [{"key": "env", "value": "prod"}],
    }


@pytest.mark.asyncio
async def test_create_instance_payload() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"resourceId": "inst-1", "name": "edge-1-instance"})

    async with _client(handler) as client:
        instance = await client.create_instance(
            host_id="host-1",
            name="edge-1-instance",
            os_id="os-1",
            security_feature=SecurityFeature.NONE,
        )

    assert instance.resource_id == "inst-1"
    assert seen[0].url.path == "/v1/projects/lab/compute/instances"
    assert json.loads(seen[0].content) == {
        "securityFeature": "SECURITY_FEATURE_NONE",
        "osID": "os-1",
        "kind": "INSTANCE_KIND_METAL",
        "hostID": "host-1",
        "name": "edge-1-instance",
    }


@pytest.mark.asyncio
async def test_list_hosts_passes_filter_and_pagination() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={"hosts": [{"resourceId": "host-1", "name": "edge-1"}], "totalElements": 7, "hasNext": True},
        )

    async with _client(handler) as client:
        page = await client.list_hosts('name="edge-1"', offset=5, page_size=1)

    assert page.total_elements == 7
    assert page.has_next is True
    assert [host.name for host in page.hosts] == ["edge-1"]
    params = seen[0].url.params
    assert params["filter"] == 'name="edge-1"'
    assert params["offset"] == "5"
    assert params["pageSize"] == "1"
    assert "orderBy" not in params


@pytest.mark.asyncio
async def test_error_status_uses_message_field() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, json={"message": "quota exceeded"})

    async with _client(handler) as client:
        with pytest.raises(InventoryAPIError) as excinfo:
            await client.register_host(name="edge-1", serial_number="SN1")

    assert excinfo.value.status_code == 429
    assert excinfo.value.message == "quota exceeded"


@pytest.mark.asyncio
async def test_connection_failure_becomes_api_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with _client(handler) as client:
        with pytest.raises(InventoryAPIError) as excinfo:
            await client.list_hosts()

    assert excinfo.value.status_code == 0
    assert "connection refused" in excinfo.value.message


@pytest.mark.asyncio
async def test_unexpected_payload_becomes_api_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"resourceId": "host-1"})

    async with _client(handler) as client:
        with pytest.raises(InventoryAPIError, match="Invalid register host payload"):
            await client.register_host(name="edge-1", uuid="u-1")


def test_inventory_context_binds_project() -> None:
    with inventory_context("lab", BASE_URL):
        bound = structlog.contextvars.get_contextvars()
        assert bound["project"] == "lab"
        assert bound["api_url"] == BASE_URL
    assert "project" not in structlog.contextvars.get_contextvars()
