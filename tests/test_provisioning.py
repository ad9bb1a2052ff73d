from __future__ import annotations

import pytest
from conftest import FakeInventory

from edgehost_cli.core.exceptions import InventoryAPIError, NoHostsSelectedError
from edgehost_cli.core.models import (
    HostRead,
    HostRecord,
    MetadataPair,
    NewHost,
    OperatingSystemRef,
    SecurityFeature,
    SiteRef,
)
from edgehost_cli.core.provisioning import (
    ProvisioningOrchestrator,
    ProvisioningPhase,
    attempt,
    describe_error,
    register_hosts,
)
from edgehost_cli.core.session import HostConfigSession


def _configured_session(*names: str, auto_provision: bool = True) -> HostConfigSession:
    session = HostConfigSession()
    session.set_new_registered_hosts(NewHost(name=name, serial_number=f"SN-{name}") for name in names)
    session.set_site(SiteRef(resource_id="site-1"))
    session.apply_global_os(OperatingSystemRef(resource_id="os-1"))
    session.apply_global_security(True)
    session.set_metadata([MetadataPair(key="env", value="lab")])
    session.set_auto_provision(auto_provision)
    return session


@pytest.mark.asyncio
async def test_register_failure_stops_host_at_idle(inventory: FakeInventory) -> None:
    session = _configured_session("h1")
    inventory.register_failures["h1"] = "quota exceeded"
    orchestrator = ProvisioningOrchestrator(session, inventory)

    results = await orchestrator.run()

    assert results == {"h1": "quota exceeded"}
    assert orchestrator.phase is ProvisioningPhase.IDLE
    assert inventory.patch_calls == []
    assert inventory.instance_calls == []
    assert session.select_host("h1").error == "quota exceeded"


@pytest.mark.asyncio
async def test_full_success_returns_to_hosts(inventory: FakeInventory) -> None:
    session = _configured_session("h1", "h2")
    phases: list[ProvisioningPhase] = []
    orchestrator = ProvisioningOrchestrator(session, inventory, on_phase=phases.append)

    results = await orchestrator.run()

    assert results == {"h1": True, "h2": True}
    assert phases == [
        ProvisioningPhase.REGISTERING,
        ProvisioningPhase.UPDATING,
        ProvisioningPhase.INSTANTIATING,
        ProvisioningPhase.RESULTS,
        ProvisioningPhase.BACK_TO_HOSTS,
    ]
    assert orchestrator.notification is not None
    assert orchestrator.notification.variant == "success"
    assert orchestrator.notification.text == (
        "Hosts successfully registered. Provisioning will start once the hosts are connected."
    )
    assert inventory.instance_payloads["h1"] == {
        "host_id": "host-h1",
        "name": "h1-instance",
        "os_id": "os-1",
        "security_feature": SecurityFeature.SECURE_BOOT_AND_FULL_DISK_ENCRYPTION,
        "local_account_id": None,
    }
    assert inventory.patch_payloads["h2"]["site_id"] == "site-1"
    assert not session.contains_hosts


@pytest.mark.asyncio
async def test_retry_skips_hosts_that_already_succeeded(inventory: FakeInventory) -> None:
    session = _configured_session("h1", "h2", "h3")
    inventory.instance_failures["h2"] = "no capacity"
    orchestrator = ProvisioningOrchestrator(session, inventory)

    first = await orchestrator.run()
    assert first == {"h1": True, "h2": "no capacity", "h3": True}
    assert orchestrator.phase is ProvisioningPhase.IDLE
    assert orchestrator.notification is not None
    assert orchestrator.notification.failed_hosts == ("h2",)
    assert orchestrator.notification.text == "Not all hosts were provisioned. Failed hosts: h2"

    del inventory.instance_failures["h2"]
    second = await orchestrator.run()

    assert second == {"h1": True, "h2": True, "h3": True}
    assert inventory.register_calls == ["h1", "h2", "h3"]
    assert inventory.patch_calls == ["h1", "h2", "h3", "h2"]
    assert inventory.instance_calls == ["h1", "h2", "h3", "h2"]
    assert orchestrator.phase is ProvisioningPhase.BACK_TO_HOSTS


@pytest.mark.asyncio
async def test_retry_forgets_results_of_renamed_hosts(inventory: FakeInventory) -> None:
    session = _configured_session("h1")
    inventory.patch_failures["h1"] = "name taken"
    orchestrator = ProvisioningOrchestrator(session, inventory)

    assert await orchestrator.run() == {"h1": "name taken"}

    session.set_host_name(session.first_host().key, "h1-renamed")
    second = await orchestrator.run()

    assert second == {"h1-renamed": True}
    assert [result.name for result in orchestrator.report()] == ["h1-renamed"]
    assert orchestrator.notification is not None
    assert orchestrator.notification.variant == "success"


@pytest.mark.asyncio
async def test_failed_patch_skips_instance_creation(inventory: FakeInventory) -> None:
    session = _configured_session("h1", "h2")
    inventory.patch_failures["h1"] = "site not found"

    results = await ProvisioningOrchestrator(session, inventory).run()

    assert results == {"h1": "site not found", "h2": True}
    assert inventory.instance_calls == ["h2"]


@pytest.mark.asyncio
async def test_without_auto_provision_registration_is_skipped(inventory: FakeInventory) -> None:
    session = _configured_session("h1", auto_provision=False)
    session.set_hosts([HostRead(resource_id="host-h2", name="h2")])
    session.set_site(SiteRef(resource_id="site-1"))
    orchestrator = ProvisioningOrchestrator(session, inventory)

    assert orchestrator.entry_phase() is ProvisioningPhase.UPDATING
    results = await orchestrator.run()

    assert inventory.register_calls == []
    assert results["h1"] == "Host has not been registered"
    assert results["h2"] is True
    assert orchestrator.notification is not None
    assert orchestrator.notification.variant == "error"


@pytest.mark.asyncio
async def test_host_with_existing_os_is_not_reinstantiated(inventory: FakeInventory) -> None:
    session = HostConfigSession()
    session.set_hosts(
        [
            HostRead.model_validate(
                {"resourceId": "host-9", "name": "edge-9", "instance": {"os": {"resourceId": "os-1"}}}
            )
        ]
    )
    orchestrator = ProvisioningOrchestrator(session, inventory)

    results = await orchestrator.run()

    assert results == {"edge-9": True}
    assert inventory.patch_calls == ["edge-9"]
    assert inventory.instance_calls == []
    assert orchestrator.notification is not None
    assert orchestrator.notification.text == "All hosts have been configured."


@pytest.mark.asyncio
async def test_run_on_empty_session_is_a_precondition_error(inventory: FakeInventory) -> None:
    with pytest.raises(NoHostsSelectedError):
        await ProvisioningOrchestrator(HostConfigSession(), inventory).run()


@pytest.mark.asyncio
async def test_step_returns_next_phase(inventory: FakeInventory) -> None:
    session = _configured_session("h1")
    orchestrator = ProvisioningOrchestrator(session, inventory)

    assert await orchestrator.step(ProvisioningPhase.REGISTERING) is ProvisioningPhase.UPDATING
    assert session.select_host("h1").durable_id == "host-h1"
    assert await orchestrator.step(ProvisioningPhase.UPDATING) is ProvisioningPhase.INSTANTIATING
    assert await orchestrator.step(ProvisioningPhase.INSTANTIATING) is ProvisioningPhase.RESULTS
    assert await orchestrator.step(ProvisioningPhase.IDLE) is ProvisioningPhase.IDLE
    assert [result.success for result in orchestrator.report()] == [True]


@pytest.mark.asyncio
async def test_register_hosts_single_pass(inventory: FakeInventory) -> None:
    session = _configured_session("h1", "h2", auto_provision=False)
    inventory.register_failures["h2"] = "serial already in use"

    failures = await register_hosts(session, inventory)

    assert failures == {"h2": "serial already in use"}
    assert session.select_host("h1").durable_id == "host-h1"
    assert session.select_host("h2").error == "serial already in use"
    assert inventory.patch_calls == []


@pytest.mark.asyncio
async def test_attempt_uses_default_message_and_catches_crashes() -> None:
    host = HostRecord(key="h1", name="h1")
    results: dict[str, str | bool] = {}

    async def rejected() -> None:
        raise InventoryAPIError(500, "")

    async def crashed() -> None:
        raise RuntimeError("boom")

    assert await attempt(host, rejected, action="updating", results=results) is None
    assert results["h1"] == "Unknown error while updating"

    assert await attempt(host, crashed, action="registering", results=results) is None
    assert host.error == "boom"


def test_describe_error_prefers_api_message() -> None:
    assert describe_error(InventoryAPIError(404, "missing")) == "missing"
    assert describe_error(InventoryAPIError(404, "")) is None
    assert describe_error(ValueError("bad")) == "bad"
