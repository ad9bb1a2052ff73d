"""Non-interactive entry points used by the Typer commands."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable, Sequence
from contextlib import asynccontextmanager
from pathlib import Path

import structlog

from edgehost_cli.core.exceptions import HostSelectionError, IntakeError, InventoryAPIError, NoHostsSelectedError
from edgehost_cli.core.intake import build_session, load_intake, select_hosts
from edgehost_cli.core.models import HostRead
from edgehost_cli.core.provisioning import InventoryOperations, ProvisioningOrchestrator, register_hosts
from edgehost_cli.core.session import HostConfigSession
from edgehost_cli.core.steps import HostConfigStep
from edgehost_cli.utils.inventory import InventoryClient
from edgehost_cli.utils.logging import inventory_context

logger = structlog.get_logger(__name__)

EXIT_OK = 0
EXIT_INPUT_ERROR = 1
EXIT_HOST_FAILURE = 3

Echo = Callable[[str], None]


@asynccontextmanager
async def open_inventory(api_url: str, project: str, *, timeout: float) -> AsyncIterator[InventoryClient]:
    async with InventoryClient(api_url, project, timeout=timeout) as client:
        with inventory_context(project, api_url):
            yield client


def _load_session(intake_path: Path, host_filters: Sequence[str]) -> HostConfigSession | None:
    try:
        intake = load_intake(intake_path)
    except IntakeError as exc:
        logger.error("intake-error", error=str(exc))
        return None
    try:
        intake = select_hosts(intake, host_filters)
    except HostSelectionError as exc:
        logger.error("host-selection-error", error=str(exc))
        return None
    return build_session(intake)


def walk_steps(session: HostConfigSession) -> HostConfigStep | None:
    """Advance through every wizard step; return the first step that does not validate."""
    while session.status.current_step < HostConfigStep.last():
        if not session.advance():
            return session.status.current_step
    return None


def format_host_row(host: HostRead) -> str:
    site = (host.site.name or host.site.resource_id) if host.site else "-"
    os_name = "-"
    if host.instance is not None and host.instance.os is not None:
        os_name = host.instance.os.name or host.instance.os.resource_id
    return "\t".join(
        [
            host.resource_id or "-",
            host.name,
            host.serial_number or "-",
            site,
            os_name,
            host.current_state or "-",
        ]
    )


async def async_run_provision(
    *,
    intake_path: Path,
    host_filters: Sequence[str],
    api_url: str,
    project: str,
    timeout: float,
    echo: Echo,
    inventory: InventoryOperations | None = None,
) -> int:
    """Register, update and instantiate every host of an intake file.

    Returns:
        0 - every host succeeded
        1 - intake or configuration error
        3 - one or more hosts failed
    """
    session = _load_session(intake_path, host_filters)
    if session is None:
        return EXIT_INPUT_ERROR
    if not session.contains_hosts:
        logger.warning("no-hosts-selected")
        return EXIT_OK

    blocked = walk_steps(session)
    if blocked is not None:
        logger.error("step-incomplete", step=blocked.label)
        echo(f"Cannot provision: step '{blocked.label}' is incomplete")
        return EXIT_INPUT_ERROR

    async def _run(client: InventoryOperations) -> ProvisioningOrchestrator:
        orchestrator = ProvisioningOrchestrator(session, client)
        await orchestrator.run()
        return orchestrator

    try:
        if inventory is not None:
            orchestrator = await _run(inventory)
        else:
            async with open_inventory(api_url, project, timeout=timeout) as client:
                orchestrator = await _run(client)
    except NoHostsSelectedError as exc:
        logger.error("no-hosts-selected", error=str(exc))
        return EXIT_INPUT_ERROR

    for result in orchestrator.report():
        status = "ok" if result.success else f"failed: {result.message}"
        echo(f"{result.name}\t{status}")
    notification = orchestrator.notification
    if notification is not None:
        echo(f"{notification.title}: {notification.text}")
        if notification.variant == "error":
            return EXIT_HOST_FAILURE
    return EXIT_OK


async def async_run_register(
    *,
    intake_path: Path,
    host_filters: Sequence[str],
    api_url: str,
    project: str,
    timeout: float,
    echo: Echo,
    inventory: InventoryOperations | None = None,
) -> int:
    """Only register the intake hosts that have no inventory id yet."""
    session = _load_session(intake_path, host_filters)
    if session is None:
        return EXIT_INPUT_ERROR
    if not session.unregistered_hosts():
        logger.warning("no-hosts-to-register")
        return EXIT_OK

    if inventory is not None:
        failures = await register_hosts(session, inventory)
    else:
        async with open_inventory(api_url, project, timeout=timeout) as client:
            failures = await register_hosts(session, client)

    for host in session.hosts:
        if host.name in failures:
            echo(f"{host.name}\tfailed: {failures[host.name]}")
        else:
            echo(f"{host.name}\t{host.durable_id}")
    return EXIT_HOST_FAILURE if failures else EXIT_OK


async def async_list_hosts(
    *,
    filter: str | None,
    api_url: str,
    project: str,
    timeout: float,
    offset: int,
    page_size: int,
    order_by: str | None,
    echo: Echo,
) -> int:
    try:
        async with open_inventory(api_url, project, timeout=timeout) as client:
            page = await client.list_hosts(filter, offset=offset, page_size=page_size, order_by=order_by)
    except InventoryAPIError as exc:
        logger.error("list-hosts-failed", status=exc.status_code, error=exc.message)
        return EXIT_HOST_FAILURE

    for host in page.hosts:
        echo(format_host_row(host))
    echo(f"Total: {page.total_elements}")
    logger.info("hosts-listed", shown=len(page.hosts), total=page.total_elements, has_next=page.has_next)
    return EXIT_OK


__all__ = [
    "EXIT_HOST_FAILURE",
    "EXIT_INPUT_ERROR",
    "EXIT_OK",
    "async_list_hosts",
    "async_run_provision",
    "async_run_register",
    "format_host_row",
    "open_inventory",
    "walk_steps",
]
