"""Batch provisioning of the hosts in a configuration session.

The orchestrator is a small state machine::

    IDLE -> REGISTERING -> UPDATING -> INSTANTIATING -> RESULTS -> (BACK_TO_HOSTS | IDLE)

``step()`` performs exactly one phase and returns the next one; ``run()`` drives
it until the machine comes to rest. Remote calls are awaited one host at a
time in session order. A failing host never aborts the batch: its message is
stored on the host record and in ``results``. Hosts that already succeeded are
skipped, so re-running after a partial failure only retries what failed.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, MutableMapping, Sequence
from dataclasses import dataclass
from enum import StrEnum
from functools import partial
from typing import Literal, Protocol, TypeVar

import structlog

from edgehost_cli.core.exceptions import InventoryAPIError, NoHostsSelectedError
from edgehost_cli.core.models import (
    HostRead,
    HostRecord,
    HostResult,
    InstanceRead,
    MetadataPair,
    SecurityFeature,
)
from edgehost_cli.core.session import HostConfigSession

logger = structlog.get_logger(__name__)

T = TypeVar("T")

HostOutcome = str | Literal[True]


class ProvisioningPhase(StrEnum):
    IDLE = "idle"
    REGISTERING = "registering"
    UPDATING = "updating"
    INSTANTIATING = "instantiating"
    RESULTS = "results"
    BACK_TO_HOSTS = "back-to-hosts"


class InventoryOperations(Protocol):
    async def register_host(
        self,
        *,
        name: str,
        serial_number: str | None = None,
        uuid: str | None = None,
        auto_onboard: bool = True,
    ) -> HostRead: ...

    async def patch_host(
        self,
        host_id: str,
        *,
        name: str,
        site_id: str | None = None,
        metadata: Sequence[MetadataPair] = (),
    ) -> HostRead: ...

    async def create_instance(
        self,
        *,
        host_id: str,
        name: str,
        os_id: str | None,
        security_feature: SecurityFeature | None,
        local_account_id: str | None = None,
    ) -> InstanceRead: ...


@dataclass(frozen=True)
class Notification:
    variant: Literal["success", "error"]
    title: str
    text: str
    failed_hosts: tuple[str, ...] = ()


def describe_error(exc: BaseException) -> str | None:
    if isinstance(exc, InventoryAPIError):
        return exc.message or None
    return str(exc) or None


async def attempt(
    host: HostRecord,
    operation: Callable[[], Awaitable[T]],
    *,
    action: str,
    results: MutableMapping[str, HostOutcome],
    extract_message: Callable[[BaseException], str | None] = describe_error,
) -> T | None:
    """Await one remote operation for ``host``; on failure record the message and return None."""
    try:
        return await operation()
    except InventoryAPIError as exc:
        message = extract_message(exc) or f"Unknown error while {action}"
        logger.warning("host-operation-failed", host=host.name, action=action, error=message)
    except Exception as exc:  # every failure is folded into the host result
        message = extract_message(exc) or f"Unknown error while {action}"
        logger.exception("host-operation-crashed", host=host.name, action=action)
    host.error = message
    results[host.name] = message
    return None


async def _register(
    session: HostConfigSession,
    inventory: InventoryOperations,
    host: HostRecord,
) -> HostRecord:
    registered = await inventory.register_host(
        name=host.name,
        serial_number=host.serial_number,
        uuid=host.uuid,
        auto_onboard=session.auto_onboard,
    )
    return session.update_registered_host(registered, key=host.key)


async def register_hosts(session: HostConfigSession, inventory: InventoryOperations) -> dict[str, str]:
    """Register every host of the session that has no durable id yet.

    Single pass without phase chaining; returns the error message of each
    host that could not be registered.
    """
    failures: dict[str, HostOutcome] = {}
    for host in session.unregistered_hosts():
        record = await attempt(
            host,
            partial(_register, session, inventory, host),
            action="registering",
            results=failures,
        )
        if record is not None:
            host.error = None
            logger.info("host-registered", host=host.name, host_id=record.durable_id)
    return {name: str(message) for name, message in failures.items()}


class ProvisioningOrchestrator:
    """Drives register, update and instantiate across every host in a session."""

    def __init__(
        self,
        session: HostConfigSession,
        inventory: InventoryOperations,
        *,
        on_phase: Callable[[ProvisioningPhase], None] | None = None,
    ) -> None:
        self.session = session
        self.inventory = inventory
        self.results: dict[str, HostOutcome] = {}
        self.phase = ProvisioningPhase.IDLE
        self.notification: Notification | None = None
        self._on_phase = on_phase
        self._failed_this_pass: set[str] = set()

    def entry_phase(self) -> ProvisioningPhase:
        if self.session.auto_provision:
            return ProvisioningPhase.REGISTERING
        return ProvisioningPhase.UPDATING

    def succeeded(self, name: str) -> bool:
        return self.results.get(name) is True

    def report(self) -> list[HostResult]:
        return [
            HostResult(
                name=name,
                success=outcome is True,
                message=None if outcome is True else outcome,
            )
            for name, outcome in self.results.items()
        ]

    async def run(self) -> dict[str, HostOutcome]:
        if not self.session.contains_hosts:
            raise NoHostsSelectedError("There are no hosts selected for provisioning.")
        self._failed_this_pass = set()
        self.notification = None
        current = {host.name for host in self.session.hosts}
        for name in [name for name in self.results if name not in current]:
            del self.results[name]

        phase = self.entry_phase()
        while True:
            self._enter(phase)
            if phase is ProvisioningPhase.IDLE:
                break
            next_phase = await self.step(phase)
            if phase is ProvisioningPhase.BACK_TO_HOSTS:
                break
            phase = next_phase
        return dict(self.results)

    async def step(self, phase: ProvisioningPhase) -> ProvisioningPhase:
        handlers: dict[ProvisioningPhase, Callable[[], Awaitable[ProvisioningPhase]]] = {
            ProvisioningPhase.IDLE: self._idle,
            ProvisioningPhase.REGISTERING: self._register_all,
            ProvisioningPhase.UPDATING: self._update_all,
            ProvisioningPhase.INSTANTIATING: self._instantiate_all,
            ProvisioningPhase.RESULTS: self._show_results,
            ProvisioningPhase.BACK_TO_HOSTS: self._back_to_hosts,
        }
        return await handlers[phase]()

    def _enter(self, phase: ProvisioningPhase) -> None:
        self.phase = phase
        logger.info("provisioning-phase", phase=str(phase))
        if self._on_phase is not None:
            self._on_phase(phase)

    def _pending(self, host: HostRecord) -> bool:
        return not self.succeeded(host.name) and host.name not in self._failed_this_pass

    def _fail(self, host: HostRecord, message: str) -> None:
        host.error = message
        self.results[host.name] = message
        self._failed_this_pass.add(host.name)

    def _succeed(self, host: HostRecord) -> None:
        host.error = None
        self.results[host.name] = True
        logger.info("host-provisioned", host=host.name, host_id=host.durable_id)

    async def _attempt(self, host: HostRecord, operation: Callable[[], Awaitable[T]], *, action: str) -> T | None:
        outcome = await attempt(host, operation, action=action, results=self.results)
        if outcome is None:
            self._failed_this_pass.add(host.name)
        return outcome

    async def _idle(self) -> ProvisioningPhase:
        return ProvisioningPhase.IDLE

    async def _register_all(self) -> ProvisioningPhase:
        for host in self.session.hosts:
            if host.is_registered or not self._pending(host):
                continue
            await self._attempt(
                host,
                partial(_register, self.session, self.inventory, host),
                action="registering",
            )
        return ProvisioningPhase.UPDATING

    async def _update_all(self) -> ProvisioningPhase:
        for host in self.session.hosts:
            if not self._pending(host):
                continue
            if host.durable_id is None:
                self._fail(host, "Host has not been registered")
                continue
            await self._attempt(
                host,
                partial(
                    self.inventory.patch_host,
                    host.durable_id,
                    name=host.name,
                    site_id=host.site_id,
                    metadata=list(host.metadata),
                ),
                action="updating",
            )
        return ProvisioningPhase.INSTANTIATING

    async def _instantiate_all(self) -> ProvisioningPhase:
        for host in self.session.hosts:
            if host.durable_id is None or not self._pending(host):
                continue
            if host.original_os is not None:
                # the host already runs an OS, there is no instance to create
                self._succeed(host)
                continue
            instance = host.instance
            created = await self._attempt(
                host,
                partial(
                    self.inventory.create_instance,
                    host_id=host.durable_id,
                    name=f"{host.name}-instance",
                    os_id=instance.os_id if instance else None,
                    security_feature=instance.security_feature if instance else None,
                    local_account_id=instance.local_account_id if instance else None,
                ),
                action="creating instance",
            )
            if created is not None:
                self._succeed(host)
        return ProvisioningPhase.RESULTS

    async def _show_results(self) -> ProvisioningPhase:
        failed = tuple(host.name for host in self.session.hosts if not self.succeeded(host.name))
        if failed:
            self.notification = Notification(
                variant="error",
                title="Setup complete",
                text=f"Not all hosts were provisioned. Failed hosts: {', '.join(failed)}",
                failed_hosts=failed,
            )
            logger.error("provisioning-partial-failure", failed_hosts=list(failed))
            return ProvisioningPhase.IDLE

        if self.session.auto_provision:
            text = "Hosts successfully registered. Provisioning will start once the hosts are connected."
        else:
            text = "All hosts have been configured."
        self.notification = Notification(variant="success", title="Success", text=text)
        logger.info("provisioning-succeeded", hosts=len(self.results))
        return ProvisioningPhase.BACK_TO_HOSTS

    async def _back_to_hosts(self) -> ProvisioningPhase:
        self.session.reset()
        return ProvisioningPhase.BACK_TO_HOSTS


__all__ = [
    "HostOutcome",
    "InventoryOperations",
    "Notification",
    "ProvisioningOrchestrator",
    "ProvisioningPhase",
    "attempt",
    "describe_error",
    "register_hosts",
]
