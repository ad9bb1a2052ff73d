"""Configuration session: the host record store plus the wizard form state.

One ``HostConfigSession`` exists per wizard run. Every mutator re-runs the step
validator so ``status.can_advance`` always reflects the current hosts. Step
components receive a narrow view (``site_step()``, ``details_step()`` ...)
holding only the hosts and mutators that step needs.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass

import structlog
from pydantic import BaseModel, ConfigDict

from edgehost_cli.core.exceptions import HostNotFoundError, HostStateError, NoHostsSelectedError
from edgehost_cli.core.models import (
    HostRead,
    HostRecord,
    InstanceConfig,
    MetadataPair,
    NewHost,
    OperatingSystemRef,
    RegionRef,
    SecurityFeature,
    SiteRef,
)
from edgehost_cli.core.steps import HostConfigStep, validate_step

logger = structlog.get_logger(__name__)


class WizardFormStatus(BaseModel):
    """Navigation flags and the values shared by every host in the session."""

    model_config = ConfigDict(validate_assignment=True)

    current_step: HostConfigStep = HostConfigStep.SELECT_SITE
    can_advance: bool = False
    can_retreat: bool = False
    global_os_value: str | None = None
    global_security_enabled: bool = False
    global_security_active: bool = True
    has_validation_error: bool = False


@dataclass(frozen=True)
class WizardState:
    current_step: HostConfigStep
    can_advance: bool
    can_retreat: bool
    no_hosts: bool


@dataclass(frozen=True)
class SiteStepView:
    hosts: tuple[HostRecord, ...]
    set_site: Callable[[SiteRef], None]
    set_region: Callable[[RegionRef], None]


@dataclass(frozen=True)
class DetailsStepView:
    hosts: tuple[HostRecord, ...]
    global_os_value: str | None
    global_security_enabled: bool
    set_host_name: Callable[[str, str], None]
    set_os_profile: Callable[[str, OperatingSystemRef], None]
    apply_global_os: Callable[[OperatingSystemRef], None]
    set_security: Callable[[str, SecurityFeature], None]
    unset_security: Callable[[str], None]
    apply_global_security: Callable[[bool], None]


@dataclass(frozen=True)
class LabelsStepView:
    metadata: tuple[MetadataPair, ...]
    set_metadata: Callable[[list[MetadataPair]], None]
    set_validation_error: Callable[[bool], None]


@dataclass(frozen=True)
class LocalAccessStepView:
    hosts: tuple[HostRecord, ...]
    set_local_account: Callable[[str, str | None], None]


def _host_from_inventory(host: HostRead, key: str) -> HostRecord:
    instance: InstanceConfig | None = None
    if host.instance is not None:
        os_ref = host.instance.os
        security = host.instance.security_feature
        instance = InstanceConfig(
            os_id=os_ref.resource_id if os_ref else None,
            os=os_ref,
            security_feature=security if security in set(SecurityFeature) else None,
        )
    return HostRecord(
        key=key,
        name=host.name,
        durable_id=host.resource_id,
        serial_number=host.serial_number,
        uuid=host.uuid,
        site_id=host.site.resource_id if host.site else None,
        site=host.site,
        metadata=list(host.metadata),
        instance=instance,
        # an existing instance means the host already runs an OS
        original_os=host.instance.os if host.instance else None,
    )


class HostConfigSession:
    def __init__(self) -> None:
        self._hosts: dict[str, HostRecord] = {}
        self.status = WizardFormStatus()
        self.auto_onboard = True
        self.auto_provision = False

    # selectors

    @property
    def hosts(self) -> tuple[HostRecord, ...]:
        return tuple(self._hosts.values())

    @property
    def contains_hosts(self) -> bool:
        return bool(self._hosts)

    @property
    def is_single_host(self) -> bool:
        return len(self._hosts) == 1

    def select_host(self, key: str) -> HostRecord:
        try:
            return self._hosts[key]
        except KeyError:
            raise HostNotFoundError(f"Host {key} not found in configuration session") from None

    def first_host(self) -> HostRecord:
        if not self._hosts:
            raise NoHostsSelectedError("There are no hosts selected for configuration.")
        return next(iter(self._hosts.values()))

    def unregistered_hosts(self) -> list[HostRecord]:
        return [host for host in self._hosts.values() if not host.is_registered]

    def get_wizard_state(self) -> WizardState:
        return WizardState(
            current_step=self.status.current_step,
            can_advance=self.status.can_advance,
            can_retreat=self.status.can_retreat,
            no_hosts=not self._hosts,
        )

    # navigation

    def validate(self) -> bool:
        step = self.status.current_step
        self.status.can_advance = validate_step(
            step,
            self._hosts.values(),
            has_validation_error=self.status.has_validation_error,
        )
        self.status.can_retreat = step > HostConfigStep.first()
        return self.status.can_advance

    def advance(self) -> bool:
        """Move to the next step when the current one validates."""
        if not self.validate():
            logger.debug("advance-blocked", step=self.status.current_step.label)
            return False
        if self.status.current_step < HostConfigStep.last():
            self.status.current_step = HostConfigStep(self.status.current_step + 1)
        self.validate()
        return True

    def retreat(self) -> bool:
        moved = self.status.current_step > HostConfigStep.first()
        if moved:
            self.status.current_step = HostConfigStep(self.status.current_step - 1)
        self.validate()
        return moved

    def reset(self) -> None:
        self._hosts.clear()
        self.status = WizardFormStatus()
        self.auto_onboard = True
        self.auto_provision = False

    # intake

    def set_hosts(self, hosts: Iterable[HostRead]) -> None:
        for host in hosts:
            key = host.resource_id or host.name
            self._hosts[key] = _host_from_inventory(host, key)
        self.validate()

    def set_new_registered_hosts(self, hosts: Iterable[NewHost]) -> None:
        self._hosts = {}
        for host in hosts:
            if not host.name.strip():
                continue
            self._hosts[host.name] = HostRecord(
                key=host.name,
                name=host.name,
                serial_number=host.serial_number or None,
                uuid=host.uuid or None,
            )
        self.validate()

    def update_registered_host(self, host: HostRead, *, key: str | None = None) -> HostRecord:
        """Store the durable id the inventory issued for a freshly registered host."""
        if host.resource_id is None:
            raise HostStateError(f"Inventory returned no identifier for host '{host.name}'")
        record = self.select_host(key) if key is not None else self._find_by_name(host.name)
        record.mark_registered(host.resource_id)
        return record

    def remove_host(self, key: str) -> None:
        self.select_host(key)
        del self._hosts[key]
        self.validate()

    def _find_by_name(self, name: str) -> HostRecord:
        for record in self._hosts.values():
            if record.name == name:
                return record
        raise HostNotFoundError(f"Host {name} not found in configuration session")

    # Select Site

    def set_site(self, site: SiteRef) -> None:
        for host in self._hosts.values():
            host.site_id = site.resource_id
            host.site = site
        self.validate()

    def set_region(self, region: RegionRef) -> None:
        for host in self._hosts.values():
            host.region = region
        self.validate()

    # Enter Host Details

    def set_host_name(self, key: str, name: str) -> None:
        self.select_host(key).name = name
        self.validate()

    def set_os_profile(self, key: str, os: OperatingSystemRef) -> None:
        instance = self.select_host(key).ensure_instance()
        instance.os_id = os.resource_id
        instance.os = os
        os_ids = {host.instance.os_id if host.instance else None for host in self._hosts.values()}
        self.status.global_os_value = os.resource_id if len(os_ids) == 1 else None
        self.validate()

    def apply_global_os(self, os: OperatingSystemRef) -> None:
        for host in self._hosts.values():
            instance = host.ensure_instance()
            instance.os_id = os.resource_id
            instance.os = os
        self.status.global_os_value = os.resource_id
        self.validate()

    def set_security(self, key: str, feature: SecurityFeature) -> None:
        self.select_host(key).ensure_instance().security_feature = feature
        self._sync_global_security()
        self.validate()

    def unset_security(self, key: str) -> None:
        host = self.select_host(key)
        if host.instance is None:
            return
        host.instance.security_feature = None
        self._sync_global_security()
        self.validate()

    def apply_global_security(self, enabled: bool) -> None:
        feature = (
            SecurityFeature.SECURE_BOOT_AND_FULL_DISK_ENCRYPTION if enabled else SecurityFeature.NONE
        )
        for host in self._hosts.values():
            host.ensure_instance().security_feature = feature
        self.status.global_security_enabled = enabled
        self.status.global_security_active = True
        self.validate()

    def _sync_global_security(self) -> None:
        features = {host.instance.security_feature if host.instance else None for host in self._hosts.values()}
        if features == {SecurityFeature.SECURE_BOOT_AND_FULL_DISK_ENCRYPTION}:
            self.status.global_security_enabled = True
            self.status.global_security_active = True
        elif features == {SecurityFeature.NONE}:
            self.status.global_security_enabled = False
            self.status.global_security_active = True
        else:
            self.status.global_security_active = False

    # Add Host Labels

    def set_metadata(self, metadata: Iterable[MetadataPair]) -> None:
        pairs = list(metadata)
        for host in self._hosts.values():
            host.metadata = list(pairs)
        self.validate()

    def set_validation_error(self, flag: bool) -> None:
        self.status.has_validation_error = flag
        self.validate()

    # Enable Local Access

    def set_local_account(self, key: str, local_account_id: str | None) -> None:
        self.select_host(key).ensure_instance().local_account_id = local_account_id
        self.validate()

    # registration options

    def set_auto_onboard(self, flag: bool) -> None:
        self.auto_onboard = flag

    def set_auto_provision(self, flag: bool) -> None:
        self.auto_provision = flag

    # step views

    def site_step(self) -> SiteStepView:
        return SiteStepView(hosts=self.hosts, set_site=self.set_site, set_region=self.set_region)

    def details_step(self) -> DetailsStepView:
        return DetailsStepView(
            hosts=self.hosts,
            global_os_value=self.status.global_os_value,
            global_security_enabled=self.status.global_security_enabled,
            set_host_name=self.set_host_name,
            set_os_profile=self.set_os_profile,
            apply_global_os=self.apply_global_os,
            set_security=self.set_security,
            unset_security=self.unset_security,
            apply_global_security=self.apply_global_security,
        )

    def labels_step(self) -> LabelsStepView:
        metadata = tuple(self.first_host().metadata) if self._hosts else ()
        return LabelsStepView(
            metadata=metadata,
            set_metadata=self.set_metadata,
            set_validation_error=self.set_validation_error,
        )

    def local_access_step(self) -> LocalAccessStepView:
        return LocalAccessStepView(hosts=self.hosts, set_local_account=self.set_local_account)


__all__ = [
    "DetailsStepView",
    "HostConfigSession",
    "LabelsStepView",
    "LocalAccessStepView",
    "SiteStepView",
    "WizardFormStatus",
    "WizardState",
]
