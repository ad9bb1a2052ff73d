"""Read the TOML intake file describing the hosts to configure."""

from __future__ import annotations

import tomllib
from collections.abc import Sequence
from pathlib import Path
from typing import Any, cast

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from edgehost_cli.core.exceptions import HostSelectionError, IntakeError
from edgehost_cli.core.models import (
    HostRead,
    InstanceConfig,
    MetadataPair,
    NewHost,
    OperatingSystemRef,
    SecurityFeature,
    SiteRef,
    metadata_from_mapping,
)
from edgehost_cli.core.session import HostConfigSession
from edgehost_cli.core.steps import is_valid_host_name

logger = structlog.get_logger(__name__)

DEFAULT_INTAKE_PATH = Path("edge-hosts.toml")


class _IntakeModel(BaseModel):
    model_config = ConfigDict(validate_assignment=True, extra="forbid")


class IntakeDefaults(_IntakeModel):
    site_id: str | None = None
    os_id: str | None = None
    security: SecurityFeature | None = None
    local_account_id: str | None = None
    auto_onboard: bool = True
    auto_provision: bool = False
    metadata: dict[str, str] = Field(default_factory=dict)

    @field_validator("security", mode="before")
    @classmethod
    def _parse_security(cls, value: Any) -> Any:
        if value is None:
            return None
        return SecurityFeature.parse(str(value))


class IntakeHost(_IntakeModel):
    name: str
    serial_number: str | None = None
    uuid: str | None = None
    host_id: str | None = None
    site_id: str | None = None
    os_id: str | None = None
    security: SecurityFeature | None = None
    local_account_id: str | None = None
    metadata: dict[str, str] = Field(default_factory=dict)

    @field_validator("security", mode="before")
    @classmethod
    def _parse_security(cls, value: Any) -> Any:
        if value is None:
            return None
        return SecurityFeature.parse(str(value))

    @model_validator(mode="after")
    def _require_identity(self) -> IntakeHost:
        if self.host_id is None and not (self.serial_number or self.uuid):
            raise ValueError("either serial_number or uuid is required for a new host")
        return self


def _host_list_factory() -> list[IntakeHost]:
    return []


class Intake(_IntakeModel):
    defaults: IntakeDefaults = Field(default_factory=IntakeDefaults)
    hosts: list[IntakeHost] = Field(default_factory=_host_list_factory)


def load_intake(path: Path) -> Intake:
    """Load and validate an intake file from TOML."""
    try:
        with path.open("rb") as handle:
            data: dict[str, Any] = tomllib.load(handle)
    except FileNotFoundError as exc:
        raise IntakeError(f"Intake file '{path}' was not found") from exc
    except tomllib.TOMLDecodeError as exc:
        raise IntakeError(f"Intake file '{path}' is invalid: {exc}") from exc

    defaults_raw = data.get("defaults", {})
    if not isinstance(defaults_raw, dict):
        raise IntakeError("[defaults] must be a table")
    try:
        defaults = IntakeDefaults.model_validate(defaults_raw)
    except ValidationError as exc:
        raise IntakeError(f"Invalid defaults configuration: {exc}") from exc

    hosts_raw = data.get("hosts")
    if not isinstance(hosts_raw, list) or not hosts_raw:
        raise IntakeError("Intake file must include a non-empty [[hosts]] list")

    hosts: list[IntakeHost] = []
    seen_names: set[str] = set()
    for entry_raw in cast(list[Any], hosts_raw):
        if not isinstance(entry_raw, dict):
            raise IntakeError("Each [[hosts]] entry must be a table")
        entry = cast(dict[str, Any], entry_raw)
        name = entry.get("name")
        if not isinstance(name, str) or not name.strip():
            raise IntakeError("Each host requires a 'name' value")
        if name in seen_names:
            raise IntakeError(f"Duplicate host name '{name}' detected")
        seen_names.add(name)
        try:
            hosts.append(IntakeHost.model_validate(entry))
        except ValidationError as exc:
            raise IntakeError(f"Invalid host configuration for '{name}': {exc}") from exc

    invalid = [host.name for host in hosts if not is_valid_host_name(host.name)]
    if invalid:
        logger.warning("intake-invalid-host-names", hosts=invalid)

    logger.debug("intake-loaded", path=str(path), hosts=len(hosts))
    return Intake(defaults=defaults, hosts=hosts)


def select_hosts(intake: Intake, requested: Sequence[str]) -> Intake:
    """Keep only the requested host names, preserving their intake order."""
    if not requested:
        return intake
    name_index = {host.name: host for host in intake.hosts}
    missing = [name for name in requested if name not in name_index]
    if missing:
        raise HostSelectionError(f"Unknown host(s): {', '.join(missing)}")
    wanted = set(requested)
    return Intake(
        defaults=intake.defaults,
        hosts=[host for host in intake.hosts if host.name in wanted],
    )


def _metadata(defaults: IntakeDefaults, host: IntakeHost) -> list[MetadataPair]:
    return metadata_from_mapping({**defaults.metadata, **host.metadata})


def build_session(intake: Intake) -> HostConfigSession:
    """Create a configuration session holding every intake host.

    Hosts with a ``host_id`` are treated as already registered; the others are
    keyed by their proposed name until registration issues a durable id.
    """
    defaults = intake.defaults
    session = HostConfigSession()
    session.set_auto_onboard(defaults.auto_onboard)
    session.set_auto_provision(defaults.auto_provision)

    session.set_new_registered_hosts(
        NewHost(name=host.name, serial_number=host.serial_number, uuid=host.uuid)
        for host in intake.hosts
        if host.host_id is None
    )
    session.set_hosts(
        HostRead(
            resource_id=host.host_id,
            name=host.name,
            serial_number=host.serial_number,
            uuid=host.uuid,
        )
        for host in intake.hosts
        if host.host_id is not None
    )

    by_name = {host.name: host for host in intake.hosts}
    for record in session.hosts:
        entry = by_name[record.name]
        site_id = entry.site_id or defaults.site_id
        if site_id:
            record.site_id = site_id
            record.site = SiteRef(resource_id=site_id)
        record.metadata = _metadata(defaults, entry)
        os_id = entry.os_id or defaults.os_id
        security = entry.security or defaults.security
        local_account_id = entry.local_account_id or defaults.local_account_id
        if os_id or security or local_account_id:
            record.instance = InstanceConfig(
                os_id=os_id,
                os=OperatingSystemRef(resource_id=os_id) if os_id else None,
                security_feature=security,
                local_account_id=local_account_id,
            )
    session.validate()
    return session


__all__ = [
    "DEFAULT_INTAKE_PATH",
    "Intake",
    "IntakeDefaults",
    "IntakeHost",
    "build_session",
    "load_intake",
    "select_hosts",
]
