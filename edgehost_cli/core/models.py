"""Unified Pydantic models for the edge host CLI."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from edgehost_cli.core.exceptions import HostStateError


class _BaseModel(BaseModel):
    """Base model with common configuration."""

    model_config = ConfigDict(validate_assignment=True, extra="forbid")


class _APIModel(BaseModel):
    """Base for payloads read from the inventory service (camelCase on the wire)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class SecurityFeature(StrEnum):
    NONE = "SECURITY_FEATURE_NONE"
    SECURE_BOOT_AND_FULL_DISK_ENCRYPTION = "SECURITY_FEATURE_SECURE_BOOT_AND_FULL_DISK_ENCRYPTION"

    @classmethod
    def parse(cls, value: str | SecurityFeature) -> SecurityFeature:
        """Accept either the wire value or its short form (``NONE``)."""
        if isinstance(value, SecurityFeature):
            return value
        text = value.strip().upper()
        if not text.startswith("SECURITY_FEATURE_"):
            text = f"SECURITY_FEATURE_{text}"
        try:
            return cls(text)
        except ValueError as exc:
            raise ValueError(f"Unknown security feature '{value}'") from exc


class MetadataPair(_BaseModel):
    key: str
    value: str


def _metadata_factory() -> list[MetadataPair]:
    return []


def metadata_from_mapping(values: dict[str, Any]) -> list[MetadataPair]:
    return [MetadataPair(key=str(key), value=str(value)) for key, value in values.items()]


# Inventory read models


class RegionRef(_APIModel):
    resource_id: str
    name: str | None = None


class SiteRef(_APIModel):
    resource_id: str
    name: str | None = None
    region: RegionRef | None = None


class OperatingSystemRef(_APIModel):
    resource_id: str
    name: str | None = None
    profile_name: str | None = None
    security_feature: str | None = None


class InstanceRead(_APIModel):
    resource_id: str | None = None
    name: str | None = None
    kind: str | None = None
    os: OperatingSystemRef | None = None
    security_feature: str | None = None
    current_state: str | None = None


class HostRead(_APIModel):
    resource_id: str | None = None
    name: str
    uuid: str | None = None
    serial_number: str | None = None
    note: str | None = None
    site: SiteRef | None = None
    metadata: list[MetadataPair] = Field(default_factory=_metadata_factory)
    instance: InstanceRead | None = None
    current_state: str | None = None
    host_status_indicator: str | None = None

    @field_validator("metadata", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return [] if value is None else value


def _host_read_factory() -> list[HostRead]:
    return []


class HostsPage(_APIModel):
    hosts: list[HostRead] = Field(default_factory=_host_read_factory)
    total_elements: int = 0
    has_next: bool = False


# Configuration session models


class InstanceConfig(_BaseModel):
    """Desired runtime instance for a host being configured."""

    os_id: str | None = None
    os: OperatingSystemRef | None = None
    security_feature: SecurityFeature | None = None
    local_account_id: str | None = None

    @field_validator("security_feature", mode="before")
    @classmethod
    def _parse_security(cls, value: Any) -> Any:
        if value is None or isinstance(value, SecurityFeature):
            return value
        return SecurityFeature.parse(str(value))

    @property
    def is_complete(self) -> bool:
        return bool(self.os_id) and self.security_feature is not None


class HostRecord(_BaseModel):
    """One host being onboarded or configured in the current session."""

    key: str
    name: str
    durable_id: str | None = None
    serial_number: str | None = None
    uuid: str | None = None
    site_id: str | None = None
    site: SiteRef | None = None
    region: RegionRef | None = None
    metadata: list[MetadataPair] = Field(default_factory=_metadata_factory)
    instance: InstanceConfig | None = None
    original_os: OperatingSystemRef | None = None
    error: str | None = None

    @property
    def is_registered(self) -> bool:
        return self.durable_id is not None

    def mark_registered(self, durable_id: str) -> None:
        if self.durable_id is not None and self.durable_id != durable_id:
            raise HostStateError(
                f"Host '{self.name}' is already registered as {self.durable_id}"
            )
        self.durable_id = durable_id

    def ensure_instance(self) -> InstanceConfig:
        if self.instance is None:
            self.instance = InstanceConfig()
        return self.instance


class NewHost(_BaseModel):
    """A host typed in by the operator that does not exist in the inventory yet."""

    name: str
    serial_number: str | None = None
    uuid: str | None = None


class HostResult(_BaseModel):
    """Outcome of provisioning a single host."""

    name: str
    success: bool
    message: str | None = None


__all__ = [
    "HostRead",
    "HostRecord",
    "HostResult",
    "HostsPage",
    "InstanceConfig",
    "InstanceRead",
    "MetadataPair",
    "NewHost",
    "OperatingSystemRef",
    "RegionRef",
    "SecurityFeature",
    "SiteRef",
    "metadata_from_mapping",
]
