"""Pydantic models for Typer CLI options."""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator

from edgehost_cli.core.filters import AggregatedStatus, HostFilterBuilder, LifeCycleState
from edgehost_cli.core.intake import DEFAULT_INTAKE_PATH
from edgehost_cli.utils.inventory import DEFAULT_TIMEOUT


class _BaseOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    verbose: bool = False


def _expand_intake(value: str | Path) -> Path:
    path = Path(value)
    return path.expanduser().resolve()


def _as_tuple(value: Iterable[str] | str | None) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    return tuple(value)


class ConnectionOptions(_BaseOptions):
    api_url: str = Field(min_length=1)
    project: str = Field(min_length=1)
    timeout: float = Field(default=DEFAULT_TIMEOUT, gt=0)

    @field_validator("api_url")
    @classmethod
    def _require_scheme(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            raise ValueError("api_url must start with http:// or https://")
        return value.rstrip("/")


class IntakeRunOptions(_BaseOptions):
    intake: Path = Field(default=DEFAULT_INTAKE_PATH)
    hosts: tuple[str, ...] = Field(default_factory=tuple)
    connection: ConnectionOptions

    _validate_intake = field_validator("intake", mode="before")(_expand_intake)
    _coerce_hosts = field_validator("hosts", mode="before")(_as_tuple)


class WizardOptions(_BaseOptions):
    intake: Path | None = None
    connection: ConnectionOptions

    @field_validator("intake", mode="before")
    @classmethod
    def _expand_optional(cls, value: str | Path | None) -> Path | None:
        return None if value is None else _expand_intake(value)


class HostQueryOptions(_BaseOptions):
    """Search facets accepted by ``hosts query`` and ``hosts list``."""

    state: LifeCycleState | None = None
    search: str | None = None
    statuses: tuple[AggregatedStatus, ...] = Field(default_factory=tuple)
    os_profiles: tuple[str, ...] = Field(default_factory=tuple)
    has_workload: bool | None = None
    workload_member: str | None = None
    site: str | None = None

    @field_validator("state", mode="before")
    @classmethod
    def _parse_state(cls, value: str | LifeCycleState | None) -> LifeCycleState | None:
        if value is None:
            return None
        return LifeCycleState(str(value).lower())

    @field_validator("statuses", mode="before")
    @classmethod
    def _parse_statuses(cls, value: Iterable[str | AggregatedStatus] | None) -> tuple[AggregatedStatus, ...]:
        return tuple(AggregatedStatus.parse(item) for item in value or ())

    _coerce_profiles = field_validator("os_profiles", mode="before")(_as_tuple)

    def build_filter(self) -> HostFilterBuilder:
        builder = HostFilterBuilder()
        builder.set_life_cycle_state(self.state)
        builder.set_search_term(self.search)
        builder.set_statuses(self.statuses)
        builder.set_os_profiles(self.os_profiles)
        builder.set_has_workload(self.has_workload)
        builder.set_workload_member_id(self.workload_member)
        builder.set_site_id(self.site)
        return builder


class ListOptions(_BaseOptions):
    query: HostQueryOptions
    connection: ConnectionOptions
    offset: int = Field(default=0, ge=0)
    page_size: int = Field(default=20, ge=1, le=100)
    order_by: str | None = None
