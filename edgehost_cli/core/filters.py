"""Facet-based builder for inventory host search filters.

Each facet owns one sub-predicate. Setting a facet recomputes its own
contribution and then the combined filter: the AND of every non-empty
contribution in a fixed order. Unsetting a facet removes exactly its
contribution. With nothing set the combined filter is ``None`` (no filter).
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum, IntEnum, StrEnum
from typing import Any

import structlog

logger = structlog.get_logger(__name__)

DETAILED_STATUSES = (
    "hostStatusIndicator",
    "onboardingStatusIndicator",
    "registrationStatusIndicator",
)

SEARCHABLE_COLUMNS = (
    "name",
    "uuid",
    "serialNumber",
    "resourceId",
    "note",
    "site.name",
    "instance.desiredOs.name",
)

OS_PROFILE_COLUMN = "instance.currentOs.profileName"
WORKLOAD_MEMBERS_COLUMN = "instance.workloadMembers"


class LifeCycleState(StrEnum):
    PROVISIONED = "provisioned"
    ONBOARDED = "onboarded"
    REGISTERED = "registered"
    ALL = "all"
    HEALTHY = "healthy"


class AggregatedStatus(IntEnum):
    READY = 0
    IN_PROGRESS = 1
    ERROR = 2
    UNKNOWN = 3
    DEAUTHORIZED = 4

    @classmethod
    def parse(cls, value: str | int | AggregatedStatus) -> AggregatedStatus:
        if isinstance(value, AggregatedStatus):
            return value
        if isinstance(value, int):
            return cls(value)
        normalized = value.strip().replace("-", "").replace("_", "").lower()
        for member in cls:
            if member.name.replace("_", "").lower() == normalized:
                return member
        raise ValueError(f"Unknown host status '{value}'")


class WorkloadPresence(Enum):
    """Tri-state workload facet: no predicate, must have, or must not have."""

    UNSET = "unset"
    REQUIRED = "required"
    FORBIDDEN = "forbidden"

    @classmethod
    def from_flag(cls, value: bool | None) -> WorkloadPresence:
        if value is None:
            return cls.UNSET
        return cls.REQUIRED if value else cls.FORBIDDEN


class Facet(StrEnum):
    LIFE_CYCLE_STATE = "lifeCycleState"
    SEARCH_TERM = "searchTerm"
    STATUSES = "statuses"
    OS_PROFILES = "osProfiles"
    HAS_WORKLOAD = "hasWorkload"
    WORKLOAD_MEMBER_ID = "workloadMemberId"
    SITE_ID = "siteId"


LIFE_CYCLE_STATE_QUERY: dict[LifeCycleState, str | None] = {
    LifeCycleState.HEALTHY: (
        "(currentState=HOST_STATE_ONBOARDED AND has(instance) "
        "AND instance.currentState=INSTANCE_STATE_RUNNING)"
    ),
    LifeCycleState.PROVISIONED: "(currentState=HOST_STATE_ONBOARDED AND has(instance))",
    LifeCycleState.ONBOARDED: "(currentState=HOST_STATE_ONBOARDED AND NOT has(instance))",
    LifeCycleState.REGISTERED: "(currentState=HOST_STATE_REGISTERED OR currentState=HOST_STATE_UNSPECIFIED)",
    LifeCycleState.ALL: None,
}


def _indicator(value: str) -> str:
    return f"STATUS_INDICATION_{value}"


def build_status_query(columns: Iterable[str], indicator: str) -> str:
    return " OR ".join(f"{column}={indicator}" for column in columns)


AGGREGATED_STATUS_QUERY: dict[AggregatedStatus, str] = {
    AggregatedStatus.READY: (
        f"{build_status_query(DETAILED_STATUSES, _indicator('IDLE'))} OR "
        f"{build_status_query(DETAILED_STATUSES, _indicator('UNSPECIFIED'))}"
    ),
    AggregatedStatus.IN_PROGRESS: build_status_query(DETAILED_STATUSES, _indicator("IN_PROGRESS")),
    AggregatedStatus.ERROR: build_status_query(DETAILED_STATUSES, _indicator("ERROR")),
    AggregatedStatus.UNKNOWN: "currentState=HOST_STATE_UNSPECIFIED",
    AggregatedStatus.DEAUTHORIZED: "currentState=HOST_STATE_UNTRUSTED",
}


def quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def build_column_ors(column: str, values: Iterable[str]) -> str:
    return "(" + " OR ".join(f"{column}={quote(value)}" for value in values) + ")"


def _dedupe(values: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(values))


class HostFilterBuilder:
    """Accumulates search facets into a single inventory filter string."""

    _ORDER = (
        Facet.LIFE_CYCLE_STATE,
        Facet.SEARCH_TERM,
        Facet.STATUSES,
        Facet.OS_PROFILES,
        Facet.HAS_WORKLOAD,
        Facet.WORKLOAD_MEMBER_ID,
        Facet.SITE_ID,
    )

    def __init__(self) -> None:
        self.life_cycle_state: LifeCycleState | None = None
        self.search_term: str | None = None
        self.statuses: tuple[AggregatedStatus, ...] | None = None
        self.os_profiles: tuple[str, ...] | None = None
        self.has_workload = WorkloadPresence.UNSET
        self.workload_member_id: str | None = None
        self.site_id: str | None = None
        self._contributions: dict[Facet, str] = {}
        self._query: str | None = None

    @property
    def query(self) -> str | None:
        return self._query

    def contributions(self) -> dict[Facet, str]:
        return {facet: self._contributions[facet] for facet in self._ORDER if facet in self._contributions}

    def _store(self, facet: Facet, predicate: str | None) -> str | None:
        if predicate:
            self._contributions[facet] = predicate
        else:
            self._contributions.pop(facet, None)
        return self._rebuild()

    def _rebuild(self) -> str | None:
        parts = [self._contributions[facet] for facet in self._ORDER if facet in self._contributions]
        self._query = " AND ".join(parts) if parts else None
        logger.debug("host-filter-built", filter=self._query)
        return self._query

    def set_life_cycle_state(self, state: LifeCycleState | str | None) -> str | None:
        self.life_cycle_state = LifeCycleState(str(state).lower()) if state is not None else None
        predicate = LIFE_CYCLE_STATE_QUERY[self.life_cycle_state] if self.life_cycle_state else None
        return self._store(Facet.LIFE_CYCLE_STATE, predicate)

    def set_search_term(self, term: str | None) -> str | None:
        self.search_term = term or None
        predicate = None
        if self.search_term is not None:
            value = quote(self.search_term)
            predicate = "(" + " OR ".join(f"{column}={value}" for column in SEARCHABLE_COLUMNS) + ")"
        return self._store(Facet.SEARCH_TERM, predicate)

    def set_statuses(self, statuses: Iterable[AggregatedStatus | str | int] | None) -> str | None:
        selected = sorted({AggregatedStatus.parse(status) for status in statuses or ()})
        self.statuses = tuple(selected) or None
        predicate = None
        if self.statuses:
            predicate = "(" + " OR ".join(AGGREGATED_STATUS_QUERY[status] for status in self.statuses) + ")"
        return self._store(Facet.STATUSES, predicate)

    def set_os_profiles(self, profiles: Iterable[str] | None) -> str | None:
        self.os_profiles = tuple(_dedupe(profiles or ())) or None
        predicate = build_column_ors(OS_PROFILE_COLUMN, self.os_profiles) if self.os_profiles else None
        return self._store(Facet.OS_PROFILES, predicate)

    def set_has_workload(self, presence: WorkloadPresence | bool | None) -> str | None:
        if not isinstance(presence, WorkloadPresence):
            presence = WorkloadPresence.from_flag(presence)
        self.has_workload = presence
        predicate = {
            WorkloadPresence.UNSET: None,
            WorkloadPresence.REQUIRED: f"has({WORKLOAD_MEMBERS_COLUMN})",
            WorkloadPresence.FORBIDDEN: f"NOT has({WORKLOAD_MEMBERS_COLUMN})",
        }[presence]
        return self._store(Facet.HAS_WORKLOAD, predicate)

    def set_workload_member_id(self, member_id: str | None) -> str | None:
        self.workload_member_id = member_id or None
        predicate = f"workloadMembers={quote(member_id)}" if member_id else None
        return self._store(Facet.WORKLOAD_MEMBER_ID, predicate)

    def set_site_id(self, site_id: str | None) -> str | None:
        self.site_id = site_id or None
        predicate = f"site.resourceId={quote(site_id)}" if site_id else None
        return self._store(Facet.SITE_ID, predicate)

    def set_facet(self, name: Facet | str, value: Any) -> str | None:
        """Set one facet by its wire name and return the combined filter."""
        try:
            facet = Facet(name)
        except ValueError as exc:
            raise ValueError(f"Unknown filter facet '{name}'") from exc
        setters = {
            Facet.LIFE_CYCLE_STATE: self.set_life_cycle_state,
            Facet.SEARCH_TERM: self.set_search_term,
            Facet.STATUSES: self.set_statuses,
            Facet.OS_PROFILES: self.set_os_profiles,
            Facet.HAS_WORKLOAD: self.set_has_workload,
            Facet.WORKLOAD_MEMBER_ID: self.set_workload_member_id,
            Facet.SITE_ID: self.set_site_id,
        }
        return setters[facet](value)

    def clear(self) -> None:
        for facet in self._ORDER:
            self.set_facet(facet, None)


__all__ = [
    "AGGREGATED_STATUS_QUERY",
    "DETAILED_STATUSES",
    "LIFE_CYCLE_STATE_QUERY",
    "SEARCHABLE_COLUMNS",
    "AggregatedStatus",
    "Facet",
    "HostFilterBuilder",
    "LifeCycleState",
    "WorkloadPresence",
    "build_column_ors",
    "build_status_query",
    "quote",
]
