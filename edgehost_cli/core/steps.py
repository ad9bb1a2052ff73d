"""Wizard steps and the validator gating forward navigation."""

from __future__ import annotations

import re
from collections import Counter
from collections.abc import Iterable
from enum import IntEnum

from edgehost_cli.core.models import HostRecord

_VALID_NAME = re.compile(r"^[a-zA-Z\-_0-9./: ]{1,20}$")


class HostConfigStep(IntEnum):
    SELECT_SITE = 0
    ENTER_HOST_DETAILS = 1
    ADD_HOST_LABELS = 2
    ENABLE_LOCAL_ACCESS = 3
    COMPLETE_SETUP = 4

    @property
    def label(self) -> str:
        return _STEP_LABELS[self]

    @classmethod
    def first(cls) -> HostConfigStep:
        return cls.SELECT_SITE

    @classmethod
    def last(cls) -> HostConfigStep:
        return cls.COMPLETE_SETUP


_STEP_LABELS = {
    HostConfigStep.SELECT_SITE: "Select Site",
    HostConfigStep.ENTER_HOST_DETAILS: "Enter Host Details",
    HostConfigStep.ADD_HOST_LABELS: "Add Host Labels",
    HostConfigStep.ENABLE_LOCAL_ACCESS: "Enable Local Access",
    HostConfigStep.COMPLETE_SETUP: "Complete Setup",
}


def is_valid_host_name(name: str | None) -> bool:
    return name is not None and bool(name.strip()) and _VALID_NAME.match(name) is not None


def duplicate_names(hosts: Iterable[HostRecord]) -> list[str]:
    counts = Counter(host.name for host in hosts)
    return [name for name, count in counts.items() if count > 1]


def validate_step(
    step: HostConfigStep,
    hosts: Iterable[HostRecord],
    *,
    has_validation_error: bool = False,
) -> bool:
    """Return whether the wizard may move forward from ``step``.

    An empty host collection never advances, whatever the step.
    """
    step = HostConfigStep(step)
    records = list(hosts)
    if not records:
        return False

    if step is HostConfigStep.SELECT_SITE:
        return all(host.site_id for host in records)
    if step is HostConfigStep.ENTER_HOST_DETAILS:
        if duplicate_names(records):
            return False
        return all(
            is_valid_host_name(host.name) and host.instance is not None and host.instance.is_complete
            for host in records
        )
    if step is HostConfigStep.ADD_HOST_LABELS:
        return not has_validation_error
    # Enable Local Access and Complete Setup have nothing to check
    return True


__all__ = [
    "HostConfigStep",
    "duplicate_names",
    "is_valid_host_name",
    "validate_step",
]
