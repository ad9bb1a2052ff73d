"""Core business logic for edge host configuration."""

from edgehost_cli.core.exceptions import (
    EdgeHostError,
    HostNotFoundError,
    HostSelectionError,
    HostStateError,
    IntakeError,
    InventoryAPIError,
    NoHostsSelectedError,
)
from edgehost_cli.core.filters import AggregatedStatus, HostFilterBuilder, LifeCycleState, WorkloadPresence
from edgehost_cli.core.intake import build_session, load_intake, select_hosts
from edgehost_cli.core.models import HostRecord, InstanceConfig, MetadataPair, SecurityFeature
from edgehost_cli.core.provisioning import ProvisioningOrchestrator, ProvisioningPhase, register_hosts
from edgehost_cli.core.session import HostConfigSession, WizardFormStatus
from edgehost_cli.core.steps import HostConfigStep, validate_step

__all__ = [
    "AggregatedStatus",
    "EdgeHostError",
    "HostConfigSession",
    "HostConfigStep",
    "HostFilterBuilder",
    "HostNotFoundError",
    "HostRecord",
    "HostSelectionError",
    "HostStateError",
    "InstanceConfig",
    "IntakeError",
    "InventoryAPIError",
    "LifeCycleState",
    "MetadataPair",
    "NoHostsSelectedError",
    "ProvisioningOrchestrator",
    "ProvisioningPhase",
    "SecurityFeature",
    "WizardFormStatus",
    "WorkloadPresence",
    "build_session",
    "load_intake",
    "register_hosts",
    "select_hosts",
    "validate_step",
]
