"""Interactive multi-host configuration wizard."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from pathlib import Path

import questionary
import structlog

from edgehost_cli.core.exceptions import HostSelectionError, IntakeError, NoHostsSelectedError
from edgehost_cli.core.intake import build_session, load_intake
from edgehost_cli.core.models import (
    MetadataPair,
    NewHost,
    OperatingSystemRef,
    RegionRef,
    SecurityFeature,
    SiteRef,
)
from edgehost_cli.core.provisioning import (
    InventoryOperations,
    ProvisioningOrchestrator,
    ProvisioningPhase,
    register_hosts,
)
from edgehost_cli.core.runner import EXIT_HOST_FAILURE, EXIT_INPUT_ERROR, EXIT_OK
from edgehost_cli.core.session import HostConfigSession
from edgehost_cli.core.steps import HostConfigStep, duplicate_names, is_valid_host_name
from edgehost_cli.prompts import (
    WizardAbort,
    ask_bool,
    ask_choice,
    ask_csv_list,
    ask_optional_text,
    ask_text,
    print_error,
    print_info,
)

LOGGER = structlog.get_logger(__name__)

InventoryFactory = Callable[[], AbstractAsyncContextManager[InventoryOperations]]

_SECURITY_CHOICES = [
    questionary.Choice(
        "Secure boot and full disk encryption",
        SecurityFeature.SECURE_BOOT_AND_FULL_DISK_ENCRYPTION,
    ),
    questionary.Choice("None", SecurityFeature.NONE),
]


def parse_labels(entries: list[str]) -> tuple[list[MetadataPair], list[str]]:
    """Split ``key=value`` entries into pairs; also return the malformed entries."""
    pairs: list[MetadataPair] = []
    invalid: list[str] = []
    for entry in entries:
        key, sep, value = entry.partition("=")
        if not sep or not key.strip() or not value.strip():
            invalid.append(entry)
            continue
        pairs.append(MetadataPair(key=key.strip(), value=value.strip()))
    return pairs, invalid


class HostConfigWizard:
    def __init__(self, session: HostConfigSession, open_inventory: InventoryFactory) -> None:
        self.session = session
        self._open_inventory = open_inventory
        self.orchestrator: ProvisioningOrchestrator | None = None

    def run(self) -> int:
        if not self.session.contains_hosts:
            print_error("There are no hosts selected for configuration.")
            return EXIT_INPUT_ERROR
        self.session.validate()
        while True:
            step = self.session.status.current_step
            print_info(f"Step {step + 1}: {step.label}")
            if step is HostConfigStep.COMPLETE_SETUP:
                outcome = self.complete_setup()
                if outcome is not None:
                    return outcome
                continue
            self._prompt_step(step)
            self._navigate()

    def _prompt_step(self, step: HostConfigStep) -> None:
        handlers: dict[HostConfigStep, Callable[[], None]] = {
            HostConfigStep.SELECT_SITE: self.select_site,
            HostConfigStep.ENTER_HOST_DETAILS: self.enter_host_details,
            HostConfigStep.ADD_HOST_LABELS: self.add_host_labels,
            HostConfigStep.ENABLE_LOCAL_ACCESS: self.enable_local_access,
        }
        handlers[step]()

    def _navigate(self) -> None:
        state = self.session.get_wizard_state()
        choice = ask_choice(
            "Continue",
            [
                questionary.Choice("Next", "next", disabled=None if state.can_advance else "step incomplete"),
                questionary.Choice("Back", "back", disabled=None if state.can_retreat else "first step"),
                questionary.Choice("Edit again", "stay"),
                questionary.Choice("Cancel", "cancel"),
            ],
        )
        if choice == "next":
            self.session.advance()
        elif choice == "back":
            self.session.retreat()
        elif choice == "cancel":
            raise WizardAbort()

    def select_site(self) -> None:
        view = self.session.site_step()
        current = view.hosts[0].site_id if view.hosts else None
        site_id = ask_text("Site id", default=current, required=True)
        region_id = ask_optional_text("Region id (optional)")
        region = RegionRef(resource_id=region_id) if region_id else None
        if region is not None:
            view.set_region(region)
        view.set_site(SiteRef(resource_id=site_id, region=region))

    def enter_host_details(self) -> None:
        view = self.session.details_step()
        shared_os = False
        shared_security = False
        if len(view.hosts) > 1:
            shared_os = ask_bool("Use the same OS profile for every host?", default=view.global_os_value is not None)
            if shared_os:
                os_id = ask_text("OS profile id", default=view.global_os_value, required=True)
                view.apply_global_os(OperatingSystemRef(resource_id=os_id))
            shared_security = ask_bool("Use the same security setting for every host?", default=True)
            if shared_security:
                enabled = ask_bool(
                    "Enable secure boot and full disk encryption?",
                    default=view.global_security_enabled,
                )
                view.apply_global_security(enabled)

        for host in view.hosts:
            key = host.key
            while True:
                label = host.serial_number or host.uuid or host.name
                name = ask_text(f"Name for {label}", default=host.name, required=True)
                if is_valid_host_name(name):
                    break
                print_error("Names use letters, digits, spaces and -_./: (at most 20 characters).")
            view.set_host_name(key, name)
            record = self.session.select_host(key)
            if not shared_os:
                current_os = record.instance.os_id if record.instance else None
                os_id = ask_text(f"OS profile id for {name}", default=current_os, required=True)
                view.set_os_profile(key, OperatingSystemRef(resource_id=os_id))
            if not shared_security:
                current = record.instance.security_feature if record.instance else None
                feature = ask_choice(f"Security for {name}", _SECURITY_CHOICES, default=current)
                view.set_security(key, feature)

        duplicates = duplicate_names(self.session.hosts)
        if duplicates:
            print_error(f"Host names must be unique: {', '.join(duplicates)}")

    def add_host_labels(self) -> None:
        view = self.session.labels_step()
        current = [f"{pair.key}={pair.value}" for pair in view.metadata]
        entries = ask_csv_list("Host labels as key=value", current=current)
        pairs, invalid = parse_labels(entries)
        view.set_validation_error(bool(invalid))
        if invalid:
            print_error(f"Invalid labels: {', '.join(invalid)}")
            return
        view.set_metadata(pairs)

    def enable_local_access(self) -> None:
        view = self.session.local_access_step()
        for host in view.hosts:
            current = host.instance.local_account_id if host.instance else None
            account = ask_optional_text(
                f"Local account id for {host.name} (enter 'none' to clear)",
                default=current,
                clear_word="none",
            )
            view.set_local_account(host.key, account)

    def review(self) -> None:
        for host in self.session.hosts:
            instance = host.instance
            os_id = instance.os_id if instance else None
            security = instance.security_feature if instance else None
            labels = ", ".join(f"{pair.key}={pair.value}" for pair in host.metadata) or "-"
            questionary.print(
                f"{host.name}: site={host.site_id} os={os_id} security={security} labels={labels}"
            )

    def complete_setup(self) -> int | None:
        """Review, then provision; return an exit code or None to keep navigating."""
        self.review()
        if self.session.unregistered_hosts():
            self.session.set_auto_onboard(ask_bool("Onboard hosts automatically?", default=self.session.auto_onboard))
            self.session.set_auto_provision(
                ask_bool("Provision hosts once they are registered?", default=self.session.auto_provision)
            )
        choice = ask_choice(
            "Complete setup",
            [
                questionary.Choice("Provision", "provision"),
                questionary.Choice("Back", "back"),
                questionary.Choice("Cancel", "cancel"),
            ],
        )
        if choice == "back":
            self.session.retreat()
            return None
        if choice == "cancel":
            raise WizardAbort()
        if not self.session.auto_provision and self.session.unregistered_hosts():
            return self.register_only()

        while True:
            orchestrator = asyncio.run(self.provision())
            notification = orchestrator.notification
            if notification is not None:
                style = "bold green" if notification.variant == "success" else "bold red"
                questionary.print(f"{notification.title}: {notification.text}", style=style)
            if orchestrator.phase is ProvisioningPhase.BACK_TO_HOSTS:
                return EXIT_OK
            if not ask_bool("Retry the failed hosts?", default=True):
                return EXIT_HOST_FAILURE

    def register_only(self) -> int:
        """Register the new hosts without provisioning them; onboarding is left to the operator."""
        while True:
            failures = asyncio.run(self.register())
            for host in self.session.hosts:
                if host.name in failures:
                    print_error(f"{host.name}: {failures[host.name]}")
                elif host.durable_id is not None:
                    print_info(f"{host.name}: registered as {host.durable_id}")
            if not failures:
                return EXIT_OK
            if not ask_bool("Retry the failed registrations?", default=True):
                return EXIT_HOST_FAILURE

    async def register(self) -> dict[str, str]:
        async with self._open_inventory() as inventory:
            return await register_hosts(self.session, inventory)

    async def provision(self) -> ProvisioningOrchestrator:
        async with self._open_inventory() as inventory:
            if self.orchestrator is None:
                self.orchestrator = ProvisioningOrchestrator(self.session, inventory)
            else:
                self.orchestrator.inventory = inventory
            await self.orchestrator.run()
        return self.orchestrator


def collect_new_hosts() -> list[NewHost]:
    """Prompt for the hosts to register until the operator stops adding."""
    hosts: list[NewHost] = []
    while True:
        name = ask_text("Host name", required=True)
        if any(host.name == name for host in hosts):
            print_error("Host name already exists.")
            continue
        serial = ask_optional_text("Serial number")
        uuid = ask_optional_text("UUID")
        if not serial and not uuid:
            print_error("A serial number or UUID is required.")
            continue
        hosts.append(NewHost(name=name, serial_number=serial, uuid=uuid))
        if not ask_bool("Add another host?", default=False):
            return hosts


def run_wizard(intake_path: Path | None, open_inventory: InventoryFactory) -> int:
    try:
        if intake_path is not None:
            session = build_session(load_intake(intake_path))
        else:
            session = HostConfigSession()
            session.set_new_registered_hosts(collect_new_hosts())
        return HostConfigWizard(session, open_inventory).run()
    except WizardAbort:
        questionary.print("Aborted.", style="bold red")
        return EXIT_INPUT_ERROR
    except (IntakeError, HostSelectionError, NoHostsSelectedError) as exc:
        LOGGER.error("wizard-input-error", error=str(exc))
        return EXIT_INPUT_ERROR


__all__ = ["HostConfigWizard", "collect_new_hosts", "parse_labels", "run_wizard"]
