"""Typer CLI entrypoints for edge host configuration."""

from __future__ import annotations

import asyncio
from functools import partial
from pathlib import Path
from typing import Annotated, Any, TypeVar

import structlog
import typer
from pydantic import BaseModel, ValidationError
from typer import Option

from edgehost_cli.core.intake import DEFAULT_INTAKE_PATH
from edgehost_cli.core.runner import (
    EXIT_INPUT_ERROR,
    async_list_hosts,
    async_run_provision,
    async_run_register,
    open_inventory,
)
from edgehost_cli.models import ConnectionOptions, HostQueryOptions, IntakeRunOptions, ListOptions, WizardOptions
from edgehost_cli.utils import configure_logging
from edgehost_cli.utils.inventory import DEFAULT_TIMEOUT

logger = structlog.get_logger(__name__)

OptionsT = TypeVar("OptionsT", bound=BaseModel)

app = typer.Typer(help="Edge host configuration toolkit")


@app.callback()
def main_callback(
    verbose: Annotated[bool, Option("--verbose", "-v", help="Enable verbose logging globally")] = False,
) -> None:
    configure_logging(verbose)


ApiUrlOption = Annotated[str, Option("--api-url", envvar="EDGEHOST_API_URL", help="Inventory API base URL")]
ProjectOption = Annotated[str, Option("--project", envvar="EDGEHOST_PROJECT", help="Inventory project name")]
TimeoutOption = Annotated[float, Option("--timeout", help="Request timeout in seconds")]
IntakeOption = Annotated[str | None, Option("--intake", "-i", help="Intake file path")]
HostFilterOption = Annotated[
    list[str] | None, Option("--host", "-h", help="Limit to host name", show_default=False)
]

StateOption = Annotated[
    str | None, Option("--state", help="Lifecycle state: provisioned, onboarded, registered, healthy or all")
]
SearchOption = Annotated[str | None, Option("--search", help="Match name, uuid, serial, id, note, site or OS")]
StatusOption = Annotated[
    list[str] | None,
    Option("--status", help="Ready, InProgress, Error, Unknown or Deauthorized", show_default=False),
]
OsProfileOption = Annotated[
    list[str] | None, Option("--os-profile", help="Current OS profile name", show_default=False)
]
WorkloadOption = Annotated[
    bool | None, Option("--has-workload/--no-workload", help="Require or exclude workload members")
]
WorkloadMemberOption = Annotated[str | None, Option("--workload-member", help="Workload member id")]
SiteOption = Annotated[str | None, Option("--site", help="Site resource id")]


def _intake_path(value: str | None) -> Path:
    return Path(value).expanduser() if value else DEFAULT_INTAKE_PATH


def _options(model: type[OptionsT], **values: Any) -> OptionsT:
    try:
        return model(**values)
    except ValidationError as exc:
        logger.error("invalid-options", error=str(exc))
        typer.echo(f"Invalid options: {exc}", err=True)
        raise typer.Exit(code=EXIT_INPUT_ERROR) from exc


def _connection(api_url: str, project: str, timeout: float) -> ConnectionOptions:
    return _options(ConnectionOptions, api_url=api_url, project=project, timeout=timeout)


hosts_app = typer.Typer(help="Host search commands")
app.add_typer(hosts_app, name="hosts")


@hosts_app.command("query", help="Print the inventory filter for the given facets")
def hosts_query(
    state: StateOption = None,
    search: SearchOption = None,
    status: StatusOption = None,
    os_profile: OsProfileOption = None,
    has_workload: WorkloadOption = None,
    workload_member: WorkloadMemberOption = None,
    site: SiteOption = None,
) -> None:
    query = _options(
        HostQueryOptions,
        state=state,
        search=search,
        statuses=status or (),
        os_profiles=os_profile or (),
        has_workload=has_workload,
        workload_member=workload_member,
        site=site,
    )
    typer.echo(query.build_filter().query or "")


@hosts_app.command("list", help="List inventory hosts matching the given facets")
def hosts_list(
    api_url: ApiUrlOption,
    project: ProjectOption,
    state: StateOption = "provisioned",
    search: SearchOption = None,
    status: StatusOption = None,
    os_profile: OsProfileOption = None,
    has_workload: WorkloadOption = None,
    workload_member: WorkloadMemberOption = None,
    site: SiteOption = None,
    offset: Annotated[int, Option("--offset", help="Index of the first host")] = 0,
    page_size: Annotated[int, Option("--page-size", help="Hosts per page")] = 20,
    order_by: Annotated[str | None, Option("--order-by", help="Sort expression, e.g. 'name asc'")] = None,
    timeout: TimeoutOption = DEFAULT_TIMEOUT,
) -> None:
    query = _options(
        HostQueryOptions,
        state=state,
        search=search,
        statuses=status or (),
        os_profiles=os_profile or (),
        has_workload=has_workload,
        workload_member=workload_member,
        site=site,
    )
    options = _options(
        ListOptions,
        query=query,
        connection=_connection(api_url, project, timeout),
        offset=offset,
        page_size=page_size,
        order_by=order_by,
    )
    exit_code = asyncio.run(
        async_list_hosts(
            filter=options.query.build_filter().query,
            api_url=options.connection.api_url,
            project=options.connection.project,
            timeout=options.connection.timeout,
            offset=options.offset,
            page_size=options.page_size,
            order_by=options.order_by,
            echo=typer.echo,
        )
    )
    raise typer.Exit(code=exit_code)


provision_app = typer.Typer(help="Non-interactive provisioning")
app.add_typer(provision_app, name="provision")


@provision_app.command("run", help="Register, configure and provision the hosts of an intake file")
def provision_run(
    api_url: ApiUrlOption,
    project: ProjectOption,
    intake: IntakeOption = None,
    host: HostFilterOption = None,
    timeout: TimeoutOption = DEFAULT_TIMEOUT,
) -> None:
    options = _options(
        IntakeRunOptions,
        intake=_intake_path(intake),
        hosts=tuple(host or []),
        connection=_connection(api_url, project, timeout),
    )
    exit_code = asyncio.run(
        async_run_provision(
            intake_path=options.intake,
            host_filters=options.hosts,
            api_url=options.connection.api_url,
            project=options.connection.project,
            timeout=options.connection.timeout,
            echo=typer.echo,
        )
    )
    raise typer.Exit(code=exit_code)


register_app = typer.Typer(help="Host registration")
app.add_typer(register_app, name="register")


@register_app.command("run", help="Register the intake hosts that have no inventory id")
def register_run(
    api_url: ApiUrlOption,
    project: ProjectOption,
    intake: IntakeOption = None,
    host: HostFilterOption = None,
    timeout: TimeoutOption = DEFAULT_TIMEOUT,
) -> None:
    options = _options(
        IntakeRunOptions,
        intake=_intake_path(intake),
        hosts=tuple(host or []),
        connection=_connection(api_url, project, timeout),
    )
    exit_code = asyncio.run(
        async_run_register(
            intake_path=options.intake,
            host_filters=options.hosts,
            api_url=options.connection.api_url,
            project=options.connection.project,
            timeout=options.connection.timeout,
            echo=typer.echo,
        )
    )
    raise typer.Exit(code=exit_code)


wizard_app = typer.Typer(help="Interactive host configuration")
app.add_typer(wizard_app, name="wizard")


@wizard_app.command("run")
def wizard_run(
    api_url: ApiUrlOption,
    project: ProjectOption,
    intake: Annotated[str | None, Option("--intake", "-i", help="Start from an intake file")] = None,
    timeout: TimeoutOption = DEFAULT_TIMEOUT,
) -> None:
    from edgehost_cli import wizard  # questionary is only needed here

    options = _options(
        WizardOptions,
        intake=Path(intake).expanduser() if intake else None,
        connection=_connection(api_url, project, timeout),
    )
    connection = options.connection
    exit_code = wizard.run_wizard(
        options.intake,
        partial(open_inventory, connection.api_url, connection.project, timeout=connection.timeout),
    )
    raise typer.Exit(code=exit_code)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
