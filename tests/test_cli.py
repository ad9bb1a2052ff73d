from __future__ import annotations

import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, cast

import pytest
from _pytest.monkeypatch import MonkeyPatch
from conftest import FakeInventory
from pydantic import ValidationError
from typer.testing import CliRunner

from edgehost_cli.app import app
from edgehost_cli.core import runner as runner_module
from edgehost_cli.core.models import HostRead, HostsPage
from edgehost_cli.models import ConnectionOptions, HostQueryOptions

cli_module = sys.modules["edgehost_cli.app"]

API_ENV = {"EDGEHOST_API_URL": "https://inventory.example.com", "EDGEHOST_PROJECT": "lab"}

INTAKE = """
[defaults]
site_id = "site-1"
os_id = "os-1"
security = "NONE"
auto_provision = true

[[hosts]]
name = "edge-1"
serial_number = "SN1"

[[hosts]]
name = "edge-2"
serial_number = "SN2"
"""


def _use_inventory(monkeypatch: MonkeyPatch, inventory: Any) -> None:
    @asynccontextmanager
    async def fake_open_inventory(api_url: str, project: str, *, timeout: float) -> AsyncIterator[Any]:
        yield inventory

    monkeypatch.setattr(runner_module, "open_inventory", fake_open_inventory)


def _write_intake(tmp_path: Path, text: str = INTAKE) -> Path:
    path = tmp_path / "edge-hosts.toml"
    path.write_text(text, encoding="utf-8")
    return path


def test_connection_options_validate_values() -> None:
    with pytest.raises(ValidationError):
        ConnectionOptions(api_url="inventory.example.com", project="lab")
    with pytest.raises(ValidationError):
        ConnectionOptions(api_url="https://inventory.example.com", project="lab", timeout=0)
    options = ConnectionOptions(api_url="https://inventory.example.com/", project="lab")
    assert options.api_url == "https://inventory.example.com"


def test_query_options_build_filter() -> None:
    options = HostQueryOptions(state="Registered", statuses=["Unknown"])
    assert options.build_filter().query == (
        "(currentState=HOST_STATE_REGISTERED OR currentState=HOST_STATE_UNSPECIFIED) "
        "AND (currentState=HOST_STATE_UNSPECIFIED)"
    )


def test_cli_hosts_query_prints_filter() -> None:
    result = CliRunner().invoke(
        app,
        ["hosts", "query", "--state", "provisioned", "--no-workload", "--site", "site-1"],
    )
    assert result.exit_code == 0
    assert result.output.strip() == (
        "(currentState=HOST_STATE_ONBOARDED AND has(instance)) AND "
        'NOT has(instance.workloadMembers) AND site.resourceId="site-1"'
    )


def test_cli_hosts_query_rejects_unknown_state() -> None:
    result = CliRunner().invoke(app, ["hosts", "query", "--state", "sleeping"])
    assert result.exit_code == 1


def test_cli_hosts_list_prints_rows(monkeypatch: MonkeyPatch) -> None:
    captured: dict[str, object] = {}

    class ListingInventory:
        async def list_hosts(self, filter: str | None = None, **kwargs: object) -> HostsPage:
            captured["filter"] = filter
            captured.update(kwargs)
            return HostsPage(hosts=[HostRead(resource_id="host-1", name="edge-1")], total_elements=1)

    _use_inventory(monkeypatch, ListingInventory())
    result = CliRunner().invoke(app, ["hosts", "list", "--page-size", "5"], env=API_ENV)

    assert result.exit_code == 0
    assert "host-1\tedge-1" in result.output
    assert "Total: 1" in result.output
    assert captured["filter"] == "(currentState=HOST_STATE_ONBOARDED AND has(instance))"
    assert captured["page_size"] == 5


def test_cli_hosts_list_rejects_large_page(monkeypatch: MonkeyPatch) -> None:
    result = CliRunner().invoke(app, ["hosts", "list", "--page-size", "500"], env=API_ENV)
    assert result.exit_code == 1


def test_cli_provision_run_invokes_async_runner(monkeypatch: MonkeyPatch, tmp_path: Path) -> None:
    called: dict[str, object] = {}

    async def fake_async_run_provision(**kwargs: object) -> int:
        called.update(kwargs)
        return 0

    monkeypatch.setattr(cli_module, "async_run_provision", fake_async_run_provision)
    result = CliRunner().invoke(
        app,
        [
            "provision",
            "run",
            "--intake",
            str(tmp_path / "hosts.toml"),
            "--host",
            "edge-1",
            "--timeout",
            "5",
        ],
        env=API_ENV,
    )
    assert result.exit_code == 0
    assert called["host_filters"] == ("edge-1",)
    assert called["project"] == "lab"
    assert called["timeout"] == 5.0


def test_cli_provision_run_end_to_end(monkeypatch: MonkeyPatch, tmp_path: Path) -> None:
    inventory = FakeInventory()
    _use_inventory(monkeypatch, inventory)

    result = CliRunner().invoke(
        app,
        ["provision", "run", "--intake", str(_write_intake(tmp_path))],
        env=API_ENV,
    )

    assert result.exit_code == 0
    assert "edge-1\tok" in result.output
    assert "Success:" in result.output
    assert inventory.register_calls == ["edge-1", "edge-2"]


def test_cli_provision_run_reports_failed_hosts(monkeypatch: MonkeyPatch, tmp_path: Path) -> None:
    inventory = FakeInventory()
    inventory.register_failures["edge-2"] = "quota exceeded"
    _use_inventory(monkeypatch, inventory)

    result = CliRunner().invoke(
        app,
        ["provision", "run", "--intake", str(_write_intake(tmp_path))],
        env=API_ENV,
    )

    assert result.exit_code == 3
    assert "edge-2\tfailed: quota exceeded" in result.output
    assert "Failed hosts: edge-2" in result.output


def test_cli_provision_run_blocks_incomplete_step(monkeypatch: MonkeyPatch, tmp_path: Path) -> None:
    inventory = FakeInventory()
    _use_inventory(monkeypatch, inventory)
    intake = _write_intake(tmp_path, INTAKE.replace('os_id = "os-1"\n', ""))

    result = CliRunner().invoke(app, ["provision", "run", "--intake", str(intake)], env=API_ENV)

    assert result.exit_code == 1
    assert "Enter Host Details" in result.output
    assert inventory.register_calls == []


def test_cli_provision_run_bad_intake(tmp_path: Path) -> None:
    result = CliRunner().invoke(
        app,
        ["provision", "run", "--intake", str(tmp_path / "missing.toml")],
        env=API_ENV,
    )
    assert result.exit_code == 1


def test_cli_register_run(monkeypatch: MonkeyPatch, tmp_path: Path) -> None:
    inventory = FakeInventory()
    _use_inventory(monkeypatch, inventory)

    result = CliRunner().invoke(
        app,
        ["register", "run", "--intake", str(_write_intake(tmp_path)), "--host", "edge-2"],
        env=API_ENV,
    )

    assert result.exit_code == 0
    assert "edge-2\thost-edge-2" in result.output
    assert inventory.register_calls == ["edge-2"]
    assert inventory.patch_calls == []


def test_cli_wizard_run_invokes_helper(monkeypatch: MonkeyPatch, tmp_path: Path) -> None:
    invoked: dict[str, object] = {}

    def fake_run_wizard(intake_path: Path | None, open_inventory: object) -> int:
        invoked["intake"] = intake_path
        invoked["factory"] = open_inventory
        return 0

    from edgehost_cli import wizard

    monkeypatch.setattr(wizard, "run_wizard", fake_run_wizard)
    result = CliRunner().invoke(
        app,
        ["--verbose", "wizard", "run", "--intake", str(tmp_path / "hosts.toml")],
        env=API_ENV,
    )
    assert result.exit_code == 0
    assert cast(Path, invoked["intake"]).name == "hosts.toml"
    assert callable(invoked["factory"])
