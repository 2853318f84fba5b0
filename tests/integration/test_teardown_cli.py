"""Integration tests for the teardown CLI."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, Iterator
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from rgteardown.cli.main import app
from tests.fixtures.cloud import FakeCloudClient, empty_group, locked_group, nsg_group

runner = CliRunner()


@pytest.fixture
def client() -> Iterator[FakeCloudClient]:
    """In-memory subscription served to every CLI command."""
    fake = FakeCloudClient()
    with patch("rgteardown.cli.main.AzureCliClient", return_value=fake):
        yield fake


@pytest.fixture
def env(tmp_path: Path) -> Dict[str, str]:
    """Environment pointing the CLI at an empty config and a scratch audit directory."""
    return {
        "RGTEARDOWN_CONFIG": str(tmp_path / "config.yaml"),
        "RGTEARDOWN_AUDIT_DIR": str(tmp_path / "audit"),
    }


class TestTeardownCommand:
    """Test suite for the teardown command."""

    def test_deletes_group(self, client: FakeCloudClient, env: Dict[str, str]) -> None:
        """Test a forced teardown of an empty group succeeds."""
        empty_group(client)

        result = runner.invoke(app, ["teardown", "rg-empty", "--force"], env=env)

        assert result.exit_code == 0, result.output
        assert "rg-empty" in result.output
        assert "rg-empty" not in client.groups

    def test_blocked_group_exit_code(self, client: FakeCloudClient, env: Dict[str, str]) -> None:
        """Test a Blocked group exits with the blocked code."""
        locked_group(client)

        result = runner.invoke(app, ["teardown", "rg-locked", "--force"], env=env)

        assert result.exit_code == 3
        assert "do-not-delete" in result.output

    def test_unknown_group(self, client: FakeCloudClient, env: Dict[str, str]) -> None:
        """Test an unknown group exits with a usage error."""
        empty_group(client)

        result = runner.invoke(app, ["teardown", "rg-missing", "--force"], env=env)

        assert result.exit_code == 1
        assert "not found" in result.output

    def test_invalid_family(self, client: FakeCloudClient, env: Dict[str, str]) -> None:
        """Test an unknown --only family is rejected."""
        result = runner.invoke(app, ["teardown", "rg-empty", "--only", "compute"], env=env)

        assert result.exit_code == 1
        assert "Unknown stage family" in result.output
        assert client.calls == []

    def test_invalid_cross_group_value(self, client: FakeCloudClient, env: Dict[str, str]) -> None:
        """Test an unknown --cross-group value is rejected."""
        result = runner.invoke(app, ["teardown", "rg-empty", "--cross-group", "ignore"], env=env)

        assert result.exit_code == 1
        assert "--cross-group" in result.output

    def test_whole_subscription_needs_confirmation(self, client: FakeCloudClient, env: Dict[str, str]) -> None:
        """Test declining the fleet-wide prompt changes nothing."""
        empty_group(client)

        result = runner.invoke(app, ["teardown", "--force"], input="n\n", env=env)

        assert result.exit_code == 0
        assert "Cancelled" in result.output
        assert client.calls == []

    def test_cleanup_only_keeps_group(self, client: FakeCloudClient, env: Dict[str, str]) -> None:
        """Test --only removes the selected family and keeps the group."""
        nsg_group(client)

        result = runner.invoke(app, ["teardown", "rg-nsg", "--force", "--only", "network"], env=env)

        assert result.exit_code == 0, result.output
        assert "rg-nsg" in client.groups
        assert client.calls_to("delete_resource_group") == []

    def test_cross_group_changes_need_flag(self, client: FakeCloudClient, env: Dict[str, str]) -> None:
        """Test --force leaves another group's VM until --allow-cross-group is given."""
        client.add_group("rg-del")
        client.add_group("rg-other")
        vm = client.add("rg-other", "Microsoft.Compute/virtualMachines", "vm1")
        client.add("rg-del", "Microsoft.Network/networkInterfaces", "nic1", {"virtualMachine": {"id": vm.id}})
        args = ["teardown", "rg-del", "--force", "--only", "network"]

        result = runner.invoke(app, args, env=env)

        assert result.exit_code == 0, result.output
        assert client.exists(vm.id)

        result = runner.invoke(app, args + ["--allow-cross-group"], env=env)

        assert result.exit_code == 0, result.output
        assert not client.exists(vm.id)

    def test_export_and_audit(self, client: FakeCloudClient, env: Dict[str, str], tmp_path: Path) -> None:
        """Test the report is exported and logged, then listed from the audit log."""
        empty_group(client)
        export_path = tmp_path / "report.json"

        result = runner.invoke(app, ["teardown", "rg-empty", "--force", "--export", str(export_path)], env=env)

        assert result.exit_code == 0, result.output
        data = json.loads(export_path.read_text())
        assert data["groups"][0]["state"] == "deleted"
        assert list((tmp_path / "audit").glob("*/*/run-*.yaml"))

        listing = runner.invoke(app, ["report", "list"], env=env)
        assert listing.exit_code == 0
        assert data["run_id"][:8] in listing.output

        shown = runner.invoke(app, ["report", "show", data["run_id"]], env=env)
        assert shown.exit_code == 0
        assert "rg-empty" in shown.output


class TestPlanCommand:
    """Test suite for the plan command."""

    def test_plan_issues_no_mutations(self, client: FakeCloudClient, env: Dict[str, str]) -> None:
        """Test planning renders the stages without changing anything."""
        nsg_group(client)

        result = runner.invoke(app, ["plan", "rg-nsg"], env=env)

        assert result.exit_code == 0, result.output
        assert "Plan for rg-nsg" in result.output
        assert "subnets" in result.output
        assert client.mutating_calls == []
        assert not (Path(env["RGTEARDOWN_AUDIT_DIR"])).exists()


class TestOtherCommands:
    """Test suite for groups, report and version."""

    def test_groups(self, client: FakeCloudClient, env: Dict[str, str]) -> None:
        """Test groups shows the keep/delete decision."""
        empty_group(client)
        client.add_group("rg-keep", tags={"keep": "true"})

        result = runner.invoke(app, ["groups"], env=env)

        assert result.exit_code == 0
        assert "rg-keep" in result.output
        assert "1 kept, 1 to delete" in result.output

    def test_report_show_unknown_run(self, client: FakeCloudClient, env: Dict[str, str]) -> None:
        """Test showing an unknown run exits with an error."""
        result = runner.invoke(app, ["report", "show", "nope"], env=env)

        assert result.exit_code == 1
        assert "not found" in result.output

    def test_config_error(self, client: FakeCloudClient, env: Dict[str, str]) -> None:
        """Test an invalid config file stops the CLI."""
        Path(env["RGTEARDOWN_CONFIG"]).write_text("colour: blue\n")

        result = runner.invoke(app, ["groups"], env=env)

        assert result.exit_code == 1
        assert "Configuration error" in result.output

    def test_version(self, env: Dict[str, str]) -> None:
        """Test version output."""
        result = runner.invoke(app, ["version"], env=env)

        assert result.exit_code == 0
        assert "rg-teardown version" in result.output
