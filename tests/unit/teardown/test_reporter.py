"""Tests for FleetReporter."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml
from rich.console import Console

from rgteardown.cloud.errors import ErrorKind
from rgteardown.models.outcome import RemovalOutcome, StageResult
from rgteardown.models.report import FleetReport, GroupOutcome, GroupState
from rgteardown.teardown.reporter import FleetReporter

NIC_ID = "/subscriptions/sub-1/resourceGroups/rg-net/providers/Microsoft.Network/networkInterfaces/nic1"


def _report(dry_run: bool = False) -> FleetReport:
    stage = StageResult(
        "network-interfaces",
        7,
        [
            RemovalOutcome.removed(NIC_ID, 1, "nic:delete"),
            RemovalOutcome.failed(NIC_ID + "-2", "InUseNetworkInterface", 3, "nic:delete", ErrorKind.CONFLICT),
        ],
    )
    return FleetReport(
        run_id="run-1",
        mode="sequential",
        dry_run=dry_run,
        groups=[
            GroupOutcome(group="rg-keep", state=GroupState.PROTECTED, reason="tagged keep=true"),
            GroupOutcome(
                group="rg-net",
                state=GroupState.BLOCKED,
                reason="blocked by lock(s) nodelete: ScopeLocked",
                stage_results=[stage],
            ),
        ],
    )


class TestFleetReporter:
    """Test suite for FleetReporter."""

    def setup_method(self) -> None:
        self.reporter = FleetReporter(Console(width=200))

    def test_format_terminal(self) -> None:
        """Test the rendered report names every group and its state."""
        output = self.reporter.format_terminal(_report())

        assert "rg-keep" in output
        assert "rg-net" in output
        assert "protected" in output
        assert "blocked" in output
        assert "Needs attention" in output
        assert "InUseNetworkInterface" in output

    def test_summary_table_counts(self) -> None:
        """Test the summary table has one row per group."""
        table = self.reporter.summary_table(_report())

        assert table.row_count == 2
        assert table.title == "Teardown report (sequential)"

    def test_no_failures_panel_when_clean(self) -> None:
        """Test the failures panel is omitted when nothing needs attention."""
        report = FleetReport(run_id="run-2", mode="sequential", groups=[GroupOutcome(group="rg", state=GroupState.DELETED)])

        assert self.reporter.failures_panel(report) is None

    def test_plan_table(self) -> None:
        """Test a dry-run plan is rendered stage by stage."""
        outcome = GroupOutcome(
            group="rg-net",
            state=GroupState.PLANNED,
            plan={
                "group": "rg-net",
                "stages": [
                    {"index": 7, "name": "network-interfaces", "family": "network", "resources": [NIC_ID]},
                    {"index": 9, "name": "virtual-networks", "family": "network", "resources": []},
                ],
            },
        )

        table = self.reporter.plan_table(outcome)

        assert table.row_count == 2
        assert table.title == "Plan for rg-net"

    def test_export_json(self, tmp_path: Path) -> None:
        """Test JSON export."""
        path = self.reporter.export(_report(), str(tmp_path / "out" / "report.json"))

        data = json.loads(path.read_text())
        assert data["run_id"] == "run-1"
        assert data["summary"]["blocked"] == 1
        assert data["groups"][1]["stages"][0]["status"] == "degraded"

    def test_export_yaml(self, tmp_path: Path) -> None:
        """Test YAML export."""
        path = self.reporter.export(_report(), str(tmp_path / "report.yml"))

        data = yaml.safe_load(path.read_text())
        assert [g["state"] for g in data["groups"]] == ["protected", "blocked"]

    def test_export_unsupported_format(self, tmp_path: Path) -> None:
        """Test unsupported suffixes are rejected."""
        with pytest.raises(ValueError, match="Unsupported export format"):
            self.reporter.export(_report(), str(tmp_path / "report.csv"))
