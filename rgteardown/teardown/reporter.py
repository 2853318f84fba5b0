"""Fleet report rendering and export."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import yaml
from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table

from ..models.outcome import RemovalStatus
from ..models.report import FleetReport, GroupOutcome, GroupState

STATE_STYLES = {
    GroupState.PROTECTED: "cyan",
    GroupState.DELETED: "green",
    GroupState.BLOCKED: "red",
    GroupState.PLANNED: "blue",
    GroupState.CLEANED: "green",
    GroupState.CANCELLED: "yellow",
}


class FleetReporter:
    """Render fleet reports for the terminal and export them to files."""

    def __init__(self, console: Optional[Console] = None) -> None:
        self.console = console or Console()

    def summary_table(self, report: FleetReport) -> Table:
        """Per-group table: state, removal counts and Blocked reasons."""
        title = f"Teardown {'plan' if report.dry_run else 'report'} ({report.mode})"
        table = Table(title=title)
        table.add_column("Resource Group", style="bold")
        table.add_column("State")
        table.add_column("Removed", justify="right")
        table.add_column("Not Found", justify="right")
        table.add_column("Skipped", justify="right")
        table.add_column("Failed", justify="right")
        table.add_column("Reason")

        for outcome in report.groups:
            style = STATE_STYLES.get(outcome.state, "white")
            reason = outcome.reason or ""
            if len(reason) > 80:
                reason = reason[:77] + "..."
            table.add_row(
                outcome.group,
                f"[{style}]{outcome.state.value}[/{style}]",
                str(outcome.count(RemovalStatus.REMOVED)),
                str(outcome.count(RemovalStatus.NOT_FOUND)),
                str(outcome.count(RemovalStatus.SKIPPED)),
                str(outcome.count(RemovalStatus.FAILED)),
                reason,
            )

        return table

    def plan_table(self, outcome: GroupOutcome) -> Table:
        """Planned stages of one group (dry run)."""
        table = Table(title=f"Plan for {outcome.group}")
        table.add_column("#", justify="right")
        table.add_column("Stage")
        table.add_column("Family")
        table.add_column("Resources")

        for stage in (outcome.plan or {}).get("stages", []):
            resources = stage["resources"]
            names = ", ".join(r.rstrip("/").split("/")[-1] for r in resources[:5])
            if len(resources) > 5:
                names += f" (+{len(resources) - 5} more)"
            table.add_row(str(stage["index"]), stage["name"], stage["family"], names or "[dim]none[/dim]")

        return table

    def failures_panel(self, report: FleetReport) -> Optional[Panel]:
        """Panel listing Blocked groups and failed removals, or None when there are none."""
        lines = []
        for outcome in report.groups:
            if outcome.state == GroupState.BLOCKED:
                lines.append(f"[red]✗ {outcome.group}[/red]: {outcome.reason}")
            for stage in outcome.stage_results:
                for failed in stage.failed:
                    lines.append(f"  [yellow]{stage.name}[/yellow] {failed.resource_id}: {failed.reason}")
        if not lines:
            return None
        return Panel("\n".join(lines), title="Needs attention", border_style="red")

    def render(self, report: FleetReport) -> None:
        """Print the report to the console."""
        if report.dry_run:
            for outcome in report.groups:
                if outcome.plan is not None:
                    self.console.print(self.plan_table(outcome))

        self.console.print(self.summary_table(report))

        panel = self.failures_panel(report)
        if panel is not None:
            self.console.print(panel)

        summary = report.summary()
        counts = Group(*[f"{state}: {count}" for state, count in summary.items() if count])
        self.console.print(Panel(counts, title=f"Run {report.run_id}", border_style="blue"))

    def format_terminal(self, report: FleetReport) -> str:
        """Render the report to a string."""
        console = Console(width=self.console.width)
        with console.capture() as capture:
            FleetReporter(console).render(report)
        return capture.get()

    def export(self, report: FleetReport, filepath: str) -> Path:
        """Export the report as JSON or YAML, chosen by file suffix.

        Args:
            report: Fleet report
            filepath: Output path (.json, .yaml or .yml)

        Returns:
            Path written

        Raises:
            ValueError: If the suffix is not supported
        """
        output_path = Path(filepath)
        suffix = output_path.suffix.lower()
        if suffix not in (".json", ".yaml", ".yml"):
            raise ValueError(f"Unsupported export format '{suffix}' (use .json, .yaml or .yml)")

        output_path.parent.mkdir(parents=True, exist_ok=True)
        data = report.to_dict()
        with open(output_path, "w") as f:
            if suffix == ".json":
                json.dump(data, f, indent=2)
            else:
                yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
        return output_path
