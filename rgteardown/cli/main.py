"""Main CLI entry point using Typer."""

import logging
import sys
import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from datetime import datetime
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from ..cloud.azure_cli import AzureCliClient
from ..cloud.errors import CloudError
from ..models.plan import StageFamily
from ..models.report import FleetReport, TeardownEvent
from ..teardown.audit import AuditStorage
from ..teardown.confirmation import AutoApprove, CallbackConfirmation, ConfirmationRequest, CrossGroupDecline
from ..teardown.fleet import FleetOrchestrator
from ..teardown.options import ExecutionMode, TeardownOptions
from ..teardown.reporter import FleetReporter
from ..teardown.safety import ProtectionChecker
from ..utils.logging import setup_logging
from .config import Config, ConfigError

logger = logging.getLogger(__name__)

EXIT_BLOCKED = 3

# Create Typer app
app = typer.Typer(
    name="rgteardown",
    help="rg-teardown - Dependency-aware Azure resource group teardown",
    add_completion=False,
)

# Create Rich console for output
console = Console()

# Global config
config: Optional[Config] = None
quiet_output = False


@app.callback()
def main(
    subscription: Optional[str] = typer.Option(None, "--subscription", "-s", help="Azure subscription ID"),
    config_file: Optional[str] = typer.Option(
        None,
        "--config",
        help="Config file (default: $RGTEARDOWN_CONFIG or ~/.rgteardown/config.yaml)",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress output except errors and the final report"),
    no_color: bool = typer.Option(False, "--no-color", help="Disable colored output"),
):
    """rg-teardown - Dependency-aware Azure resource group teardown."""
    global config, quiet_output

    # Load configuration
    try:
        config = Config.load(config_file)
    except ConfigError as e:
        console.print(f"✗ Configuration error: {e}", style="bold red")
        raise typer.Exit(code=1)

    # Override with CLI options
    if subscription:
        config.subscription = subscription

    # Setup logging
    log_level = "ERROR" if quiet else ("DEBUG" if verbose else config.log_level)
    setup_logging(level=log_level, verbose=verbose)
    quiet_output = quiet

    # Disable colors if requested
    if no_color:
        console.no_color = True


@app.command()
def version():
    """Show version information."""
    from .. import __version__

    console.print(f"rg-teardown version {__version__}")
    console.print(f"Python {sys.version.split()[0]}")
    console.print(f"typer {typer.__version__}")


def _client() -> AzureCliClient:
    return AzureCliClient(subscription=config.subscription, az_path=config.az_path)


def _prompt(request: ConfirmationRequest) -> bool:
    console.print(f"\n[bold yellow]Confirm:[/bold yellow] {request.action}")
    if request.cross_group:
        console.print("  [red]This resource belongs to another resource group.[/red]")
    console.print(f"  {request.resource_id}")
    for line in request.details:
        console.print(f"  • {line}")
    return typer.confirm("Proceed?", default=False)


def _progress(event: TeardownEvent) -> None:
    if quiet_output:
        return
    if event.stage:
        console.print(f"  [dim]{event.group}[/dim] {event.message}")
    else:
        detail = f" ({event.message})" if event.message else ""
        console.print(f"[cyan]{event.group}[/cyan] → {event.state.value}{detail}")


def _parse_families(only: Optional[List[str]]) -> Optional[frozenset]:
    if not only:
        return None
    families = set()
    for value in only:
        try:
            families.add(StageFamily(value.lower()))
        except ValueError:
            choices = ", ".join(f.value for f in StageFamily)
            raise ValueError(f"Unknown stage family '{value}' (choose from {choices})")
    return frozenset(families)


def _run_cancellable(orchestrator: FleetOrchestrator, group: Optional[str], mode: ExecutionMode) -> FleetReport:
    """Run the fleet in a worker thread so Ctrl+C cancels instead of killing in-flight calls."""
    cancel = threading.Event()
    with ThreadPoolExecutor(max_workers=1) as pool:
        future = pool.submit(orchestrator.run_fleet, group, mode, cancel)
        while True:
            try:
                return future.result(timeout=0.5)
            except FutureTimeout:
                continue
            except KeyboardInterrupt:
                if not cancel.is_set():
                    cancel.set()
                    console.print("\n⚠ Cancelling: waiting for in-flight operations to finish...", style="yellow")


def _execute(
    group: Optional[str],
    options: TeardownOptions,
    mode: ExecutionMode,
    operation_timeout: Optional[float],
    export: Optional[str],
) -> None:
    orchestrator = FleetOrchestrator(
        _client(),
        options=options,
        policy=config.retry_policy(operation_timeout),
        confirmation=AutoApprove(options.allow_cross_group) if options.force else CallbackConfirmation(_prompt),
        protection=ProtectionChecker(options.protection_tag, config.protected_groups),
        observer=_progress,
    )

    report = _run_cancellable(orchestrator, group, mode)

    reporter = FleetReporter(console)
    reporter.render(report)

    if export:
        path = reporter.export(report, export)
        console.print(f"\n✓ Exported report to: [cyan]{path}[/cyan]")

    if config.audit_dir and not options.dry_run:
        audit_file = AuditStorage(config.audit_dir).log_run(report)
        logger.debug(f"Audit log written to {audit_file}")

    if not report.succeeded:
        raise typer.Exit(code=EXIT_BLOCKED)


@app.command()
def teardown(
    group: Optional[str] = typer.Argument(None, help="Resource group to tear down (default: every unprotected group)"),
    force: bool = typer.Option(False, "--force", "-f", help="Skip per-resource confirmations"),
    remove_locks: bool = typer.Option(False, "--remove-locks", help="Remove management locks"),
    concurrent: bool = typer.Option(False, "--concurrent", help="Process groups concurrently"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show the plan without deleting anything"),
    only: Optional[List[str]] = typer.Option(
        None,
        "--only",
        help="Clean up only these stage families (netapp, network, monitoring, recovery-vault, locks); keeps the group",
    ),
    stage_concurrency: Optional[int] = typer.Option(None, "--stage-concurrency", help="Concurrent removals per stage"),
    group_concurrency: Optional[int] = typer.Option(None, "--group-concurrency", help="Concurrent groups"),
    operation_timeout: Optional[float] = typer.Option(None, "--operation-timeout", help="Seconds per removal call"),
    group_timeout: Optional[float] = typer.Option(None, "--group-timeout", help="Seconds per group"),
    cross_group: str = typer.Option(
        CrossGroupDecline.ABORT_SUBNET.value,
        "--cross-group",
        help="When a change to another group's NIC or VM is declined: abort-subnet or skip-nic",
    ),
    allow_cross_group: bool = typer.Option(
        False,
        "--allow-cross-group",
        help="With --force, also change or delete resources in other unprotected groups",
    ),
    export: Optional[str] = typer.Option(None, "--export", help="Export the report to a .json or .yaml file"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask before tearing down every group"),
):
    """Tear down one resource group, or every unprotected group."""
    try:
        families = _parse_families(only)
        try:
            decline = CrossGroupDecline(cross_group)
        except ValueError:
            raise ValueError(f"Invalid --cross-group value '{cross_group}' (choose from abort-subnet, skip-nic)")

        options = TeardownOptions(
            force=force,
            remove_locks=remove_locks,
            dry_run=dry_run,
            families=families,
            stage_concurrency=stage_concurrency or config.stage_concurrency,
            group_concurrency=group_concurrency or config.group_concurrency,
            group_timeout=group_timeout if group_timeout is not None else config.group_timeout,
            protection_tag=config.protection_tag,
            cross_group_decline=decline,
            allow_cross_group=allow_cross_group,
        )

        if group is None and not dry_run and not yes:
            target = config.subscription or "the current subscription"
            if not typer.confirm(f"Tear down EVERY unprotected resource group in {target}?", default=False):
                console.print("Cancelled.", style="yellow")
                raise typer.Exit(code=0)

        mode = ExecutionMode.CONCURRENT if concurrent else ExecutionMode.SEQUENTIAL
        _execute(group, options, mode, operation_timeout, export)

    except typer.Exit:
        # Re-raise Typer exit codes (for early returns and Blocked groups)
        raise
    except ValueError as e:
        console.print(f"✗ {e}", style="bold red")
        raise typer.Exit(code=1)
    except CloudError as e:
        console.print(f"✗ Azure error: {e}", style="bold red")
        raise typer.Exit(code=2)
    except Exception as e:
        console.print(f"✗ Error during teardown: {e}", style="bold red")
        logger.exception("Error in teardown command")
        raise typer.Exit(code=2)


@app.command()
def plan(
    group: Optional[str] = typer.Argument(None, help="Resource group to plan (default: every group)"),
    only: Optional[List[str]] = typer.Option(None, "--only", help="Plan only these stage families"),
    export: Optional[str] = typer.Option(None, "--export", help="Export the plan to a .json or .yaml file"),
):
    """Show what a teardown would do, without changing anything."""
    try:
        options = TeardownOptions(
            dry_run=True,
            families=_parse_families(only),
            protection_tag=config.protection_tag,
        )
        _execute(group, options, ExecutionMode.SEQUENTIAL, None, export)

    except typer.Exit:
        raise
    except ValueError as e:
        console.print(f"✗ {e}", style="bold red")
        raise typer.Exit(code=1)
    except Exception as e:
        console.print(f"✗ Error building plan: {e}", style="bold red")
        logger.exception("Error in plan command")
        raise typer.Exit(code=2)


@app.command()
def groups():
    """List resource groups and whether a teardown would keep or delete them."""
    try:
        checker = ProtectionChecker(config.protection_tag, config.protected_groups)
        found = sorted(_client().list_resource_groups(), key=lambda g: g.name.lower())

        if not found:
            console.print("No resource groups found.", style="yellow")
            return

        table = Table(show_header=True, title="Resource Groups")
        table.add_column("Name", style="cyan")
        table.add_column("Location")
        table.add_column("Decision", justify="center")
        table.add_column("Reason")

        keep_count = 0
        for handle in found:
            protected, reason = checker.is_protected(handle)
            keep_count += int(protected)
            decision = "[green]keep[/green]" if protected else "[red]delete[/red]"
            table.add_row(handle.name, handle.location or "", decision, reason or "")

        console.print(table)
        console.print(f"\nTotal: {len(found)} ({keep_count} kept, {len(found) - keep_count} to delete)")

    except Exception as e:
        console.print(f"✗ Error listing resource groups: {e}", style="bold red")
        raise typer.Exit(code=1)


# Report commands group
report_app = typer.Typer(help="Past teardown runs (requires audit_dir)")
app.add_typer(report_app, name="report")


def _audit() -> AuditStorage:
    if not config.audit_dir:
        console.print("✗ Audit log is disabled; set audit_dir or $RGTEARDOWN_AUDIT_DIR", style="bold red")
        raise typer.Exit(code=1)
    return AuditStorage(config.audit_dir)


@report_app.command("list")
def report_list(
    since: Optional[str] = typer.Option(None, "--since", help="Only runs started on or after this date (YYYY-MM-DD)"),
):
    """List logged teardown runs."""
    try:
        storage = _audit()
        since_date = datetime.fromisoformat(since) if since else None
        runs = storage.query_runs(since=since_date)

        if not runs:
            console.print("No teardown runs found.", style="yellow")
            return

        table = Table(show_header=True, title="Teardown Runs")
        table.add_column("Run ID", style="cyan")
        table.add_column("Started", style="green")
        table.add_column("Mode")
        table.add_column("Deleted", justify="right")
        table.add_column("Blocked", justify="right")
        table.add_column("Protected", justify="right")

        for data in runs:
            run = data["run"]
            summary = run["summary"]
            table.add_row(
                run["run_id"][:8],
                run["started_at"][:16].replace("T", " "),
                run["mode"],
                str(summary["deleted"]),
                str(summary["blocked"]),
                str(summary["protected"]),
            )

        console.print(table)

    except typer.Exit:
        raise
    except ValueError as e:
        console.print(f"✗ Invalid date: {e}", style="bold red")
        raise typer.Exit(code=1)
    except Exception as e:
        console.print(f"✗ Error listing runs: {e}", style="bold red")
        raise typer.Exit(code=2)


@report_app.command("show")
def report_show(run_id: str = typer.Argument(..., help="Run ID (or unique prefix)")):
    """Show one logged teardown run."""
    try:
        data = _audit().get_run(run_id)
        if data is None:
            console.print(f"✗ Run '{run_id}' not found", style="bold red")
            raise typer.Exit(code=1)

        run = data["run"]
        console.print(f"[bold]Run {run['run_id']}[/bold] ({run['mode']}, started {run['started_at']})")

        table = Table(show_header=True)
        table.add_column("Resource Group", style="cyan")
        table.add_column("State")
        table.add_column("Stages", justify="right")
        table.add_column("Reason")
        for group in run["groups"]:
            table.add_row(group["group"], group["state"], str(len(group["stages"])), group["reason"] or "")
        console.print(table)

    except typer.Exit:
        raise
    except Exception as e:
        console.print(f"✗ Error showing run: {e}", style="bold red")
        raise typer.Exit(code=2)


def cli_main():
    """Entry point for console script."""
    app()


if __name__ == "__main__":
    cli_main()
