"""Audit storage for teardown runs.

Stores finished fleet reports as YAML for compliance and troubleshooting.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import yaml

from ..models.report import FleetReport


class AuditStorage:
    """Audit log storage and retrieval.

    Stores run reports as YAML files organized by year/month. Supports
    querying runs by date range and retrieving one run by ID.

    Storage structure:
        ~/.rgteardown/audit-logs/
            2026/
                10/
                    run-<run_id>.yaml

    Attributes:
        storage_dir: Base directory for audit logs
    """

    def __init__(self, storage_dir: Optional[str] = None) -> None:
        """Initialize audit storage.

        Args:
            storage_dir: Base directory for audit logs (default: ~/.rgteardown/audit-logs)
        """
        if storage_dir is None:
            storage_dir = str(Path.home() / ".rgteardown" / "audit-logs")

        self.storage_dir = Path(storage_dir).expanduser()
        self.storage_dir.mkdir(parents=True, exist_ok=True)

    def log_run(self, report: FleetReport) -> Path:
        """Write a finished run to audit storage.

        Overwrites an existing log with the same run ID.

        Args:
            report: Fleet report to log

        Returns:
            Path of the audit file
        """
        year_month_dir = self.storage_dir / str(report.started_at.year) / f"{report.started_at.month:02d}"
        year_month_dir.mkdir(parents=True, exist_ok=True)

        audit_data = {
            "metadata": {
                "version": "1.0",
                "log_type": "resource_group_teardown",
                "created_at": datetime.now(timezone.utc).isoformat(),
            },
            "run": report.to_dict(),
        }

        audit_file = year_month_dir / f"run-{report.run_id}.yaml"
        with open(audit_file, "w") as f:
            yaml.safe_dump(audit_data, f, default_flow_style=False, sort_keys=False)
        return audit_file

    def get_run(self, run_id: str) -> Optional[dict]:
        """Retrieve a run's audit log by ID (a unique prefix is enough).

        Args:
            run_id: Run ID or prefix

        Returns:
            Audit log dictionary if exactly one run matches, None otherwise
        """
        matches = sorted(self.storage_dir.glob(f"*/*/run-{run_id}*.yaml"))
        if len(matches) != 1:
            return None
        with open(matches[0], "r") as f:
            return yaml.safe_load(f)

    def query_runs(self, since: Optional[datetime] = None, until: Optional[datetime] = None) -> list[dict]:
        """Query runs within a date range.

        Args:
            since: Start time (inclusive), None for all
            until: End time (inclusive), None for all

        Returns:
            Matching audit logs, oldest first
        """
        results = []

        for year_dir in sorted(self.storage_dir.glob("*")):
            if not year_dir.is_dir():
                continue

            for month_dir in sorted(year_dir.glob("*")):
                if not month_dir.is_dir():
                    continue

                for audit_file in sorted(month_dir.glob("run-*.yaml")):
                    with open(audit_file, "r") as f:
                        audit_data = yaml.safe_load(f)

                    started_at = _as_utc(datetime.fromisoformat(audit_data["run"]["started_at"]))
                    if since and started_at < _as_utc(since):
                        continue
                    if until and started_at > _as_utc(until):
                        continue

                    results.append(audit_data)

        results.sort(key=lambda data: data["run"]["started_at"])
        return results


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
