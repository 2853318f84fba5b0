"""Teardown across many resource groups."""

from __future__ import annotations

import logging
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import List, Optional

from ..cloud.client import CloudResourceClient
from ..models.report import FleetReport, GroupOutcome, GroupState, sanitize_reason
from ..models.resource import ResourceGroupHandle
from .confirmation import ConfirmationPolicy
from .coordinator import GroupTeardownCoordinator, Observer
from .options import ExecutionMode, TeardownOptions
from .retry import RetryFallbackController, RetryPolicy
from .safety import ProtectionChecker

logger = logging.getLogger(__name__)


class FleetOrchestrator:
    """Runs group teardowns sequentially or with a bounded worker pool.

    Groups share nothing but the client; each runs its own state machine.
    Outcomes are collected by the calling thread only.

    Attributes:
        client: Control-plane client
        options: Run options
        coordinator: Coordinator applied to every group
    """

    def __init__(
        self,
        client: CloudResourceClient,
        options: Optional[TeardownOptions] = None,
        policy: Optional[RetryPolicy] = None,
        confirmation: Optional[ConfirmationPolicy] = None,
        controller: Optional[RetryFallbackController] = None,
        protection: Optional[ProtectionChecker] = None,
        observer: Optional[Observer] = None,
    ) -> None:
        self.client = client
        self.options = options or TeardownOptions()
        self.coordinator = GroupTeardownCoordinator(
            client,
            options=self.options,
            policy=policy,
            confirmation=confirmation,
            controller=controller,
            protection=protection,
            observer=observer,
        )

    def candidates(self, group_filter: Optional[str] = None) -> List[ResourceGroupHandle]:
        """Enumerate the groups a run would consider.

        Args:
            group_filter: Single group name (case-insensitive), or None for every group

        Returns:
            Matching groups, sorted by name

        Raises:
            ValueError: If group_filter names a group that does not exist
        """
        groups = sorted(self.client.list_resource_groups(), key=lambda g: g.name.lower())
        if group_filter is None:
            return groups

        matches = [g for g in groups if g.name.lower() == group_filter.lower()]
        if not matches:
            raise ValueError(f"Resource group '{group_filter}' not found")
        return matches

    def run_fleet(
        self,
        group_filter: Optional[str] = None,
        mode: ExecutionMode = ExecutionMode.SEQUENTIAL,
        cancel_event: Optional[threading.Event] = None,
    ) -> FleetReport:
        """Tear down every candidate group.

        Args:
            group_filter: Single group name, or None for all groups
            mode: Sequential or concurrent processing
            cancel_event: When set, no new group or stage starts

        Returns:
            FleetReport with one outcome per candidate group, in name order

        Raises:
            ValueError: If group_filter names a group that does not exist
        """
        groups = self.candidates(group_filter)
        report = FleetReport(
            run_id=str(uuid.uuid4()),
            mode=mode.value,
            dry_run=self.options.dry_run,
            subscription=self.client.subscription,
        )
        logger.info(f"Run {report.run_id}: {len(groups)} group(s), {mode.value}")

        if mode == ExecutionMode.CONCURRENT and len(groups) > 1:
            with ThreadPoolExecutor(max_workers=self.options.group_concurrency) as executor:
                futures = [executor.submit(self._run_group, group, cancel_event) for group in groups]
                report.groups = [future.result() for future in futures]
        else:
            report.groups = [self._run_group(group, cancel_event) for group in groups]

        report.completed_at = datetime.now(timezone.utc)
        logger.info(f"Run {report.run_id} finished: {report.summary()}")
        return report

    def _run_group(self, group: ResourceGroupHandle, cancel_event: Optional[threading.Event]) -> GroupOutcome:
        if cancel_event is not None and cancel_event.is_set():
            now = datetime.now(timezone.utc)
            return GroupOutcome(
                group=group.name,
                state=GroupState.CANCELLED,
                reason="cancelled before start",
                transitions=[GroupState.DISCOVERED, GroupState.CANCELLED],
                started_at=now,
                completed_at=now,
            )

        try:
            return self.coordinator.run(group, cancel_event)
        except Exception as e:
            logger.error(f"Unexpected error tearing down {group.name}: {e}", exc_info=True)
            now = datetime.now(timezone.utc)
            return GroupOutcome(
                group=group.name,
                state=GroupState.BLOCKED,
                reason=sanitize_reason(f"unexpected error: {e}"),
                transitions=[GroupState.DISCOVERED, GroupState.BLOCKED],
                started_at=now,
                completed_at=now,
            )
