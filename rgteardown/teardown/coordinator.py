"""End-to-end teardown of one resource group.

State machine:

    Discovered -> Protected                                   (keep tag)
    Discovered -> Planning -> Planned                         (dry run)
    Discovered -> Planning -> Executing (stage i of N) -> Cleaned          (cleanup mode)
    Discovered -> Planning -> Executing (stage i of N) -> FinalDeleting -> Deleted | Blocked

Executing is skipped for an empty plan. Cancellation between stages ends in
Cancelled; an exceeded group timeout ends in Blocked.
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Callable, List, Optional

from ..cloud.client import FORCE_DELETION_TYPES, CloudResourceClient
from ..cloud.errors import CloudError, ErrorKind
from ..models.outcome import RemovalOutcome, StageResult
from ..models.plan import Stage
from ..models.report import GroupOutcome, GroupState, TeardownEvent, sanitize_reason
from ..models.resource import ResourceGroupHandle
from .confirmation import AutoApprove, AutoDeny, ConfirmationPolicy
from .executor import StageExecutor
from .options import TeardownOptions
from .resolver import DependencyResolver
from .retry import RetryFallbackController, RetryPolicy, Technique
from .safety import ProtectionChecker
from .strategies import RemovalContext

logger = logging.getLogger(__name__)

Observer = Callable[[TeardownEvent], None]


class GroupTeardownCoordinator:
    """Drives one resource group through its teardown state machine.

    Attributes:
        client: Control-plane client
        options: Run options
        policy: Retry policy for removals and the final delete
        confirmation: Confirmation policy handed to strategies
        resolver: Plan builder
        protection: Keep-vs-delete decision
        observer: Receives a TeardownEvent on every transition and stage (optional)
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
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the coordinator.

        Args:
            client: Control-plane client
            options: Run options (default: TeardownOptions())
            policy: Retry policy (default: RetryPolicy())
            confirmation: Confirmation policy (default: approve when force is set, otherwise deny)
            controller: Retry controller (default: one using time.sleep)
            protection: Protection checker (default: tag check with options.protection_tag)
            observer: Progress callback (optional)
            clock: Monotonic clock used for the group timeout
        """
        self.client = client
        self.options = options or TeardownOptions()
        self.policy = policy or RetryPolicy()
        if confirmation is None:
            confirmation = AutoApprove(self.options.allow_cross_group) if self.options.force else AutoDeny()
        self.confirmation = confirmation
        self.controller = controller or RetryFallbackController()
        self.protection = protection or ProtectionChecker(self.options.protection_tag)
        self.resolver = DependencyResolver(client)
        self.observer = observer
        self.clock = clock

    def run(self, group: ResourceGroupHandle, cancel_event: Optional[threading.Event] = None) -> GroupOutcome:
        """Tear down one resource group.

        Args:
            group: Group to tear down
            cancel_event: When set, no further stage or final delete starts

        Returns:
            GroupOutcome in a terminal state
        """
        outcome = GroupOutcome(group=group.name, started_at=datetime.now(timezone.utc))
        started = self.clock()

        protected, reason = self.protection.is_protected(group)
        if protected:
            return self._finish(outcome, GroupState.PROTECTED, reason)

        if self._cancelled(cancel_event):
            return self._finish(outcome, GroupState.CANCELLED, "cancelled before planning")

        self._enter(outcome, GroupState.PLANNING)
        try:
            plan = self.resolver.plan(group, self.options.families)
        except CloudError as e:
            if e.kind == ErrorKind.NOT_FOUND and not (self.options.dry_run or self.options.cleanup_only):
                return self._finish(outcome, GroupState.DELETED, "group no longer exists")
            return self._finish(outcome, GroupState.BLOCKED, sanitize_reason(f"planning failed: {e.message}"))

        if self.options.dry_run:
            outcome.plan = plan.to_dict()
            return self._finish(outcome, GroupState.PLANNED, f"{plan.task_count} removal task(s) planned")

        if plan.has_work:
            stages = [stage for stage in plan.stages if not stage.is_empty]
            self._enter(outcome, GroupState.EXECUTING, f"{len(stages)} stage(s)")
            context = RemovalContext(
                client=self.client,
                group=group,
                options=self.options,
                policy=self.policy,
                controller=self.controller,
                confirmation=self.confirmation,
                protection=self.protection,
            )
            executor = StageExecutor(context)

            for position, stage in enumerate(stages, start=1):
                if self._cancelled(cancel_event):
                    return self._finish(outcome, GroupState.CANCELLED, f"cancelled before stage {stage.name}")
                if self._timed_out(started):
                    return self._finish(
                        outcome,
                        GroupState.BLOCKED,
                        f"group timeout of {self.options.group_timeout}s exceeded before stage {stage.name}",
                    )

                self._emit(outcome, f"stage {position}/{len(stages)}: {stage.name}", stage.name, position, len(stages))
                outcome.stage_results.append(self._run_stage(executor, stage, group, cancel_event))

        if self.options.cleanup_only:
            degraded = len(outcome.degraded_stages)
            return self._finish(outcome, GroupState.CLEANED, f"{degraded} degraded stage(s)" if degraded else None)

        if self._cancelled(cancel_event):
            return self._finish(outcome, GroupState.CANCELLED, "cancelled before final delete")

        self._enter(outcome, GroupState.FINAL_DELETING)
        deleted, reason = self._final_delete(group)
        if deleted:
            return self._finish(outcome, GroupState.DELETED)
        return self._finish(outcome, GroupState.BLOCKED, reason)

    def _run_stage(
        self,
        executor: StageExecutor,
        stage: Stage,
        group: ResourceGroupHandle,
        cancel_event: Optional[threading.Event],
    ) -> StageResult:
        try:
            fresh = self.resolver.refresh(stage, group)
        except CloudError as e:
            logger.warning(f"Could not enumerate stage {stage.name} in {group.name}: {e}")
            failed = RemovalOutcome.failed(
                f"{group.name}/{stage.name}", f"enumeration failed: {e.message}", 1, "enumerate", e.kind
            )
            return StageResult(stage.name, stage.index, [failed])

        outcomes = executor.run_stage(fresh, self.options.stage_concurrency, cancel_event)
        result = StageResult(stage.name, stage.index, outcomes)
        if result.failed:
            logger.warning(f"Stage {stage.name} in {group.name} degraded: {len(result.failed)} failure(s)")
        return result

    def _final_delete(self, group: ResourceGroupHandle) -> tuple[bool, Optional[str]]:
        """Delete the group, escalating once to a forced delete on conflict.

        Returns:
            Tuple of (deleted, reason)
        """
        policy = self.policy.without_retry_on(ErrorKind.CONFLICT)
        group_id = group.id or self.client.group_id(group.name)
        client = self.client

        outcome = self.controller.execute(
            group_id, Technique("group-delete", lambda: client.delete_resource_group(group.name)), policy
        )
        if outcome.succeeded:
            return True, None

        if outcome.error_kind == ErrorKind.CONFLICT:
            logger.info(f"Group delete of {group.name} conflicted; retrying with forced deletion")
            outcome = self.controller.execute(
                group_id,
                Technique(
                    "forced-group-delete",
                    lambda: client.delete_resource_group(
                        group.name, force=True, force_deletion_types=FORCE_DELETION_TYPES
                    ),
                ),
                policy,
            )
            if outcome.succeeded:
                return True, None

        message = outcome.reason or "group delete failed"
        locks = self._remaining_locks(group_id)
        if locks:
            message = f"blocked by lock(s) {', '.join(locks)}: {message}"
        logger.warning(f"Group {group.name} blocked: {message}")
        return False, sanitize_reason(message)

    def _remaining_locks(self, scope: str) -> List[str]:
        try:
            return [lock.name for lock in self.client.list_locks(scope)]
        except CloudError as e:
            logger.debug(f"Could not list locks on {scope}: {e}")
            return []

    def _cancelled(self, cancel_event: Optional[threading.Event]) -> bool:
        return cancel_event is not None and cancel_event.is_set()

    def _timed_out(self, started: float) -> bool:
        timeout = self.options.group_timeout
        return timeout is not None and self.clock() - started > timeout

    def _enter(self, outcome: GroupOutcome, state: GroupState, message: str = "") -> None:
        outcome.state = state
        outcome.transitions.append(state)
        logger.info(f"{outcome.group}: {state.value}{' - ' + message if message else ''}")
        self._notify(TeardownEvent(outcome.group, state, message))

    def _emit(self, outcome: GroupOutcome, message: str, stage: str, index: int, count: int) -> None:
        logger.info(f"{outcome.group}: {message}")
        self._notify(TeardownEvent(outcome.group, outcome.state, message, stage, index, count))

    def _notify(self, event: TeardownEvent) -> None:
        if self.observer is not None:
            self.observer(event)

    def _finish(self, outcome: GroupOutcome, state: GroupState, reason: Optional[str] = None) -> GroupOutcome:
        outcome.reason = reason
        self._enter(outcome, state, reason or "")
        outcome.completed_at = datetime.now(timezone.utc)
        return outcome
