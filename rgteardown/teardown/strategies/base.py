"""Base class for removal strategies."""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Optional

from ...cloud.client import CloudResourceClient
from ...cloud.errors import CloudError, ErrorKind
from ...cloud.ids import group_of, same_group
from ...models.outcome import RemovalOutcome, RemovalStatus
from ...models.resource import ResourceDescriptor, ResourceGroupHandle
from ..confirmation import ConfirmationPolicy, ConfirmationRequest
from ..options import TeardownOptions
from ..retry import RetryFallbackController, RetryPolicy, Technique
from ..safety import ProtectionChecker

logger = logging.getLogger(__name__)


@dataclass
class RemovalContext:
    """Capabilities and settings a strategy needs for one group.

    Attributes:
        client: Control-plane client
        group: Group being torn down
        options: Run options
        policy: Base retry policy
        controller: Retry/fallback controller
        confirmation: Confirmation policy for destructive steps
        protection: Keep-vs-delete decision applied to other groups a step would touch
    """

    client: CloudResourceClient
    group: ResourceGroupHandle
    options: TeardownOptions
    policy: RetryPolicy
    controller: RetryFallbackController
    confirmation: ConfirmationPolicy
    protection: ProtectionChecker = field(default_factory=ProtectionChecker)
    _groups: Optional[Dict[str, ResourceGroupHandle]] = field(default=None, init=False, repr=False)
    _groups_lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def owns(self, resource_id: str) -> bool:
        """True when the resource belongs to the group being torn down."""
        return group_of(resource_id) is None or same_group(resource_id, self.group.name)

    def owner_protection(self, group_name: str) -> tuple[bool, Optional[str]]:
        """Protection decision for another resource group, looked up by name once per run."""
        with self._groups_lock:
            if self._groups is None:
                self._groups = {g.name.lower(): g for g in self.client.list_resource_groups()}
            handle = self._groups.get(group_name.lower())
        return self.protection.is_protected(handle or ResourceGroupHandle(name=group_name))


class StepLog:
    """Accumulates the outcomes of a multi-step removal into one outcome."""

    def __init__(self, resource_id: str, strategy: str) -> None:
        self.resource_id = resource_id
        self.strategy = strategy
        self.attempts = 0
        self.failures: List[str] = []
        self.error_kind: Optional[ErrorKind] = None
        self.techniques: List[str] = []

    @property
    def failed(self) -> bool:
        return bool(self.failures)

    def record(self, outcome: RemovalOutcome, step: str) -> bool:
        """Record one step.

        Returns:
            True if the step did not fail
        """
        self.attempts += outcome.attempts_made
        self.techniques.extend(outcome.techniques_tried)
        if outcome.status == RemovalStatus.FAILED:
            self.failures.append(f"{step}: {outcome.reason}")
            self.error_kind = outcome.error_kind
            return False
        return True

    def fail(self) -> RemovalOutcome:
        outcome = RemovalOutcome.failed(
            self.resource_id, "; ".join(self.failures), self.attempts, self.strategy, self.error_kind
        )
        outcome.techniques_tried = list(self.techniques)
        return outcome

    def finish(self, final: RemovalOutcome) -> RemovalOutcome:
        """Combine the recorded steps with the final step's outcome."""
        if final.status == RemovalStatus.FAILED:
            self.record(final, "delete")
            return self.fail()

        return replace(
            final,
            resource_id=self.resource_id,
            attempts_made=self.attempts + final.attempts_made,
            strategy_used=f"{self.strategy}:{final.strategy_used}" if final.strategy_used else self.strategy,
            techniques_tried=self.techniques + list(final.techniques_tried),
        )

    def done(self) -> RemovalOutcome:
        """Outcome for a strategy whose steps were all preparatory."""
        if self.failed:
            return self.fail()
        outcome = RemovalOutcome.removed(self.resource_id, self.attempts, self.strategy)
        outcome.techniques_tried = list(self.techniques)
        return outcome


class RemovalStrategy(ABC):
    """Abstract base class for removal strategies.

    Each strategy should:
    1. Have a unique name
    2. Implement remove() for one resource kind
    3. Return a RemovalOutcome instead of raising for platform rejections
    4. Keep no state between calls
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier for this strategy (e.g. "nsg")."""

    @abstractmethod
    def remove(self, descriptor: ResourceDescriptor, context: RemovalContext) -> RemovalOutcome:
        """Remove one resource.

        Args:
            descriptor: Resource to remove
            context: Capabilities and settings for the current group

        Returns:
            RemovalOutcome for the resource
        """

    # ----- helpers shared by strategies -----

    def run(
        self,
        context: RemovalContext,
        resource_id: str,
        technique: str,
        call: Callable[[], Any],
        *fallbacks: Technique,
        policy: Optional[RetryPolicy] = None,
    ) -> RemovalOutcome:
        """Run one mutating call through the retry/fallback controller."""
        policy = (policy or context.policy).with_fallbacks(*fallbacks)
        return context.controller.execute(resource_id, Technique(technique, call), policy)

    def delete(self, context: RemovalContext, resource_id: str, force: bool = False) -> RemovalOutcome:
        """Delete a resource by ID, falling back to a raw REST delete."""
        client = context.client
        return self.run(
            context,
            resource_id,
            "delete",
            lambda: client.delete_resource(resource_id, force=force),
            Technique("rest-delete", lambda: client.rest("DELETE", resource_id)),
        )

    def foreign_block(
        self,
        context: RemovalContext,
        resource_id: str,
        action: str,
        details: Optional[List[str]] = None,
    ) -> Optional[str]:
        """Check whether a step may touch a resource outside the group being torn down.

        Resources in a protected group are never touched. Any other group's
        resources need an explicit cross-group approval, which force alone
        does not grant.

        Args:
            context: Removal context
            resource_id: Resource the step would change or delete
            action: Short description of the step
            details: Lines shown with the confirmation request

        Returns:
            None when the step may proceed, otherwise the reason it may not
        """
        if context.owns(resource_id):
            return None

        owner = group_of(resource_id)
        protected, reason = context.owner_protection(owner)
        if protected:
            logger.info(f"Leaving {resource_id}: resource group {owner} is protected ({reason})")
            return f"{resource_id.split('/')[-1]} belongs to protected resource group {owner} ({reason})"

        request = ConfirmationRequest(action, resource_id, list(details or []), cross_group=True)
        if not context.confirmation.confirm(request):
            return f"{resource_id.split('/')[-1]} is in another resource group ({owner}); not approved"
        return None

    def read(self, context: RemovalContext, call: Callable[[], Any]) -> Any:
        """Run a read-only call with retries on transient errors."""
        return context.controller.call(call, context.policy)

    def fetch(self, context: RemovalContext, resource_id: str) -> Optional[ResourceDescriptor]:
        """Fetch fresh resource detail.

        Returns:
            The resource, or None if it no longer exists
        """
        try:
            return self.read(context, lambda: context.client.get_resource(resource_id))
        except CloudError as e:
            if e.kind == ErrorKind.NOT_FOUND:
                return None
            raise

    def children(self, context: RemovalContext, parent_id: str, child_path: str) -> List[ResourceDescriptor]:
        """List child resources; a missing parent yields an empty list."""
        try:
            return self.read(context, lambda: context.client.list_children(parent_id, child_path))
        except CloudError as e:
            if e.kind == ErrorKind.NOT_FOUND:
                return []
            raise

    def gone(self, resource_id: str) -> RemovalOutcome:
        return RemovalOutcome.not_found(resource_id, attempts=1, strategy=self.name)


class DeleteStrategy(RemovalStrategy):
    """Plain delete with a raw REST fallback."""

    def __init__(self, name: str = "delete", force: bool = False) -> None:
        self._name = name
        self.force = force

    @property
    def name(self) -> str:
        return self._name

    def remove(self, descriptor: ResourceDescriptor, context: RemovalContext) -> RemovalOutcome:
        log = StepLog(descriptor.id, self.name)
        return log.finish(self.delete(context, descriptor.id, force=self.force))
