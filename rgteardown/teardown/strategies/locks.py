"""Removal strategy for management locks."""

from __future__ import annotations

import logging

from ...models.outcome import RemovalOutcome
from ...models.resource import ResourceDescriptor
from .base import RemovalContext, RemovalStrategy, StepLog

logger = logging.getLogger(__name__)


class LockStrategy(RemovalStrategy):
    """Delete a lock when lock removal is enabled; otherwise report it."""

    @property
    def name(self) -> str:
        return "lock"

    def remove(self, descriptor: ResourceDescriptor, context: RemovalContext) -> RemovalOutcome:
        level = descriptor.prop("level", "CanNotDelete")
        if not context.options.remove_locks:
            logger.warning(f"Lock {descriptor.name} ({level}) left in place; it will block the group delete")
            return RemovalOutcome.skipped(
                descriptor.id, f"lock {descriptor.name} ({level}) kept; lock removal not enabled"
            )

        log = StepLog(descriptor.id, self.name)
        client = context.client
        return log.finish(
            self.run(context, descriptor.id, "delete-lock", lambda: client.delete_lock(descriptor.id))
        )
