"""Removal strategies for the NetApp hierarchy.

NetApp resources are removed strictly bottom-up: volumes (after their backups
and replication), capacity pools, backup policies, vault-scoped backups,
backup vaults, then accounts.
"""

from __future__ import annotations

import logging
from typing import Optional

from ...models.outcome import RemovalOutcome
from ...models.resource import ResourceDescriptor
from .base import DeleteStrategy, RemovalContext, RemovalStrategy, StepLog

logger = logging.getLogger(__name__)


class NetAppVolumeStrategy(RemovalStrategy):
    """Remove a volume's backups and replication, then force-delete it."""

    @property
    def name(self) -> str:
        return "netapp-volume"

    def remove(self, descriptor: ResourceDescriptor, context: RemovalContext) -> RemovalOutcome:
        volume = self.fetch(context, descriptor.id)
        if volume is None:
            return self.gone(descriptor.id)

        client = context.client
        log = StepLog(volume.id, self.name)

        for backup in self.children(context, volume.id, "backups"):
            log.record(self.delete(context, backup.id), f"backup {backup.name}")

        if volume.prop("dataProtection.replication"):
            broken = self.run(
                context,
                volume.id,
                "break-replication",
                lambda: client.invoke_action(volume.id, "breakReplication", {"forceBreakReplication": True}),
            )
            if not broken.succeeded:
                # Already-broken relationships reject the break; deleting still works
                logger.info(f"Break replication on {volume.name} failed ({broken.reason}); deleting it anyway")
            outcome = self.run(
                context, volume.id, "delete-replication", lambda: client.invoke_action(volume.id, "deleteReplication")
            )
            log.record(outcome, "replication")

        if volume.prop("dataProtection.backup"):
            outcome = self.run(
                context,
                volume.id,
                "clear-backup-config",
                lambda: client.update_resource(volume.id, {"properties.dataProtection.backup": None}),
            )
            log.record(outcome, "backup configuration")

        if log.failed:
            return log.fail()
        return log.finish(self.delete(context, volume.id, force=True))


class NetAppAccountStrategy(RemovalStrategy):
    """Unwind whatever is left under a NetApp account, then delete it."""

    def __init__(self, volumes: Optional[NetAppVolumeStrategy] = None) -> None:
        self.volumes = volumes or NetAppVolumeStrategy()

    @property
    def name(self) -> str:
        return "netapp-account"

    def remove(self, descriptor: ResourceDescriptor, context: RemovalContext) -> RemovalOutcome:
        account = descriptor
        log = StepLog(account.id, self.name)

        for pool in self.children(context, account.id, "capacityPools"):
            for volume in self.children(context, pool.id, "volumes"):
                log.record(self.volumes.remove(volume, context), f"volume {volume.name}")
            log.record(self.delete(context, pool.id), f"pool {pool.name}")

        for policy in self.children(context, account.id, "backupPolicies"):
            log.record(self.delete(context, policy.id), f"backup policy {policy.name}")

        for vault in self.children(context, account.id, "backupVaults"):
            for backup in self.children(context, vault.id, "backups"):
                log.record(self.delete(context, backup.id), f"backup {backup.name}")
            log.record(self.delete(context, vault.id), f"backup vault {vault.name}")

        if log.failed:
            return log.fail()
        return log.finish(self.delete(context, account.id))


def netapp_delete(kind: str) -> DeleteStrategy:
    """Plain delete for pools, policies, vault backups and backup vaults."""
    return DeleteStrategy(name=f"netapp-{kind}")
