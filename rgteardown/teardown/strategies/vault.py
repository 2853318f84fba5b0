"""Removal strategies for recovery services vaults.

A vault can only be deleted once it is empty. Unwinding one takes these steps,
each spread over its own stage so independent items run in parallel:

1. Safeguards: disable soft delete, undo pending soft deletes, disable
   immutability and remove resource guard proxies
2. Backup items: stop protection and delete backup data for every workload
   type (AzureVM, MSSQL, SAPHana, AzureFiles, MARS, MABS, DPM)
3. Containers: unregister backup containers and registered servers
4. Site recovery: replicated items, container mappings, network mappings,
   containers, then the fabric
5. Vault: private endpoint connections and endpoints, then the vault itself
"""

from __future__ import annotations

import logging
from typing import Optional

from ...cloud.errors import CloudError, ErrorKind
from ...cloud.ids import parent_id
from ...models.outcome import RemovalOutcome, RemovalStatus
from ...models.resource import ResourceDescriptor
from ..retry import Technique
from .base import RemovalContext, RemovalStrategy, StepLog

logger = logging.getLogger(__name__)

# Backup management types whose containers are registered servers
SERVER_MANAGEMENT_TYPES = ("MAB", "DPM", "AzureBackupServer")

# Removing the last protected VM removes its container
PLATFORM_MANAGED_CONTAINERS = ("AzureIaasVM",)

PROTECTED_ITEMS = "backupProtectedItems"
PROTECTION_CONTAINERS = "backupProtectionContainers"
REPLICATION_FABRICS = "replicationFabrics"


def _vault_of(resource_id: str) -> str:
    for segment in ("backupFabrics", "replicationFabrics", "backupconfig"):
        vault_id = parent_id(resource_id, segment)
        if vault_id != resource_id:
            return vault_id
    return resource_id


class VaultSafeguardStrategy(RemovalStrategy):
    """Disable the vault features that block deleting its contents."""

    @property
    def name(self) -> str:
        return "vault-safeguards"

    def remove(self, descriptor: ResourceDescriptor, context: RemovalContext) -> RemovalOutcome:
        vault = self.fetch(context, descriptor.id)
        if vault is None:
            return self.gone(descriptor.id)

        log = StepLog(vault.id, self.name)
        self.prepare(vault, context, log)
        return log.done()

    def prepare(self, vault: ResourceDescriptor, context: RemovalContext, log: StepLog) -> None:
        """Run every safeguard step against a vault, recording each in log."""
        client = context.client

        # Soft delete
        soft_delete = vault.prop("securitySettings.softDeleteSettings.softDeleteState", "")
        if str(soft_delete).lower() == "alwayson":
            log.record(
                RemovalOutcome.failed(vault.id, "soft delete is always-on for this vault", 0, "soft-delete"),
                "soft delete",
            )
        else:
            body = {"properties": {"softDeleteFeatureState": "Disabled", "enhancedSecurityState": "Disabled"}}
            outcome = self.run(
                context,
                vault.id,
                "vault-config",
                lambda: client.rest("PATCH", f"{vault.id}/backupconfig/vaultconfig", body),
                Technique(
                    "vault-property",
                    lambda: client.update_resource(
                        vault.id, {"properties.securitySettings.softDeleteSettings.softDeleteState": "Disabled"}
                    ),
                ),
            )
            log.record(outcome, "soft delete")

        # Pending soft deletes
        for item in self.children(context, vault.id, PROTECTED_ITEMS):
            if item.prop("isScheduledForDeferredDelete"):
                log.record(self.undelete(item, context), f"undelete {item.name}")

        # Immutability
        immutability = str(vault.prop("securitySettings.immutabilitySettings.state", "") or "")
        if immutability.lower() == "locked":
            log.record(
                RemovalOutcome.failed(vault.id, "immutability is locked on this vault", 0, "immutability"),
                "immutability",
            )
        elif immutability.lower() == "unlocked":
            outcome = self.run(
                context,
                vault.id,
                "disable-immutability",
                lambda: client.update_resource(
                    vault.id, {"properties.securitySettings.immutabilitySettings.state": "Disabled"}
                ),
            )
            log.record(outcome, "immutability")

        # Resource guard (multi-user authorization)
        for proxy in self.children(context, vault.id, "backupResourceGuardProxies"):
            outcome = self.run(
                context, proxy.id, "delete-guard-proxy", lambda proxy_id=proxy.id: client.rest("DELETE", proxy_id)
            )
            log.record(outcome, f"resource guard {proxy.name}")

    def undelete(self, item: ResourceDescriptor, context: RemovalContext) -> RemovalOutcome:
        body = {"properties": {"protectedItemType": item.prop("protectedItemType"), "isRehydrate": True}}
        return self.run(context, item.id, "undelete", lambda: context.client.rest("PUT", item.id, body))


class BackupItemStrategy(RemovalStrategy):
    """Stop protection for one backup item and delete its backup data."""

    def __init__(self, safeguards: Optional[VaultSafeguardStrategy] = None) -> None:
        self.safeguards = safeguards or VaultSafeguardStrategy()

    @property
    def name(self) -> str:
        return "backup-item"

    def remove(self, descriptor: ResourceDescriptor, context: RemovalContext) -> RemovalOutcome:
        log = StepLog(descriptor.id, self.name)

        if descriptor.prop("isScheduledForDeferredDelete"):
            if not log.record(self.safeguards.undelete(descriptor, context), "undelete"):
                return log.fail()

        workload = descriptor.prop("workloadType") or descriptor.prop("protectedItemType") or "unknown"
        logger.debug(f"Stopping protection of {descriptor.name} ({workload})")
        return log.finish(self.delete(context, descriptor.id))


class BackupContainerStrategy(RemovalStrategy):
    """Unregister a backup container or registered management server."""

    @property
    def name(self) -> str:
        return "backup-container"

    def remove(self, descriptor: ResourceDescriptor, context: RemovalContext) -> RemovalOutcome:
        client = context.client
        management_type = descriptor.prop("backupManagementType", "")
        log = StepLog(descriptor.id, self.name)

        if management_type in PLATFORM_MANAGED_CONTAINERS:
            return RemovalOutcome.skipped(descriptor.id, f"{management_type} containers are removed by the platform")

        if management_type in SERVER_MANAGEMENT_TYPES:
            server = descriptor.prop("friendlyName") or descriptor.name
            identity = f"{_vault_of(descriptor.id)}/registeredIdentities/{server}"
            outcome = self.run(
                context,
                descriptor.id,
                "unregister-server",
                lambda: client.rest("DELETE", identity),
                Technique("delete", lambda: client.delete_resource(descriptor.id)),
            )
            return log.finish(outcome)

        outcome = self.run(
            context,
            descriptor.id,
            "unregister",
            lambda: client.rest("DELETE", descriptor.id),
            Technique("delete", lambda: client.delete_resource(descriptor.id)),
        )
        return log.finish(outcome)


class SiteRecoveryStrategy(RemovalStrategy):
    """Tear down one site recovery fabric bottom-up."""

    @property
    def name(self) -> str:
        return "site-recovery"

    def remove(self, descriptor: ResourceDescriptor, context: RemovalContext) -> RemovalOutcome:
        fabric = descriptor
        log = StepLog(fabric.id, self.name)

        containers = self.children(context, fabric.id, "replicationProtectionContainers")
        for container in containers:
            for item in self.children(context, container.id, "replicationProtectedItems"):
                body = {"properties": {"disableProtectionReason": "NotSpecified"}}
                log.record(self._remove(context, item.id, "disable-replication", body), f"replicated item {item.name}")
            for mapping in self.children(context, container.id, "replicationProtectionContainerMappings"):
                body = {"properties": {"providerSpecificInput": {}}}
                log.record(self._remove(context, mapping.id, "remove-mapping", body), f"container mapping {mapping.name}")

        for network in self.children(context, fabric.id, "replicationNetworks"):
            for mapping in self.children(context, network.id, "replicationNetworkMappings"):
                outcome = self.run(
                    context, mapping.id, "delete-mapping", lambda mapping_id=mapping.id: context.client.rest("DELETE", mapping_id)
                )
                log.record(outcome, f"network mapping {mapping.name}")

        for container in containers:
            log.record(self._remove(context, container.id, "remove-container"), f"container {container.name}")

        if log.failed:
            return log.fail()
        return log.finish(self._remove(context, fabric.id, "remove-fabric"))

    def _remove(self, context: RemovalContext, resource_id: str, technique: str, body: Optional[dict] = None) -> RemovalOutcome:
        """Remove a site recovery object with its remove action, purging it as a fallback."""
        client = context.client
        return self.run(
            context,
            resource_id,
            technique,
            lambda: client.invoke_action(resource_id, "remove", body),
            Technique("purge", lambda: client.rest("DELETE", resource_id)),
        )


class RecoveryVaultStrategy(RemovalStrategy):
    """Empty a vault completely, then delete it.

    Repeats the whole unwind so the vault is empty even when an earlier
    stage was skipped or degraded; in the normal flow the sweep finds nothing.
    """

    def __init__(self) -> None:
        self.safeguards = VaultSafeguardStrategy()
        self.items = BackupItemStrategy(self.safeguards)
        self.containers = BackupContainerStrategy()
        self.fabrics = SiteRecoveryStrategy()

    @property
    def name(self) -> str:
        return "recovery-vault"

    def remove(self, descriptor: ResourceDescriptor, context: RemovalContext) -> RemovalOutcome:
        vault = self.fetch(context, descriptor.id)
        if vault is None:
            return self.gone(descriptor.id)

        client = context.client
        log = StepLog(vault.id, self.name)

        self.safeguards.prepare(vault, context, log)
        for item in self.children(context, vault.id, PROTECTED_ITEMS):
            log.record(self.items.remove(item, context), f"backup item {item.name}")
        for container in self.children(context, vault.id, PROTECTION_CONTAINERS):
            outcome = self.containers.remove(container, context)
            if outcome.status != RemovalStatus.SKIPPED:
                log.record(outcome, f"container {container.name}")
        for fabric in self.children(context, vault.id, REPLICATION_FABRICS):
            log.record(self.fabrics.remove(fabric, context), f"fabric {fabric.name}")

        for connection in vault.prop("privateEndpointConnections", []) or []:
            connection_id = connection.get("id")
            endpoint_id = ((connection.get("properties") or {}).get("privateEndpoint") or {}).get("id")
            if connection_id:
                outcome = self.run(
                    context, connection_id, "delete-connection", lambda cid=connection_id: client.rest("DELETE", cid)
                )
                log.record(outcome, "private endpoint connection")
            if not endpoint_id:
                continue
            blocked = self.foreign_block(
                context, endpoint_id, "delete private endpoint in another resource group", [f"vault: {vault.id}"]
            )
            if blocked:
                logger.info(f"Keeping private endpoint of {vault.name}: {blocked}")
                continue
            log.record(self.delete(context, endpoint_id), "private endpoint")

        if log.failed:
            return log.fail()

        return log.finish(
            self.run(
                context,
                vault.id,
                "delete",
                lambda: self._delete_and_verify(context, vault.id),
                Technique("rest-delete", lambda: client.rest("DELETE", vault.id)),
            )
        )

    def _delete_and_verify(self, context: RemovalContext, vault_id: str) -> None:
        context.client.delete_resource(vault_id)
        try:
            context.client.get_resource(vault_id)
        except CloudError as e:
            if e.kind == ErrorKind.NOT_FOUND:
                return
            raise
        raise CloudError(ErrorKind.INCOMPLETE, f"vault {vault_id.split('/')[-1]} still present after delete")
