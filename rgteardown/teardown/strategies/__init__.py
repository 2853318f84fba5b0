"""Removal strategies, one per resource kind."""

from typing import Dict

from ...models.resource import ResourceKind
from .base import DeleteStrategy, RemovalContext, RemovalStrategy, StepLog
from .locks import LockStrategy
from .monitor import DataCollectionRuleStrategy
from .netapp import NetAppAccountStrategy, NetAppVolumeStrategy, netapp_delete
from .network import (
    NetworkInterfaceStrategy,
    NetworkSecurityGroupStrategy,
    SubnetStrategy,
    VirtualNetworkStrategy,
)
from .vault import (
    BackupContainerStrategy,
    BackupItemStrategy,
    RecoveryVaultStrategy,
    SiteRecoveryStrategy,
    VaultSafeguardStrategy,
)

GENERIC = DeleteStrategy()

STRATEGIES: Dict[ResourceKind, RemovalStrategy] = {
    ResourceKind.NETAPP_VOLUME: NetAppVolumeStrategy(),
    ResourceKind.NETAPP_POOL: netapp_delete("pool"),
    ResourceKind.NETAPP_BACKUP_POLICY: netapp_delete("backup-policy"),
    ResourceKind.NETAPP_BACKUP: netapp_delete("backup"),
    ResourceKind.NETAPP_BACKUP_VAULT: netapp_delete("backup-vault"),
    ResourceKind.NETAPP_ACCOUNT: NetAppAccountStrategy(),
    ResourceKind.NSG: NetworkSecurityGroupStrategy(),
    ResourceKind.NIC: NetworkInterfaceStrategy(),
    ResourceKind.SUBNET: SubnetStrategy(),
    ResourceKind.VNET: VirtualNetworkStrategy(),
    ResourceKind.DCR: DataCollectionRuleStrategy(),
    ResourceKind.DCE: DeleteStrategy(name="dce"),
    ResourceKind.BACKUP_ITEM: BackupItemStrategy(),
    ResourceKind.BACKUP_CONTAINER: BackupContainerStrategy(),
    ResourceKind.ASR_FABRIC: SiteRecoveryStrategy(),
    ResourceKind.RECOVERY_VAULT: RecoveryVaultStrategy(),
    ResourceKind.LOCK: LockStrategy(),
}


def strategy_for(kind: ResourceKind) -> RemovalStrategy:
    """Look up the removal strategy for a resource kind.

    Kinds without a dedicated strategy get the generic delete.
    """
    return STRATEGIES.get(kind, GENERIC)


__all__ = [
    "BackupContainerStrategy",
    "BackupItemStrategy",
    "DataCollectionRuleStrategy",
    "DeleteStrategy",
    "LockStrategy",
    "NetAppAccountStrategy",
    "NetAppVolumeStrategy",
    "NetworkInterfaceStrategy",
    "NetworkSecurityGroupStrategy",
    "RecoveryVaultStrategy",
    "RemovalContext",
    "RemovalStrategy",
    "STRATEGIES",
    "SiteRecoveryStrategy",
    "StepLog",
    "SubnetStrategy",
    "VaultSafeguardStrategy",
    "VirtualNetworkStrategy",
    "strategy_for",
]
