"""Resource group and resource descriptor models.

Represents the live cloud state enumerated at the start of each teardown stage.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

PROTECTION_TAG = "keep"


class ResourceKind(Enum):
    """Resource kinds with dedicated removal handling."""

    NSG = "nsg"
    VNET = "vnet"
    SUBNET = "subnet"
    NIC = "nic"
    PRIVATE_ENDPOINT = "private-endpoint"
    NETWORK_PROFILE = "network-profile"
    VIRTUAL_MACHINE = "virtual-machine"
    DCR = "dcr"
    DCR_ASSOCIATION = "dcr-association"
    DCE = "dce"
    RECOVERY_VAULT = "recovery-vault"
    BACKUP_ITEM = "backup-item"
    BACKUP_CONTAINER = "backup-container"
    ASR_FABRIC = "asr-fabric"
    NETAPP_ACCOUNT = "netapp-account"
    NETAPP_POOL = "netapp-pool"
    NETAPP_VOLUME = "netapp-volume"
    NETAPP_BACKUP = "netapp-backup"
    NETAPP_BACKUP_POLICY = "netapp-backup-policy"
    NETAPP_BACKUP_VAULT = "netapp-backup-vault"
    LOCK = "lock"
    GENERIC = "generic"

    @classmethod
    def from_arm_type(cls, arm_type: str) -> "ResourceKind":
        """Map an ARM resource type (e.g. Microsoft.Network/virtualNetworks) to a kind.

        Matching is case-insensitive. Unknown types map to GENERIC.
        """
        return ARM_TYPES.get((arm_type or "").lower(), cls.GENERIC)


# ARM type (lowercase) -> kind
ARM_TYPES: Dict[str, ResourceKind] = {
    "microsoft.network/networksecuritygroups": ResourceKind.NSG,
    "microsoft.network/virtualnetworks": ResourceKind.VNET,
    "microsoft.network/virtualnetworks/subnets": ResourceKind.SUBNET,
    "microsoft.network/networkinterfaces": ResourceKind.NIC,
    "microsoft.network/privateendpoints": ResourceKind.PRIVATE_ENDPOINT,
    "microsoft.network/networkprofiles": ResourceKind.NETWORK_PROFILE,
    "microsoft.compute/virtualmachines": ResourceKind.VIRTUAL_MACHINE,
    "microsoft.insights/datacollectionrules": ResourceKind.DCR,
    "microsoft.insights/datacollectionruleassociations": ResourceKind.DCR_ASSOCIATION,
    "microsoft.insights/datacollectionendpoints": ResourceKind.DCE,
    "microsoft.recoveryservices/vaults": ResourceKind.RECOVERY_VAULT,
    "microsoft.recoveryservices/vaults/backupfabrics/protectioncontainers/protecteditems": (
        ResourceKind.BACKUP_ITEM
    ),
    "microsoft.recoveryservices/vaults/backupfabrics/protectioncontainers": ResourceKind.BACKUP_CONTAINER,
    "microsoft.recoveryservices/vaults/replicationfabrics": ResourceKind.ASR_FABRIC,
    "microsoft.netapp/netappaccounts": ResourceKind.NETAPP_ACCOUNT,
    "microsoft.netapp/netappaccounts/capacitypools": ResourceKind.NETAPP_POOL,
    "microsoft.netapp/netappaccounts/capacitypools/volumes": ResourceKind.NETAPP_VOLUME,
    "microsoft.netapp/netappaccounts/capacitypools/volumes/backups": ResourceKind.NETAPP_BACKUP,
    "microsoft.netapp/netappaccounts/backupvaults/backups": ResourceKind.NETAPP_BACKUP,
    "microsoft.netapp/netappaccounts/backuppolicies": ResourceKind.NETAPP_BACKUP_POLICY,
    "microsoft.netapp/netappaccounts/backupvaults": ResourceKind.NETAPP_BACKUP_VAULT,
    "microsoft.authorization/locks": ResourceKind.LOCK,
}


@dataclass(frozen=True)
class ResourceGroupHandle:
    """A resource group discovered at the start of a run.

    Attributes:
        name: Resource group name
        tags: Group tags (key -> value)
        id: Fully-qualified group ID (optional)
        location: Azure region (optional)
    """

    name: str
    tags: Dict[str, str] = field(default_factory=dict, compare=False, hash=False)
    id: Optional[str] = field(default=None, compare=False)
    location: Optional[str] = field(default=None, compare=False)

    def is_protected(self, tag_key: str = PROTECTION_TAG) -> bool:
        """Check whether the group carries the protection tag set to true.

        Tag keys and values are compared case-insensitively.
        """
        for key, value in (self.tags or {}).items():
            if key.lower() == tag_key.lower() and str(value).strip().lower() == "true":
                return True
        return False


@dataclass(frozen=True)
class ResourceDescriptor:
    """An enumerated cloud resource.

    Descriptors are never mutated. Each stage re-enumerates resources, so a
    descriptor is only valid for the stage it was listed for.

    Attributes:
        id: Fully-qualified resource ID
        kind: Resource kind used for strategy lookup
        group: Name of the resource group the resource was enumerated from
        name: Resource name (last ID segment)
        arm_type: Provider resource type as reported by the platform
        properties: Provider-specific properties (opaque)
        tags: Resource tags
    """

    id: str
    kind: ResourceKind
    group: str
    name: str = ""
    arm_type: str = ""
    properties: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)
    tags: Dict[str, str] = field(default_factory=dict, compare=False, hash=False)

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("Resource descriptor requires an id")
        if not self.name:
            object.__setattr__(self, "name", self.id.rstrip("/").split("/")[-1])

    def prop(self, path: str, default: Any = None) -> Any:
        """Read a dotted path from the resource properties.

        Args:
            path: Dotted path, e.g. "virtualMachine.id"
            default: Value returned when any segment is missing

        Returns:
            The value at path or default
        """
        current: Any = self.properties
        for segment in path.split("."):
            if not isinstance(current, dict) or segment not in current:
                return default
            current = current[segment]
        return current


@dataclass(frozen=True)
class Lock:
    """A management lock at resource or resource-group scope."""

    id: str
    name: str
    level: str = "CanNotDelete"
    scope: str = ""
    notes: Optional[str] = None

    def to_descriptor(self, group: str) -> ResourceDescriptor:
        """Represent the lock as a descriptor so it can be scheduled in a stage."""
        return ResourceDescriptor(
            id=self.id,
            kind=ResourceKind.LOCK,
            group=group,
            name=self.name,
            arm_type="Microsoft.Authorization/locks",
            properties={"level": self.level, "scope": self.scope, "notes": self.notes},
        )
