"""Dependency resolution for resource group teardown.

Builds teardown plans from a fixed stage table. The table encodes the
platform's known must-remove-before constraints, so plans are correct even when
live discovery misses a reference.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Dict, FrozenSet, List, Optional, Sequence, Tuple

from ..cloud.client import CloudResourceClient
from ..cloud.errors import CloudError, ErrorKind
from ..models.plan import RemovalTask, Stage, StageFamily, TeardownPlan
from ..models.resource import ResourceDescriptor, ResourceGroupHandle, ResourceKind
from .strategies import RemovalStrategy, VaultSafeguardStrategy, strategy_for

logger = logging.getLogger(__name__)

K = ResourceKind
F = StageFamily

SAFEGUARDS = VaultSafeguardStrategy()


@dataclass(frozen=True)
class StageDefinition:
    """One row of the stage table.

    Attributes:
        name: Stage name
        family: Cleanup family
        kind: Kind of the resources the stage acts on
        root: Kind listed in the group to reach them
        path: Child collections walked from each root (e.g. ("capacityPools", "volumes"))
        removes: False for stages that only prepare resources removed later
    """

    name: str
    family: StageFamily
    kind: ResourceKind
    root: ResourceKind
    path: Tuple[str, ...] = ()
    removes: bool = True

    @property
    def strategy(self) -> RemovalStrategy:
        if self.name == "vault-safeguards":
            return SAFEGUARDS
        return strategy_for(self.kind)


# Stage table; position is the stage index
STAGE_TABLE: Tuple[StageDefinition, ...] = (
    StageDefinition("netapp-volumes", F.NETAPP, K.NETAPP_VOLUME, K.NETAPP_ACCOUNT, ("capacityPools", "volumes")),
    StageDefinition("netapp-capacity-pools", F.NETAPP, K.NETAPP_POOL, K.NETAPP_ACCOUNT, ("capacityPools",)),
    StageDefinition("netapp-backup-policies", F.NETAPP, K.NETAPP_BACKUP_POLICY, K.NETAPP_ACCOUNT, ("backupPolicies",)),
    StageDefinition("netapp-backups", F.NETAPP, K.NETAPP_BACKUP, K.NETAPP_ACCOUNT, ("backupVaults", "backups")),
    StageDefinition("netapp-backup-vaults", F.NETAPP, K.NETAPP_BACKUP_VAULT, K.NETAPP_ACCOUNT, ("backupVaults",)),
    StageDefinition("netapp-accounts", F.NETAPP, K.NETAPP_ACCOUNT, K.NETAPP_ACCOUNT),
    StageDefinition("network-security-groups", F.NETWORK, K.NSG, K.NSG),
    StageDefinition("network-interfaces", F.NETWORK, K.NIC, K.NIC),
    StageDefinition("subnets", F.NETWORK, K.SUBNET, K.VNET, ("subnets",)),
    StageDefinition("virtual-networks", F.NETWORK, K.VNET, K.VNET),
    StageDefinition("data-collection-rules", F.MONITORING, K.DCR, K.DCR),
    StageDefinition("data-collection-endpoints", F.MONITORING, K.DCE, K.DCE),
    StageDefinition("vault-safeguards", F.RECOVERY_VAULT, K.RECOVERY_VAULT, K.RECOVERY_VAULT, removes=False),
    StageDefinition("backup-items", F.RECOVERY_VAULT, K.BACKUP_ITEM, K.RECOVERY_VAULT, ("backupProtectedItems",)),
    StageDefinition(
        "backup-containers", F.RECOVERY_VAULT, K.BACKUP_CONTAINER, K.RECOVERY_VAULT, ("backupProtectionContainers",)
    ),
    StageDefinition("site-recovery", F.RECOVERY_VAULT, K.ASR_FABRIC, K.RECOVERY_VAULT, ("replicationFabrics",)),
    StageDefinition("recovery-vaults", F.RECOVERY_VAULT, K.RECOVERY_VAULT, K.RECOVERY_VAULT),
    StageDefinition("resource-locks", F.LOCKS, K.LOCK, K.LOCK),
)

# (predecessor, successor): the predecessor must be gone before the successor can be removed
DEPENDENCY_EDGES: Tuple[Tuple[ResourceKind, ResourceKind], ...] = (
    (K.NETAPP_VOLUME, K.NETAPP_POOL),
    (K.NETAPP_VOLUME, K.NETAPP_BACKUP),
    (K.NETAPP_POOL, K.NETAPP_ACCOUNT),
    (K.NETAPP_BACKUP_POLICY, K.NETAPP_ACCOUNT),
    (K.NETAPP_BACKUP, K.NETAPP_BACKUP_VAULT),
    (K.NETAPP_BACKUP_VAULT, K.NETAPP_ACCOUNT),
    (K.NSG, K.SUBNET),
    (K.NIC, K.SUBNET),
    (K.NIC, K.VNET),
    (K.SUBNET, K.VNET),
    (K.DCR, K.DCE),
    (K.BACKUP_ITEM, K.BACKUP_CONTAINER),
    (K.BACKUP_ITEM, K.RECOVERY_VAULT),
    (K.BACKUP_CONTAINER, K.RECOVERY_VAULT),
    (K.ASR_FABRIC, K.RECOVERY_VAULT),
)


def removal_stage_index(kind: ResourceKind) -> Optional[int]:
    """Index of the stage that removes resources of a kind (None if no stage does)."""
    for index, definition in enumerate(STAGE_TABLE):
        if definition.kind == kind and definition.removes:
            return index
    return None


def ordering_violations() -> List[Tuple[ResourceKind, ResourceKind]]:
    """Dependency edges the stage table does not satisfy."""
    violations = []
    for predecessor, successor in DEPENDENCY_EDGES:
        before = removal_stage_index(predecessor)
        after = removal_stage_index(successor)
        if before is None or after is None or before >= after:
            violations.append((predecessor, successor))
    return violations


class DependencyResolver:
    """Builds and refreshes teardown plans for resource groups.

    Attributes:
        client: Control-plane client used for enumeration
    """

    def __init__(self, client: CloudResourceClient) -> None:
        self.client = client

    def plan(self, group: ResourceGroupHandle, families: Optional[FrozenSet[StageFamily]] = None) -> TeardownPlan:
        """Build a teardown plan from the current state of a group.

        Every stage of the table (or of the selected families) is present in
        the plan, empty when nothing matched.

        Args:
            group: Group to plan
            families: Restrict the plan to these stage families (optional)

        Returns:
            TeardownPlan with one Stage per selected table row

        Raises:
            CloudError: If the group's resources cannot be listed
        """
        resources = self.client.list_resources(group.name)
        by_kind: Dict[ResourceKind, List[ResourceDescriptor]] = {}
        for resource in resources:
            by_kind.setdefault(resource.kind, []).append(resource)

        plan = TeardownPlan(group=group)
        for index, definition in enumerate(STAGE_TABLE):
            if families and definition.family not in families:
                continue
            if definition.kind == K.LOCK:
                found = self._locks(group)
            else:
                found = self._walk(definition, by_kind.get(definition.root, []))
            plan.stages.append(self._stage(index, definition, found))

        logger.debug(f"Planned {plan.task_count} task(s) across {len(plan.stages)} stage(s) for {group.name}")
        return plan

    def enumerate(self, definition: StageDefinition, group: ResourceGroupHandle) -> List[ResourceDescriptor]:
        """List the resources one stage acts on, fresh from the platform."""
        if definition.kind == K.LOCK:
            return self._locks(group)
        roots = self.client.list_resources(group.name, [definition.root])
        return self._walk(definition, roots)

    def refresh(self, stage: Stage, group: ResourceGroupHandle) -> Stage:
        """Re-enumerate a stage immediately before it runs."""
        definition = STAGE_TABLE[stage.index]
        return self._stage(stage.index, definition, self.enumerate(definition, group))

    def _stage(self, index: int, definition: StageDefinition, resources: Sequence[ResourceDescriptor]) -> Stage:
        strategy = definition.strategy
        return Stage(
            name=definition.name,
            index=index,
            family=definition.family,
            tasks=[RemovalTask(descriptor, strategy) for descriptor in resources],
        )

    def _locks(self, group: ResourceGroupHandle) -> List[ResourceDescriptor]:
        scope = group.id or self.client.group_id(group.name)
        return [lock.to_descriptor(group.name) for lock in self.client.list_locks(scope)]

    def _walk(self, definition: StageDefinition, roots: Sequence[ResourceDescriptor]) -> List[ResourceDescriptor]:
        current = [r for r in roots if r.kind == definition.root]
        for segment in definition.path:
            children: List[ResourceDescriptor] = []
            for parent in current:
                try:
                    children.extend(self.client.list_children(parent.id, segment))
                except CloudError as e:
                    if e.kind != ErrorKind.NOT_FOUND:
                        raise
                    logger.debug(f"{parent.id} disappeared while listing {segment}")
            current = children

        return [r if r.kind == definition.kind else replace(r, kind=definition.kind) for r in current]
