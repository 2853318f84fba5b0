"""Removal strategies for network resources.

Covers network security groups, network interfaces, subnets and virtual
networks. Associations are cleared on the owning resource before the
associated resource is deleted.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from ...cloud.ids import parent_id
from ...models.outcome import RemovalOutcome, RemovalStatus
from ...models.resource import ResourceDescriptor
from ..confirmation import ConfirmationRequest, CrossGroupDecline
from ..retry import Technique
from .base import RemovalContext, RemovalStrategy, StepLog

logger = logging.getLogger(__name__)


def _refs(descriptor: ResourceDescriptor, path: str) -> List[str]:
    """IDs from a list of {"id": ...} references in the resource properties."""
    return [ref["id"] for ref in descriptor.prop(path, []) or [] if isinstance(ref, dict) and ref.get("id")]


class NetworkSecurityGroupStrategy(RemovalStrategy):
    """Disassociate an NSG from its subnets and NICs, then delete it."""

    @property
    def name(self) -> str:
        return "nsg"

    def remove(self, descriptor: ResourceDescriptor, context: RemovalContext) -> RemovalOutcome:
        nsg = self.fetch(context, descriptor.id)
        if nsg is None:
            return self.gone(descriptor.id)

        subnets = _refs(nsg, "subnets")
        nics = _refs(nsg, "networkInterfaces")

        for owner_id in subnets + nics:
            blocked = self.foreign_block(
                context,
                owner_id,
                "remove network security group from a resource in another resource group",
                [f"network security group: {nsg.id}"],
            )
            if blocked:
                return RemovalOutcome.skipped(nsg.id, f"still associated: {blocked}")

        if not context.options.force:
            details = [f"subnet: {s}" for s in subnets] + [f"network interface: {n}" for n in nics]
            request = ConfirmationRequest("delete network security group", nsg.id, details)
            if not context.confirmation.confirm(request):
                return RemovalOutcome.skipped(nsg.id, "deletion not confirmed")

        client = context.client
        log = StepLog(nsg.id, self.name)

        for owner_id in subnets + nics:
            outcome = self.run(
                context,
                owner_id,
                "disassociate",
                lambda owner_id=owner_id: client.update_resource(
                    owner_id, {"properties.networkSecurityGroup": None}
                ),
            )
            log.record(outcome, f"disassociate {owner_id.split('/')[-1]}")

        if log.failed:
            # The platform rejects deleting an NSG that is still associated
            return log.fail()

        logger.debug(f"Cleared {len(subnets) + len(nics)} association(s) of {nsg.name}")
        return log.finish(self.delete(context, nsg.id))


class NetworkInterfaceStrategy(RemovalStrategy):
    """Release a NIC from its owner, then delete it.

    Owners are handled as follows:
        VM in the same group: detach (or delete the VM when the NIC is its last one)
        VM in another group: delete only after a cross-group approval, never in a protected group
        Private endpoint: delete the endpoint, which deletes the NIC
        None: delete after confirmation (unless force)
    """

    @property
    def name(self) -> str:
        return "nic"

    def remove(self, descriptor: ResourceDescriptor, context: RemovalContext) -> RemovalOutcome:
        nic = self.fetch(context, descriptor.id)
        if nic is None:
            return self.gone(descriptor.id)
        return self.release_and_delete(nic, context, confirm_orphan=True)

    def release_and_delete(
        self, nic: ResourceDescriptor, context: RemovalContext, confirm_orphan: bool
    ) -> RemovalOutcome:
        """Release a NIC from its owner and delete it.

        Args:
            nic: NIC with fresh properties
            context: Removal context
            confirm_orphan: Ask before deleting a NIC nothing owns

        Returns:
            RemovalOutcome for the NIC (SKIPPED when a required confirmation was declined)
        """
        blocked = self.foreign_block(context, nic.id, "delete network interface in another resource group")
        if blocked:
            return RemovalOutcome.skipped(nic.id, blocked)

        log = StepLog(nic.id, self.name)
        vm_id = nic.prop("virtualMachine.id")
        endpoint_id = nic.prop("privateEndpoint.id")

        if vm_id:
            skipped = self._release_from_vm(nic, vm_id, context, log)
            if skipped is not None:
                return skipped
        elif endpoint_id:
            blocked = self.foreign_block(
                context,
                endpoint_id,
                "delete private endpoint in another resource group",
                [f"network interface: {nic.id}"],
            )
            if blocked:
                return RemovalOutcome.skipped(nic.id, f"owned by private endpoint: {blocked}")
            return log.finish(self.delete(context, endpoint_id))
        elif confirm_orphan and not context.options.force:
            request = ConfirmationRequest("delete orphaned network interface", nic.id)
            if not context.confirmation.confirm(request):
                return RemovalOutcome.skipped(nic.id, "orphaned network interface deletion not confirmed")

        if log.failed:
            return log.fail()
        return log.finish(self.delete(context, nic.id))

    def _release_from_vm(
        self, nic: ResourceDescriptor, vm_id: str, context: RemovalContext, log: StepLog
    ) -> Optional[RemovalOutcome]:
        client = context.client

        if not context.owns(vm_id):
            blocked = self.foreign_block(
                context,
                vm_id,
                "delete virtual machine in another resource group",
                [f"network interface: {nic.id}"],
            )
            if blocked:
                return RemovalOutcome.skipped(
                    nic.id, f"attached to virtual machine in another resource group: {blocked}"
                )
            log.record(self.run(context, vm_id, "delete-vm", lambda: client.delete_resource(vm_id, force=True)), "vm")
            return None

        vm = self.fetch(context, vm_id)
        if vm is None:
            return None

        attached: List[Dict[str, Any]] = [
            ref for ref in vm.prop("networkProfile.networkInterfaces", []) or [] if isinstance(ref, dict)
        ]
        remaining = [ref for ref in attached if ref.get("id", "").lower() != nic.id.lower()]

        if not remaining:
            outcome = self.run(context, vm_id, "delete-vm", lambda: client.delete_resource(vm_id, force=True))
            log.record(outcome, "vm")
            return None

        if not any((ref.get("properties") or {}).get("primary") for ref in remaining):
            remaining[0] = dict(remaining[0], properties={"primary": True})

        outcome = self.run(
            context,
            vm_id,
            "detach",
            lambda: client.update_resource(vm_id, {"properties.networkProfile.networkInterfaces": remaining}),
        )
        log.record(outcome, "detach")
        return None


class SubnetStrategy(RemovalStrategy):
    """Clear everything bound to a subnet, then remove it.

    Order: bound NICs, delegations, subnet-scoped locks, network profiles,
    then the subnet itself.
    """

    def __init__(self, nics: Optional[NetworkInterfaceStrategy] = None) -> None:
        self.nics = nics or NetworkInterfaceStrategy()

    @property
    def name(self) -> str:
        return "subnet"

    def remove(self, descriptor: ResourceDescriptor, context: RemovalContext) -> RemovalOutcome:
        subnet = self.fetch(context, descriptor.id)
        if subnet is None:
            return self.gone(descriptor.id)

        log = StepLog(subnet.id, self.name)
        client = context.client

        # 1. NICs bound through their IP configurations
        for nic_id in self._bound_nics(subnet):
            nic = self.fetch(context, nic_id)
            if nic is None:
                continue
            outcome = self.nics.release_and_delete(nic, context, confirm_orphan=False)
            if outcome.status == RemovalStatus.SKIPPED:
                if context.options.cross_group_decline == CrossGroupDecline.ABORT_SUBNET:
                    return RemovalOutcome.skipped(subnet.id, f"cleanup aborted: {outcome.reason}", log.attempts)
                logger.info(f"Leaving {nic.name} in {subnet.name}: {outcome.reason}")
                continue
            log.record(outcome, f"nic {nic.name}")

        # 2. Delegations
        if subnet.prop("delegations"):
            outcome = self.run(
                context, subnet.id, "clear-delegations", lambda: client.update_resource(subnet.id, {"properties.delegations": []})
            )
            log.record(outcome, "delegations")

        # 3. Locks scoped to the subnet
        locks = [
            lock
            for lock in self.read(context, lambda: client.list_locks(subnet.id))
            if lock.scope.lower() == subnet.id.lower()
        ]
        if locks and not context.options.remove_locks:
            names = ", ".join(lock.name for lock in locks)
            return RemovalOutcome.skipped(subnet.id, f"subnet is held by lock(s): {names}", log.attempts)
        for lock in locks:
            outcome = self.run(context, lock.id, "delete-lock", lambda lock_id=lock.id: client.delete_lock(lock_id))
            log.record(outcome, f"lock {lock.name}")

        # 4. Network profiles referencing the subnet
        for profile_id in self._network_profiles(subnet):
            log.record(self.delete(context, profile_id), f"network profile {profile_id.split('/')[-1]}")

        if log.failed:
            return log.fail()

        vnet_id = parent_id(subnet.id, "subnets")
        return log.finish(
            self.run(
                context,
                subnet.id,
                "delete",
                lambda: client.delete_resource(subnet.id),
                Technique("rest-delete", lambda: client.rest("DELETE", subnet.id)),
                Technique("vnet-update", lambda: self._drop_from_vnet(context, vnet_id, subnet.name)),
            )
        )

    def _bound_nics(self, subnet: ResourceDescriptor) -> List[str]:
        nic_ids: List[str] = []
        for config_id in _refs(subnet, "ipConfigurations"):
            if "/networkinterfaces/" not in config_id.lower():
                continue
            nic_id = parent_id(config_id, "ipConfigurations")
            if nic_id.lower() not in (n.lower() for n in nic_ids):
                nic_ids.append(nic_id)
        return nic_ids

    def _network_profiles(self, subnet: ResourceDescriptor) -> List[str]:
        profiles: List[str] = []
        for config_id in _refs(subnet, "ipConfigurationProfiles"):
            profile_id = parent_id(config_id, "containerNetworkInterfaceConfigurations")
            if profile_id not in profiles:
                profiles.append(profile_id)
        return profiles

    def _drop_from_vnet(self, context: RemovalContext, vnet_id: str, subnet_name: str) -> None:
        vnet = context.client.get_resource(vnet_id)
        kept = [s for s in vnet.prop("subnets", []) or [] if s.get("name", "").lower() != subnet_name.lower()]
        context.client.update_resource(vnet_id, {"properties.subnets": kept})


class VirtualNetworkStrategy(RemovalStrategy):
    """Clean any subnets still present, then delete the VNet."""

    def __init__(self, subnets: Optional[SubnetStrategy] = None) -> None:
        self.subnets = subnets or SubnetStrategy()

    @property
    def name(self) -> str:
        return "vnet"

    def remove(self, descriptor: ResourceDescriptor, context: RemovalContext) -> RemovalOutcome:
        log = StepLog(descriptor.id, self.name)

        for subnet in self.children(context, descriptor.id, "subnets"):
            outcome = self.subnets.remove(subnet, context)
            if outcome.status == RemovalStatus.SKIPPED:
                return RemovalOutcome.skipped(
                    descriptor.id, f"subnet {subnet.name} retained: {outcome.reason}", log.attempts
                )
            log.record(outcome, f"subnet {subnet.name}")

        if log.failed:
            return log.fail()
        return log.finish(self.delete(context, descriptor.id))
