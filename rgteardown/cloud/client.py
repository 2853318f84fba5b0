"""Abstract control-plane capability consumed by the teardown engine."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

from ..models.resource import Lock, ResourceDescriptor, ResourceGroupHandle, ResourceKind
from .ids import group_scope

# Compute types force-deleted by the escalated group delete
FORCE_DELETION_TYPES = (
    "Microsoft.Compute/virtualMachines",
    "Microsoft.Compute/virtualMachineScaleSets",
)


class CloudResourceClient(ABC):
    """Abstract base class for control-plane access.

    Implementations must:
    1. Raise CloudError (with an ErrorKind) for every failed call
    2. Raise CloudError(NOT_FOUND) when the target does not exist
    3. Handle authentication and token refresh transparently

    Patches passed to update_resource map dotted property paths to values
    (e.g. {"properties.networkSecurityGroup": None}); None removes the path.
    """

    @property
    @abstractmethod
    def subscription(self) -> Optional[str]:
        """Subscription ID the client operates on."""

    @abstractmethod
    def list_resource_groups(self) -> List[ResourceGroupHandle]:
        """List every resource group in the subscription."""

    @abstractmethod
    def list_resources(
        self, group: str, kinds: Optional[Sequence[ResourceKind]] = None
    ) -> List[ResourceDescriptor]:
        """List top-level resources in a group, optionally filtered by kind."""

    @abstractmethod
    def get_resource(self, resource_id: str) -> ResourceDescriptor:
        """Fetch one resource with full properties."""

    @abstractmethod
    def list_children(self, parent_id: str, child_path: str) -> List[ResourceDescriptor]:
        """List child resources under parent_id/child_path (e.g. a VNet's "subnets")."""

    @abstractmethod
    def delete_resource(self, resource_id: str, force: bool = False) -> None:
        """Delete one resource."""

    @abstractmethod
    def update_resource(self, resource_id: str, patch: Dict[str, Any]) -> None:
        """Apply a property patch to one resource."""

    @abstractmethod
    def delete_resource_group(
        self, name: str, force: bool = False, force_deletion_types: Sequence[str] = ()
    ) -> None:
        """Delete a resource group and whatever it still contains."""

    @abstractmethod
    def list_locks(self, scope: str) -> List[Lock]:
        """List management locks at a scope (group scope includes resource-level locks)."""

    @abstractmethod
    def delete_lock(self, lock_id: str) -> None:
        """Delete one management lock."""

    @abstractmethod
    def invoke_action(self, resource_id: str, action: str, body: Optional[Dict[str, Any]] = None) -> Any:
        """POST a provider action on a resource (e.g. a volume's "deleteReplication")."""

    @abstractmethod
    def rest(self, method: str, path: str, body: Optional[Dict[str, Any]] = None) -> Any:
        """Issue a raw management REST call against an ARM path."""

    @abstractmethod
    def list_rule_associations(self, rule_name: str, group: str) -> List[ResourceDescriptor]:
        """List the associations of a data collection rule."""

    @abstractmethod
    def delete_rule_association(self, name: str, target_id: str) -> None:
        """Delete a data collection rule association by name and target resource."""

    def group_id(self, group: str) -> str:
        """Fully-qualified ID of a resource group."""
        return group_scope(self.subscription, group)
