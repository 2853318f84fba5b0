"""Helpers for fully-qualified Azure resource IDs."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

ASSOCIATION_SEGMENT = "/providers/microsoft.insights/datacollectionruleassociations/"


@dataclass(frozen=True)
class ResourceId:
    """Parsed form of /subscriptions/{sub}/resourceGroups/{rg}/providers/{ns}/{type}/{name}[/...]."""

    subscription: Optional[str]
    resource_group: Optional[str]
    namespace: Optional[str]
    types: tuple
    names: tuple

    @property
    def name(self) -> Optional[str]:
        return self.names[-1] if self.names else None

    @property
    def arm_type(self) -> Optional[str]:
        if not self.namespace:
            return None
        return "/".join((self.namespace,) + self.types)


def parse_resource_id(resource_id: str) -> ResourceId:
    """Parse a resource ID into its components.

    Only the last provider segment is interpreted, so extension resources
    (e.g. a rule association under a VM) yield the extension's type.

    Args:
        resource_id: Fully-qualified resource ID

    Returns:
        ResourceId with missing parts set to None/empty
    """
    parts = [p for p in (resource_id or "").split("/") if p]
    lowered = [p.lower() for p in parts]

    subscription = None
    group = None
    if "subscriptions" in lowered:
        idx = lowered.index("subscriptions")
        subscription = parts[idx + 1] if idx + 1 < len(parts) else None
    if "resourcegroups" in lowered:
        idx = lowered.index("resourcegroups")
        group = parts[idx + 1] if idx + 1 < len(parts) else None

    namespace = None
    types: list = []
    names: list = []
    if "providers" in lowered:
        idx = len(lowered) - 1 - lowered[::-1].index("providers")
        if idx + 1 < len(parts):
            namespace = parts[idx + 1]
            rest = parts[idx + 2 :]
            types = rest[0::2]
            names = rest[1::2]

    return ResourceId(subscription, group, namespace, tuple(types), tuple(names))


def group_of(resource_id: str) -> Optional[str]:
    """Resource group name from a resource ID."""
    return parse_resource_id(resource_id).resource_group


def same_group(resource_id: str, group: str) -> bool:
    owner = group_of(resource_id)
    return owner is not None and owner.lower() == group.lower()


def parent_id(resource_id: str, segment: str) -> str:
    """Cut a resource ID at the first occurrence of a path segment.

    Example: parent_id(".../networkInterfaces/nic1/ipConfigurations/ip1", "ipConfigurations")
    returns ".../networkInterfaces/nic1".
    """
    marker = f"/{segment.lower()}/"
    idx = resource_id.lower().find(marker)
    if idx < 0:
        return resource_id
    return resource_id[:idx]


def association_target(association_id: str) -> Optional[str]:
    """Target resource ID of a data-collection-rule association.

    The association ID is {target}/providers/Microsoft.Insights/dataCollectionRuleAssociations/{name}.
    """
    idx = association_id.lower().find(ASSOCIATION_SEGMENT)
    if idx <= 0:
        return None
    return association_id[:idx]


def group_scope(subscription: Optional[str], group: str) -> str:
    if subscription:
        return f"/subscriptions/{subscription}/resourceGroups/{group}"
    return f"/resourceGroups/{group}"


def lock_scope(lock_id: str) -> str:
    """Scope a management lock applies to (the ID before its locks segment)."""
    idx = lock_id.lower().rfind("/providers/microsoft.authorization/locks/")
    if idx < 0:
        return lock_id
    return lock_id[:idx]
