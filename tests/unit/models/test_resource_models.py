"""Tests for resource group and resource descriptor models."""

from __future__ import annotations

import pytest

from rgteardown.models.resource import Lock, ResourceDescriptor, ResourceGroupHandle, ResourceKind


class TestResourceKind:
    """Test suite for ARM type to kind mapping."""

    def test_from_arm_type_known_type(self) -> None:
        """Test known ARM types map to their kind."""
        assert ResourceKind.from_arm_type("Microsoft.Network/networkSecurityGroups") == ResourceKind.NSG
        assert ResourceKind.from_arm_type("Microsoft.Insights/dataCollectionRules") == ResourceKind.DCR

    def test_from_arm_type_is_case_insensitive(self) -> None:
        """Test mapping ignores case."""
        assert ResourceKind.from_arm_type("MICROSOFT.NETWORK/VIRTUALNETWORKS/SUBNETS") == ResourceKind.SUBNET

    def test_from_arm_type_unknown_is_generic(self) -> None:
        """Test unknown and empty types map to GENERIC."""
        assert ResourceKind.from_arm_type("Microsoft.Storage/storageAccounts") == ResourceKind.GENERIC
        assert ResourceKind.from_arm_type("") == ResourceKind.GENERIC


class TestResourceGroupHandle:
    """Test suite for ResourceGroupHandle."""

    def test_protected_with_keep_true(self) -> None:
        """Test group tagged keep=true is protected."""
        group = ResourceGroupHandle(name="rg", tags={"keep": "true"})
        assert group.is_protected() is True

    def test_protection_tag_is_case_insensitive(self) -> None:
        """Test tag key and value compare case-insensitively."""
        group = ResourceGroupHandle(name="rg", tags={"Keep": " TRUE "})
        assert group.is_protected() is True

    def test_not_protected_with_other_value(self) -> None:
        """Test keep=false and missing tags do not protect."""
        assert ResourceGroupHandle(name="rg", tags={"keep": "false"}).is_protected() is False
        assert ResourceGroupHandle(name="rg").is_protected() is False

    def test_custom_tag_key(self) -> None:
        """Test protection with a custom tag key."""
        group = ResourceGroupHandle(name="rg", tags={"do-not-delete": "true"})
        assert group.is_protected("do-not-delete") is True
        assert group.is_protected() is False

    def test_equality_by_name(self) -> None:
        """Test handles compare by name only."""
        assert ResourceGroupHandle(name="rg", tags={"a": "1"}) == ResourceGroupHandle(name="rg")


class TestResourceDescriptor:
    """Test suite for ResourceDescriptor."""

    def test_name_defaults_to_last_segment(self) -> None:
        """Test missing name is derived from the ID."""
        descriptor = ResourceDescriptor(
            id="/subscriptions/s/resourceGroups/rg/providers/Microsoft.Network/virtualNetworks/vnet1",
            kind=ResourceKind.VNET,
            group="rg",
        )
        assert descriptor.name == "vnet1"

    def test_requires_id(self) -> None:
        """Test empty ID is rejected."""
        with pytest.raises(ValueError, match="requires an id"):
            ResourceDescriptor(id="", kind=ResourceKind.GENERIC, group="rg")

    def test_prop_reads_dotted_path(self) -> None:
        """Test prop follows nested dictionaries."""
        descriptor = ResourceDescriptor(
            id="/x/nic1",
            kind=ResourceKind.NIC,
            group="rg",
            properties={"virtualMachine": {"id": "/vm1"}},
        )
        assert descriptor.prop("virtualMachine.id") == "/vm1"
        assert descriptor.prop("privateEndpoint.id") is None
        assert descriptor.prop("virtualMachine.id.more", "fallback") == "fallback"

    def test_descriptor_is_immutable(self) -> None:
        """Test descriptors cannot be modified."""
        descriptor = ResourceDescriptor(id="/x/a", kind=ResourceKind.GENERIC, group="rg")
        with pytest.raises(AttributeError):
            descriptor.id = "/x/b"  # type: ignore[misc]


class TestLock:
    """Test suite for Lock."""

    def test_to_descriptor(self) -> None:
        """Test lock converts to a LOCK descriptor carrying its level and scope."""
        lock = Lock(
            id="/subscriptions/s/resourceGroups/rg/providers/Microsoft.Authorization/locks/nodelete",
            name="nodelete",
            level="ReadOnly",
            scope="/subscriptions/s/resourceGroups/rg",
        )

        descriptor = lock.to_descriptor("rg")

        assert descriptor.kind == ResourceKind.LOCK
        assert descriptor.name == "nodelete"
        assert descriptor.prop("level") == "ReadOnly"
        assert descriptor.prop("scope") == "/subscriptions/s/resourceGroups/rg"
