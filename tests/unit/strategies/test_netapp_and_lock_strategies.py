"""Tests for NetApp, lock and generic delete strategies."""

from __future__ import annotations

from rgteardown.cloud.errors import ErrorKind
from rgteardown.models.outcome import RemovalStatus
from rgteardown.models.resource import ResourceDescriptor, ResourceKind
from rgteardown.teardown.strategies import (
    GENERIC,
    DeleteStrategy,
    LockStrategy,
    NetAppAccountStrategy,
    NetAppVolumeStrategy,
    strategy_for,
)
from tests.fixtures.cloud import FakeCloudClient, error, make_context

ACCOUNT_TYPE = "Microsoft.NetApp/netAppAccounts"
POOL_TYPE = f"{ACCOUNT_TYPE}/capacityPools"
VOLUME_TYPE = f"{POOL_TYPE}/volumes"


class NetAppFixture:
    """A NetApp account with one pool in rg-files."""

    def __init__(self) -> None:
        self.client = FakeCloudClient()
        self.client.add_group("rg-files")
        self.account = self.client.add("rg-files", ACCOUNT_TYPE, "anf1")
        self.pool = self.client.add("rg-files", POOL_TYPE, "pool1", parent=self.account.id)

    def volume(self, name: str, properties: dict) -> ResourceDescriptor:
        return self.client.add("rg-files", VOLUME_TYPE, name, properties, parent=self.pool.id)


class TestNetAppVolumeStrategy:
    """Test suite for NetAppVolumeStrategy."""

    def test_plain_volume_force_deleted(self) -> None:
        """Test a volume without protection is force-deleted."""
        fixture = NetAppFixture()
        volume = fixture.volume("vol1", {})

        outcome = NetAppVolumeStrategy().remove(volume, make_context(fixture.client, "rg-files"))

        assert outcome.status == RemovalStatus.REMOVED
        assert fixture.client.calls_to("delete_resource") == [(volume.id, True)]

    def test_replication_and_backups_removed_first(self) -> None:
        """Test backups, replication and backup configuration go before the volume."""
        fixture = NetAppFixture()
        volume = fixture.volume(
            "vol1",
            {"dataProtection": {"replication": {"endpointType": "src"}, "backup": {"backupEnabled": True}}},
        )
        backup = fixture.client.add("rg-files", f"{VOLUME_TYPE}/backups", "b1", parent=volume.id)

        outcome = NetAppVolumeStrategy().remove(volume, make_context(fixture.client, "rg-files"))

        assert outcome.status == RemovalStatus.REMOVED
        actions = [args[1] for args in fixture.client.calls_to("invoke_action")]
        assert actions == ["breakReplication", "deleteReplication"]
        assert fixture.client.calls_to("update_resource") == [(volume.id, {"properties.dataProtection.backup": None})]
        assert [args[0] for args in fixture.client.calls_to("delete_resource")] == [backup.id, volume.id]

    def test_failed_break_is_tolerated(self) -> None:
        """Test a rejected replication break does not stop the volume removal."""
        fixture = NetAppFixture()
        volume = fixture.volume("vol1", {"dataProtection": {"replication": {"endpointType": "dst"}}})
        fixture.client.fail_always("invoke_action", f"{volume.id}/breakReplication", error(ErrorKind.FATAL))

        outcome = NetAppVolumeStrategy().remove(volume, make_context(fixture.client, "rg-files"))

        assert outcome.status == RemovalStatus.REMOVED
        assert not fixture.client.exists(volume.id)

    def test_failed_replication_delete_keeps_volume(self) -> None:
        """Test a failed replication delete fails the volume."""
        fixture = NetAppFixture()
        volume = fixture.volume("vol1", {"dataProtection": {"replication": {"endpointType": "dst"}}})
        fixture.client.fail_always("invoke_action", f"{volume.id}/deleteReplication", error(ErrorKind.PERMISSION_DENIED))

        outcome = NetAppVolumeStrategy().remove(volume, make_context(fixture.client, "rg-files"))

        assert outcome.status == RemovalStatus.FAILED
        assert "replication" in outcome.reason
        assert fixture.client.exists(volume.id)


class TestNetAppAccountStrategy:
    """Test suite for NetAppAccountStrategy."""

    def test_unwinds_account_bottom_up(self) -> None:
        """Test leftovers are removed volumes first, account last."""
        fixture = NetAppFixture()
        client = fixture.client
        volume = fixture.volume("vol1", {})
        policy = client.add("rg-files", f"{ACCOUNT_TYPE}/backupPolicies", "daily", parent=fixture.account.id)
        vault = client.add("rg-files", f"{ACCOUNT_TYPE}/backupVaults", "bv1", parent=fixture.account.id)
        vault_backup = client.add("rg-files", f"{ACCOUNT_TYPE}/backupVaults/backups", "b1", parent=vault.id)

        outcome = NetAppAccountStrategy().remove(fixture.account, make_context(client, "rg-files"))

        assert outcome.status == RemovalStatus.REMOVED
        deleted = [args[0] for args in client.calls_to("delete_resource")]
        assert deleted == [volume.id, fixture.pool.id, policy.id, vault_backup.id, vault.id, fixture.account.id]


class TestLockStrategy:
    """Test suite for LockStrategy."""

    def setup_method(self) -> None:
        self.client = FakeCloudClient()
        group = self.client.add_group("rg")
        self.lock = self.client.add_lock(group.id, "nodelete").to_descriptor("rg")

    def test_lock_kept_without_lock_removal(self) -> None:
        """Test locks are reported, not deleted, unless lock removal is enabled."""
        outcome = LockStrategy().remove(self.lock, make_context(self.client, "rg"))

        assert outcome.status == RemovalStatus.SKIPPED
        assert "nodelete" in outcome.reason
        assert self.client.mutating_calls == []

    def test_lock_deleted_with_lock_removal(self) -> None:
        """Test locks are deleted when enabled."""
        outcome = LockStrategy().remove(self.lock, make_context(self.client, "rg", remove_locks=True))

        assert outcome.status == RemovalStatus.REMOVED
        assert outcome.strategy_used == "lock:delete-lock"
        assert self.client.locks == {}


class TestDeleteStrategy:
    """Test suite for the generic delete strategy."""

    def test_unknown_kinds_use_generic(self) -> None:
        """Test kinds without a dedicated strategy get the generic delete."""
        assert strategy_for(ResourceKind.GENERIC) is GENERIC
        assert strategy_for(ResourceKind.NETAPP_POOL).name == "netapp-pool"

    def test_rest_fallback(self) -> None:
        """Test a rejected delete falls back to a REST delete."""
        client = FakeCloudClient()
        client.add_group("rg")
        endpoint = client.add("rg", "Microsoft.Insights/dataCollectionEndpoints", "dce1")
        client.fail_always("delete_resource", endpoint.id, error(ErrorKind.SHAPE_MISMATCH))

        outcome = DeleteStrategy(name="dce").remove(endpoint, make_context(client, "rg"))

        assert outcome.status == RemovalStatus.REMOVED
        assert outcome.strategy_used == "dce:rest-delete"
        assert outcome.attempts_made == 2
        assert not client.exists(endpoint.id)

    def test_already_gone(self) -> None:
        """Test deleting a vanished resource is not-found."""
        client = FakeCloudClient()
        client.add_group("rg")
        endpoint = client.add("rg", "Microsoft.Insights/dataCollectionEndpoints", "dce1")
        del client.resources[endpoint.id.lower()]

        outcome = DeleteStrategy().remove(endpoint, make_context(client, "rg"))

        assert outcome.status == RemovalStatus.NOT_FOUND
