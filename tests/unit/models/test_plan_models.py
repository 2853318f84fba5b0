"""Tests for teardown plan models."""

from __future__ import annotations

from rgteardown.models.plan import RemovalTask, Stage, StageFamily, TeardownPlan
from rgteardown.models.resource import ResourceDescriptor, ResourceGroupHandle, ResourceKind
from rgteardown.teardown.strategies import DeleteStrategy


def _task(resource_id: str) -> RemovalTask:
    return RemovalTask(ResourceDescriptor(id=resource_id, kind=ResourceKind.GENERIC, group="rg"), DeleteStrategy())


class TestTeardownPlan:
    """Test suite for TeardownPlan."""

    def test_empty_plan(self) -> None:
        """Test plan with only empty stages has no work."""
        plan = TeardownPlan(
            group=ResourceGroupHandle(name="rg"),
            stages=[Stage("network-security-groups", 6, StageFamily.NETWORK)],
        )

        assert plan.has_work is False
        assert plan.task_count == 0
        assert plan.stages[0].is_empty is True

    def test_task_count(self) -> None:
        """Test task count spans stages."""
        plan = TeardownPlan(
            group=ResourceGroupHandle(name="rg"),
            stages=[
                Stage("network-interfaces", 7, StageFamily.NETWORK, [_task("/r/nic1"), _task("/r/nic2")]),
                Stage("virtual-networks", 9, StageFamily.NETWORK, [_task("/r/vnet1")]),
            ],
        )

        assert plan.has_work is True
        assert plan.task_count == 3

    def test_to_dict(self) -> None:
        """Test serialization lists stage names, families and resource IDs."""
        plan = TeardownPlan(
            group=ResourceGroupHandle(name="rg"),
            stages=[Stage("virtual-networks", 9, StageFamily.NETWORK, [_task("/r/vnet1")])],
        )

        data = plan.to_dict()

        assert data == {
            "group": "rg",
            "stages": [{"index": 9, "name": "virtual-networks", "family": "network", "resources": ["/r/vnet1"]}],
        }

    def test_task_resource_id(self) -> None:
        """Test task exposes its resource ID."""
        assert _task("/r/x").resource_id == "/r/x"
