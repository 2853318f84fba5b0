"""Teardown plan model.

A plan is an ordered list of stages. Tasks inside one stage have no
dependencies on each other; stages run strictly in order.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List

from .resource import ResourceDescriptor, ResourceGroupHandle


class StageFamily(Enum):
    """Groups of stages selectable as a cleanup mode."""

    NETAPP = "netapp"
    NETWORK = "network"
    MONITORING = "monitoring"
    RECOVERY_VAULT = "recovery-vault"
    LOCKS = "locks"


@dataclass(frozen=True)
class RemovalTask:
    """A resource paired with the strategy that removes it."""

    descriptor: ResourceDescriptor
    strategy: Any

    @property
    def resource_id(self) -> str:
        return self.descriptor.id


@dataclass
class Stage:
    """One stage of a teardown plan.

    Attributes:
        name: Stage name from the stage table
        index: Position in the fixed stage table
        family: Cleanup family the stage belongs to
        tasks: Independent removal tasks
    """

    name: str
    index: int
    family: StageFamily
    tasks: List[RemovalTask] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.tasks


@dataclass
class TeardownPlan:
    """Ordered teardown plan for one resource group."""

    group: ResourceGroupHandle
    stages: List[Stage] = field(default_factory=list)

    @property
    def has_work(self) -> bool:
        return any(stage.tasks for stage in self.stages)

    @property
    def task_count(self) -> int:
        return sum(len(stage.tasks) for stage in self.stages)

    def to_dict(self) -> dict:
        return {
            "group": self.group.name,
            "stages": [
                {
                    "index": stage.index,
                    "name": stage.name,
                    "family": stage.family.value,
                    "resources": [task.resource_id for task in stage.tasks],
                }
                for stage in self.stages
            ],
        }
