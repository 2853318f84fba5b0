"""Run options threaded through the teardown engine."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, Optional

from ..models.plan import StageFamily
from ..models.resource import PROTECTION_TAG
from .confirmation import CrossGroupDecline


class ExecutionMode(Enum):
    """How the fleet processes resource groups."""

    SEQUENTIAL = "sequential"
    CONCURRENT = "concurrent"


@dataclass(frozen=True)
class TeardownOptions:
    """Options for one teardown run.

    Attributes:
        force: Skip per-resource confirmations
        remove_locks: Remove management locks (otherwise they are reported and left)
        dry_run: Compute plans only; issue no mutating calls
        families: Restrict the plan to these stage families (cleanup mode; no final group delete)
        stage_concurrency: Concurrent removal tasks inside one stage
        group_concurrency: Concurrent groups in concurrent mode
        group_timeout: Seconds after which no further stages start for a group (None: unbounded)
        protection_tag: Tag key whose value "true" protects a group
        cross_group_decline: Subnet behaviour when a cross-group VM deletion is declined
        allow_cross_group: With force, also approve changes to resources in other unprotected groups
    """

    force: bool = False
    remove_locks: bool = False
    dry_run: bool = False
    families: Optional[FrozenSet[StageFamily]] = None
    stage_concurrency: int = 8
    group_concurrency: int = 4
    group_timeout: Optional[float] = None
    protection_tag: str = PROTECTION_TAG
    cross_group_decline: CrossGroupDecline = CrossGroupDecline.ABORT_SUBNET
    allow_cross_group: bool = False

    def __post_init__(self) -> None:
        if self.stage_concurrency < 1:
            raise ValueError("stage_concurrency must be at least 1")
        if self.group_concurrency < 1:
            raise ValueError("group_concurrency must be at least 1")

    @property
    def cleanup_only(self) -> bool:
        """True when the run is restricted to stage families and keeps the group."""
        return bool(self.families)
