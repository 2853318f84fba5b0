"""Removal outcome model.

Result of one logical resource removal, aggregated per stage, per group and per
fleet run.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from rgteardown.cloud.errors import ErrorKind


class RemovalStatus(Enum):
    """Terminal status of a resource removal."""

    REMOVED = "removed"
    NOT_FOUND = "not-found"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class RemovalOutcome:
    """Removal outcome entity.

    Validation rules:
        - status=failed: requires reason
        - status=skipped: requires reason
        - attempts_made must be >= 0

    Attributes:
        resource_id: ID of the resource the removal targeted
        status: Terminal status
        attempts_made: Platform calls issued, across retries and fallbacks
        strategy_used: Name of the technique that ended the removal (optional)
        reason: Failure or skip reason (optional)
        error_kind: Error classification of the last failure (optional)
        techniques_tried: Techniques attempted, in order
    """

    resource_id: str
    status: RemovalStatus
    attempts_made: int = 0
    strategy_used: Optional[str] = None
    reason: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    techniques_tried: List[str] = field(default_factory=list)

    @classmethod
    def removed(cls, resource_id: str, attempts: int = 1, strategy: Optional[str] = None) -> "RemovalOutcome":
        return cls(resource_id, RemovalStatus.REMOVED, attempts, strategy)

    @classmethod
    def not_found(cls, resource_id: str, attempts: int = 1, strategy: Optional[str] = None) -> "RemovalOutcome":
        return cls(resource_id, RemovalStatus.NOT_FOUND, attempts, strategy)

    @classmethod
    def skipped(cls, resource_id: str, reason: str, attempts: int = 0) -> "RemovalOutcome":
        return cls(resource_id, RemovalStatus.SKIPPED, attempts, reason=reason)

    @classmethod
    def failed(
        cls,
        resource_id: str,
        reason: str,
        attempts: int = 0,
        strategy: Optional[str] = None,
        error_kind: Optional[ErrorKind] = None,
    ) -> "RemovalOutcome":
        return cls(resource_id, RemovalStatus.FAILED, attempts, strategy, reason, error_kind)

    @property
    def succeeded(self) -> bool:
        """True for every status except FAILED."""
        return self.status != RemovalStatus.FAILED

    def validate(self) -> bool:
        """Validate outcome invariants.

        Returns:
            True if validation passes

        Raises:
            ValueError: If any validation rule fails
        """
        if self.status in (RemovalStatus.FAILED, RemovalStatus.SKIPPED) and not self.reason:
            raise ValueError(f"{self.status.value} status requires a reason")

        if self.attempts_made < 0:
            raise ValueError("attempts_made cannot be negative")

        return True

    def to_dict(self) -> dict:
        return {
            "resource_id": self.resource_id,
            "status": self.status.value,
            "attempts_made": self.attempts_made,
            "strategy_used": self.strategy_used,
            "reason": self.reason,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "techniques_tried": list(self.techniques_tried),
        }


class StageStatus(Enum):
    """Aggregate status of one executed stage."""

    SUCCESSFUL = "successful"
    DEGRADED = "degraded"


@dataclass
class StageResult:
    """Outcomes of one executed stage.

    Attributes:
        name: Stage name from the stage table
        index: Position of the stage in the plan
        outcomes: One outcome per task
    """

    name: str
    index: int
    outcomes: List[RemovalOutcome] = field(default_factory=list)

    @property
    def status(self) -> StageStatus:
        if any(o.status == RemovalStatus.FAILED for o in self.outcomes):
            return StageStatus.DEGRADED
        return StageStatus.SUCCESSFUL

    @property
    def failed(self) -> List[RemovalOutcome]:
        return [o for o in self.outcomes if o.status == RemovalStatus.FAILED]

    def count(self, status: RemovalStatus) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "index": self.index,
            "status": self.status.value,
            "outcomes": [o.to_dict() for o in self.outcomes],
        }
