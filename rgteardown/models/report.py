"""Group and fleet report models.

Per-group terminal states and the aggregate report of one fleet run.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from .outcome import RemovalStatus, StageResult, StageStatus

MAX_REASON_LENGTH = 300

_BEARER = re.compile(r"(bearer\s+)[A-Za-z0-9\-._~+/]+=*", re.IGNORECASE)
_SAS_SIGNATURE = re.compile(r"(\bsig=)[^&\s\"']+", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")


def sanitize_reason(text: Optional[str], limit: int = MAX_REASON_LENGTH) -> str:
    """Make platform error text safe and compact for reports.

    Collapses whitespace, redacts bearer tokens and SAS signatures, and
    truncates to limit characters.

    Args:
        text: Raw error text
        limit: Maximum length of the result

    Returns:
        Sanitized text ("" for None)
    """
    if not text:
        return ""
    cleaned = _WHITESPACE.sub(" ", text).strip()
    cleaned = _BEARER.sub(r"\1[REDACTED]", cleaned)
    cleaned = _SAS_SIGNATURE.sub(r"\1[REDACTED]", cleaned)
    if len(cleaned) > limit:
        cleaned = cleaned[: limit - 3].rstrip() + "..."
    return cleaned


class GroupState(Enum):
    """States of the per-group teardown state machine."""

    DISCOVERED = "discovered"
    PROTECTED = "protected"
    PLANNING = "planning"
    EXECUTING = "executing"
    FINAL_DELETING = "final-deleting"
    DELETED = "deleted"
    BLOCKED = "blocked"
    PLANNED = "planned"
    CLEANED = "cleaned"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset(
    {
        GroupState.PROTECTED,
        GroupState.DELETED,
        GroupState.BLOCKED,
        GroupState.PLANNED,
        GroupState.CLEANED,
        GroupState.CANCELLED,
    }
)


@dataclass(frozen=True)
class TeardownEvent:
    """Progress event emitted by a group coordinator.

    Attributes:
        group: Resource group name
        state: State entered (or current state for stage events)
        message: Human-readable detail
        stage: Stage name for stage events (optional)
        stage_index: Position of the stage in the plan, 1-based (optional)
        stage_count: Number of stages in the plan (optional)
    """

    group: str
    state: GroupState
    message: str = ""
    stage: Optional[str] = None
    stage_index: Optional[int] = None
    stage_count: Optional[int] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class GroupOutcome:
    """Terminal result of one group's teardown.

    Attributes:
        group: Resource group name
        state: Terminal state
        reason: Sanitized root cause for Blocked/Cancelled groups (optional)
        stage_results: Results of every executed stage
        transitions: States passed through, in order
        plan: Planned stages (dry run only)
        started_at: When the coordinator started
        completed_at: When the coordinator reached a terminal state
    """

    group: str
    state: GroupState = GroupState.DISCOVERED
    reason: Optional[str] = None
    stage_results: List[StageResult] = field(default_factory=list)
    transitions: List[GroupState] = field(default_factory=lambda: [GroupState.DISCOVERED])
    plan: Optional[Dict[str, Any]] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.started_at is None or self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()

    @property
    def degraded_stages(self) -> List[StageResult]:
        return [r for r in self.stage_results if r.status == StageStatus.DEGRADED]

    def count(self, status: RemovalStatus) -> int:
        return sum(r.count(status) for r in self.stage_results)

    def to_dict(self) -> dict:
        return {
            "group": self.group,
            "state": self.state.value,
            "reason": self.reason,
            "transitions": [s.value for s in self.transitions],
            "stages": [r.to_dict() for r in self.stage_results],
            "plan": self.plan,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
        }


@dataclass
class FleetReport:
    """Aggregate report of one fleet run.

    Attributes:
        run_id: Unique run identifier
        mode: Execution mode ("sequential" or "concurrent")
        dry_run: Whether the run only planned
        groups: One outcome per candidate group
        subscription: Subscription the run targeted (optional)
        started_at: Run start time
        completed_at: Run completion time (optional)
    """

    run_id: str
    mode: str
    dry_run: bool = False
    groups: List[GroupOutcome] = field(default_factory=list)
    subscription: Optional[str] = None
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None

    def _count(self, state: GroupState) -> int:
        return sum(1 for g in self.groups if g.state == state)

    @property
    def protected_count(self) -> int:
        return self._count(GroupState.PROTECTED)

    @property
    def deleted_count(self) -> int:
        return self._count(GroupState.DELETED)

    @property
    def blocked_count(self) -> int:
        return self._count(GroupState.BLOCKED)

    @property
    def planned_count(self) -> int:
        return self._count(GroupState.PLANNED)

    @property
    def cleaned_count(self) -> int:
        return self._count(GroupState.CLEANED)

    @property
    def cancelled_count(self) -> int:
        return self._count(GroupState.CANCELLED)

    @property
    def blocked(self) -> List[GroupOutcome]:
        return [g for g in self.groups if g.state == GroupState.BLOCKED]

    @property
    def succeeded(self) -> bool:
        """True when every group reached a terminal state other than Blocked."""
        return all(g.state.terminal and g.state != GroupState.BLOCKED for g in self.groups)

    def group(self, name: str) -> Optional[GroupOutcome]:
        for outcome in self.groups:
            if outcome.group.lower() == name.lower():
                return outcome
        return None

    def summary(self) -> Dict[str, int]:
        return {
            "protected": self.protected_count,
            "deleted": self.deleted_count,
            "blocked": self.blocked_count,
            "planned": self.planned_count,
            "cleaned": self.cleaned_count,
            "cancelled": self.cancelled_count,
        }

    def to_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "mode": self.mode,
            "dry_run": self.dry_run,
            "subscription": self.subscription,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "summary": self.summary(),
            "groups": [g.to_dict() for g in self.groups],
        }
