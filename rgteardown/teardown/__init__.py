"""Resource group teardown engine.

This module tears down Azure resource groups in a dependency-safe order,
retrying transient platform conflicts and reporting per group.

Classes:
    FleetOrchestrator: Runs teardowns across many groups
    GroupTeardownCoordinator: Drives one group through its state machine
    DependencyResolver: Fixed stage table and plan construction
    StageExecutor: Bounded-parallel execution of one stage
    RetryFallbackController: Retries and fallback techniques for one removal
    ProtectionChecker: Keep-vs-delete decision
    AuditStorage: Audit log storage and retrieval
"""

from __future__ import annotations

__all__ = [
    "FleetOrchestrator",
    "GroupTeardownCoordinator",
    "DependencyResolver",
    "StageExecutor",
    "RetryFallbackController",
    "ProtectionChecker",
    "AuditStorage",
]
