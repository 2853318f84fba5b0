"""Confirmation policies for destructive steps that need explicit approval."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List

logger = logging.getLogger(__name__)


class CrossGroupDecline(Enum):
    """What a subnet cleanup does when a change to another group's NIC or VM is declined."""

    ABORT_SUBNET = "abort-subnet"
    SKIP_NIC = "skip-nic"


@dataclass(frozen=True)
class ConfirmationRequest:
    """A destructive step awaiting approval.

    Attributes:
        action: Short description of the step (e.g. "delete network security group")
        resource_id: Resource the step acts on
        details: Lines shown before the decision (associations, owners)
        cross_group: The step changes a resource owned by another resource group
    """

    action: str
    resource_id: str
    details: List[str] = field(default_factory=list)
    cross_group: bool = False


class ConfirmationPolicy:
    """Base confirmation policy: approves nothing."""

    def confirm(self, request: ConfirmationRequest) -> bool:
        return False


class AutoApprove(ConfirmationPolicy):
    """Approves every request; cross-group requests only when cross_group is set.

    Attributes:
        cross_group: Also approve steps that change other resource groups
    """

    def __init__(self, cross_group: bool = False) -> None:
        self.cross_group = cross_group

    def confirm(self, request: ConfirmationRequest) -> bool:
        if request.cross_group and not self.cross_group:
            logger.info(f"Declined (cross-group changes not allowed): {request.action} {request.resource_id}")
            return False
        logger.debug(f"Auto-approved: {request.action} {request.resource_id}")
        return True


class AutoDeny(ConfirmationPolicy):
    def confirm(self, request: ConfirmationRequest) -> bool:
        logger.info(f"Declined (no confirmation): {request.action} {request.resource_id}")
        return False


class CallbackConfirmation(ConfirmationPolicy):
    """Delegates each decision to a callback.

    Calls are serialized so concurrent stage workers never interleave prompts.
    """

    def __init__(self, callback: Callable[[ConfirmationRequest], bool]) -> None:
        self.callback = callback
        self._lock = threading.Lock()

    def confirm(self, request: ConfirmationRequest) -> bool:
        with self._lock:
            return bool(self.callback(request))
