"""Protection checks for resource groups.

A protected group is never planned and never receives a mutating call.
"""

from __future__ import annotations

import fnmatch
from typing import Optional, Sequence

from ..models.resource import PROTECTION_TAG, ResourceGroupHandle


class ProtectionChecker:
    """Decides whether a resource group is kept.

    A group is protected when it carries the protection tag set to "true"
    (key and value compared case-insensitively), or when its name matches one
    of the configured protected-name patterns.

    Attributes:
        tag_key: Protection tag key
        patterns: Shell-style group name patterns that are always kept
    """

    def __init__(self, tag_key: str = PROTECTION_TAG, patterns: Optional[Sequence[str]] = None) -> None:
        """Initialize protection checker.

        Args:
            tag_key: Protection tag key (default: "keep")
            patterns: Group name patterns to protect (e.g. "prod-*")
        """
        self.tag_key = tag_key
        self.patterns = list(patterns or [])

    def is_protected(self, group: ResourceGroupHandle) -> tuple[bool, Optional[str]]:
        """Check if a group is protected.

        Args:
            group: Resource group to check

        Returns:
            Tuple of (is_protected, reason)
                is_protected: True if the group must be kept
                reason: Human-readable reason, None if not protected
        """
        if group.is_protected(self.tag_key):
            return True, f"tagged {self.tag_key}=true"

        for pattern in self.patterns:
            if fnmatch.fnmatch(group.name.lower(), pattern.lower()):
                return True, f"name matches protected pattern '{pattern}'"

        return False, None
