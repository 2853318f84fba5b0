"""Tests for ProtectionChecker."""

from __future__ import annotations

from rgteardown.models.resource import ResourceGroupHandle
from rgteardown.teardown.safety import ProtectionChecker


class TestProtectionChecker:
    """Test suite for ProtectionChecker."""

    def test_unprotected_group(self) -> None:
        """Test group without tag or matching pattern is not protected."""
        is_protected, reason = ProtectionChecker().is_protected(ResourceGroupHandle(name="rg-app"))

        assert is_protected is False
        assert reason is None

    def test_protected_by_tag(self) -> None:
        """Test keep=true protects a group."""
        group = ResourceGroupHandle(name="rg-app", tags={"keep": "True"})

        is_protected, reason = ProtectionChecker().is_protected(group)

        assert is_protected is True
        assert reason == "tagged keep=true"

    def test_custom_tag_key(self) -> None:
        """Test a configured tag key replaces the default."""
        group = ResourceGroupHandle(name="rg-app", tags={"keep": "true"})
        checker = ProtectionChecker(tag_key="retain")

        assert checker.is_protected(group)[0] is False
        assert checker.is_protected(ResourceGroupHandle(name="rg", tags={"retain": "true"}))[0] is True

    def test_protected_by_name_pattern(self) -> None:
        """Test name patterns protect matching groups case-insensitively."""
        checker = ProtectionChecker(patterns=["prod-*", "NetworkWatcherRG"])

        is_protected, reason = checker.is_protected(ResourceGroupHandle(name="PROD-db"))

        assert is_protected is True
        assert "prod-*" in reason
        assert checker.is_protected(ResourceGroupHandle(name="networkwatcherrg"))[0] is True
        assert checker.is_protected(ResourceGroupHandle(name="dev-db"))[0] is False
