"""Tests for cloud error classification."""

from __future__ import annotations

import pytest

from rgteardown.cloud.errors import TRANSIENT_KINDS, CloudError, ErrorKind, classify_error


class TestClassifyError:
    """Test suite for classify_error."""

    @pytest.mark.parametrize(
        "message,expected",
        [
            ("(ResourceNotFound) The Resource 'x' under resource group 'rg' was not found.", ErrorKind.NOT_FOUND),
            ("(ResourceGroupNotFound) Resource group 'rg' could not be found.", ErrorKind.NOT_FOUND),
            ("(AnotherOperationInProgress) Another operation on this resource is in progress.", ErrorKind.CONFLICT),
            ("(InUseSubnetCannotBeDeleted) Subnet default is in use by nic1.", ErrorKind.CONFLICT),
            ("(ScopeLocked) The scope cannot perform delete operation because following scope(s) are locked", ErrorKind.CONFLICT),
            ("(TooManyRequests) Rate limit exceeded", ErrorKind.THROTTLED),
            ("(AuthorizationFailed) The client does not have authorization", ErrorKind.PERMISSION_DENIED),
            ("az: error: unrecognized arguments: --force", ErrorKind.SHAPE_MISMATCH),
            ("'association' is misspelled or not recognized by the system.", ErrorKind.SHAPE_MISMATCH),
            ("(GatewayTimeout) The gateway did not receive a response", ErrorKind.TIMEOUT),
            ("Something unexpected happened", ErrorKind.FATAL),
        ],
    )
    def test_classify_message(self, message: str, expected: ErrorKind) -> None:
        """Test messages are classified by their platform error code."""
        assert classify_error(message) == expected

    def test_status_code_wins(self) -> None:
        """Test a known HTTP status code decides the kind."""
        assert classify_error("whatever", 404) == ErrorKind.NOT_FOUND
        assert classify_error("whatever", 429) == ErrorKind.THROTTLED
        assert classify_error("whatever", 409) == ErrorKind.CONFLICT

    def test_empty_message_is_fatal(self) -> None:
        """Test empty text is fatal."""
        assert classify_error("") == ErrorKind.FATAL


class TestCloudError:
    """Test suite for CloudError."""

    def test_attributes_and_str(self) -> None:
        """Test error carries kind, message and status code."""
        error = CloudError(ErrorKind.CONFLICT, "in use", 409)

        assert error.kind == ErrorKind.CONFLICT
        assert error.message == "in use"
        assert error.status_code == 409
        assert str(error) == "conflict: in use"

    def test_transient_kinds(self) -> None:
        """Test which kinds are transient."""
        assert TRANSIENT_KINDS == {ErrorKind.CONFLICT, ErrorKind.THROTTLED, ErrorKind.TIMEOUT}
        assert ErrorKind.NOT_FOUND not in TRANSIENT_KINDS
