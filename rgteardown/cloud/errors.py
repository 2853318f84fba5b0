"""Cloud error taxonomy.

Every failed control-plane call surfaces as a CloudError carrying an ErrorKind,
which decides whether the call is retried, falls back to another technique,
counts as already removed, or fails.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    """Classification of a control-plane failure."""

    CONFLICT = "conflict"
    THROTTLED = "throttled"
    TIMEOUT = "timeout"
    SHAPE_MISMATCH = "shape-mismatch"
    INCOMPLETE = "incomplete"
    NOT_FOUND = "not-found"
    PERMISSION_DENIED = "permission-denied"
    FATAL = "fatal"


TRANSIENT_KINDS = frozenset({ErrorKind.CONFLICT, ErrorKind.THROTTLED, ErrorKind.TIMEOUT})


class CloudError(Exception):
    """A control-plane call failed.

    Attributes:
        kind: Error classification
        message: Platform error text
        status_code: HTTP status code if known
    """

    def __init__(self, kind: ErrorKind, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.status_code = status_code

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


# Ordered: first match wins
_PATTERNS = [
    (
        ErrorKind.SHAPE_MISMATCH,
        re.compile(
            r"unrecognized arguments|the following arguments are required|is misspelled or not recognized"
            r"|InvalidRequestContent|UnsupportedApiVersion|NoRegisteredProviderFound|InvalidResourceType",
            re.IGNORECASE,
        ),
    ),
    (
        ErrorKind.NOT_FOUND,
        re.compile(r"\bNotFound\b|ResourceNotFound|ResourceGroupNotFound|could not be found|\(404\)", re.IGNORECASE),
    ),
    (ErrorKind.THROTTLED, re.compile(r"TooManyRequests|throttl|\(429\)", re.IGNORECASE)),
    (
        ErrorKind.PERMISSION_DENIED,
        re.compile(r"AuthorizationFailed|Forbidden|LinkedAuthorizationFailed|\(403\)", re.IGNORECASE),
    ),
    (
        ErrorKind.CONFLICT,
        re.compile(
            r"Conflict|AnotherOperationInProgress|InUse|ScopeLocked|RetryableError|\(409\)",
            re.IGNORECASE,
        ),
    ),
    (ErrorKind.TIMEOUT, re.compile(r"timed out|GatewayTimeout|\(504\)|RequestTimeout", re.IGNORECASE)),
]

_STATUS_KINDS = {
    404: ErrorKind.NOT_FOUND,
    409: ErrorKind.CONFLICT,
    412: ErrorKind.CONFLICT,
    429: ErrorKind.THROTTLED,
    403: ErrorKind.PERMISSION_DENIED,
    401: ErrorKind.PERMISSION_DENIED,
    408: ErrorKind.TIMEOUT,
    504: ErrorKind.TIMEOUT,
}


def classify_error(message: str, status_code: Optional[int] = None) -> ErrorKind:
    """Classify a platform error.

    Args:
        message: Error text (CLI stderr or REST error body)
        status_code: HTTP status code if available

    Returns:
        ErrorKind for the failure; FATAL when nothing matches
    """
    if status_code in _STATUS_KINDS:
        return _STATUS_KINDS[status_code]

    for kind, pattern in _PATTERNS:
        if pattern.search(message or ""):
            return kind

    return ErrorKind.FATAL
