"""
Failure description — structured error information for the failure track.

A failure carries two levels of classification:
  - code:   a generic ErrorCode that maps naturally onto HTTP status ranges
  - reason: an optional, caller-defined reason string (usually a StrEnum member)
            that lets a domain distinguish failures sharing the same ErrorCode

    >>> desc = FailureDescription(ErrorCode.AUTHENTICATION_ERROR, "no cert", reason="NO_CERTIFICATE")
    >>> desc.reason
    'NO_CERTIFICATE'
"""

from __future__ import annotations

import traceback
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum, unique


@unique
class ErrorCode(Enum):
    """
    Structured error codes for the failure track.

    Organized by HTTP status range for natural REST API mapping:
    - Client errors (4xx): VALIDATION, AUTHENTICATION, AUTHORIZATION, NOT_FOUND
    - Server errors (5xx): TECHNICAL, DATABASE, CONFIGURATION, EXTERNAL_SERVICE, UNKNOWN
    """

    # --- Client-side errors (4xx HTTP range) ---
    VALIDATION_ERROR = "VALIDATION_ERROR"
    """Malformed request input, missing parameters (→ 400)."""

    AUTHENTICATION_ERROR = "AUTHENTICATION_ERROR"
    """The presented credential does not establish an identity (→ 401)."""

    AUTHORIZATION_ERROR = "AUTHORIZATION_ERROR"
    """Insufficient permissions (→ 403)."""

    NOT_FOUND = "NOT_FOUND"
    """Resource doesn't exist (→ 404)."""

    # --- Server-side errors (5xx HTTP range) ---
    TECHNICAL_ERROR = "TECHNICAL_ERROR"
    """Infrastructure issues (→ 500)."""

    DATABASE_ERROR = "DATABASE_ERROR"
    """Database connectivity or query failures (→ 500)."""

    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    """System misconfiguration (→ 500)."""

    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"
    """Calls to an external service (directory, API) failed (→ 502)."""

    UNKNOWN_ERROR = "UNKNOWN_ERROR"
    """Unexpected/unclassified failures (→ 500)."""


@dataclass(frozen=True, slots=True)
class FailureDescription:
    """
    Immutable failure descriptor: error code, message, optional reason, exception and timestamp.

    `reason` is compared as a plain string, so StrEnum members and their
    values are interchangeable.
    """

    code: ErrorCode
    message: str
    exception: BaseException | None = field(default=None, repr=False)
    reason: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def full_stack_trace(self) -> str:
        """Message followed by the formatted exception chain, if any."""
        if self.exception is None:
            return self.message
        tb = "".join(
            traceback.format_exception(
                type(self.exception), self.exception, self.exception.__traceback__
            )
        )
        return f"{self.message}\n{tb}"

    def __str__(self) -> str:
        if self.reason is None:
            return f"{self.code.value}: {self.message}"
        return f"{self.code.value}[{self.reason}]: {self.message}"
