"""
HTTP integration — ErrorCode→HTTP status mapping and error bodies.

    status = HttpStatusMapper.map_error_code(ErrorCode.NOT_FOUND)  # → 404
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

from railway.failure import ErrorCode, FailureDescription


class HttpStatusMapper:
    """Maps ErrorCode enum values to HTTP status codes."""

    _CODE_TO_STATUS: dict[ErrorCode, int] = {
        # Client errors (4xx)
        ErrorCode.VALIDATION_ERROR: 400,
        ErrorCode.AUTHENTICATION_ERROR: 401,
        ErrorCode.AUTHORIZATION_ERROR: 403,
        ErrorCode.NOT_FOUND: 404,
        # Server errors (5xx)
        ErrorCode.TECHNICAL_ERROR: 500,
        ErrorCode.DATABASE_ERROR: 500,
        ErrorCode.CONFIGURATION_ERROR: 500,
        ErrorCode.EXTERNAL_SERVICE_ERROR: 502,
        ErrorCode.UNKNOWN_ERROR: 500,
    }

    @classmethod
    def map_error_code(cls, code: ErrorCode) -> int:
        return cls._CODE_TO_STATUS.get(code, 500)

    @classmethod
    def map_failure(cls, failure: FailureDescription) -> int:
        return cls.map_error_code(failure.code)

    @classmethod
    def is_client_error(cls, failure: FailureDescription) -> bool:
        """True for failures caused by the request rather than by the server."""
        return 400 <= cls.map_failure(failure) < 500


@dataclass(frozen=True, slots=True)
class ErrorResponse:
    """
    Standardized error response body.

        {
            "error_code": "AUTHENTICATION_ERROR",
            "reason": "CERTIFICATE_MISMATCH",
            "message": "No stored certificate matches the presented one",
            "timestamp": "2026-02-17T10:30:00+00:00"
        }
    """

    error_code: str
    reason: str | None
    message: str
    timestamp: str

    @staticmethod
    def from_failure(failure: FailureDescription) -> ErrorResponse:
        return ErrorResponse(
            error_code=failure.code.value,
            reason=None if failure.reason is None else str(failure.reason),
            message=failure.message,
            timestamp=failure.timestamp.isoformat(),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

