"""
Railway-Oriented Programming (ROP) Framework for Python.

Explicit, composable, functional error handling — no exceptions in business logic.

    from railway import Result, ErrorCode

    def require_certificate(raw: bytes | None) -> Result[bytes]:
        if not raw:
            return Result.failure(
                ErrorCode.AUTHENTICATION_ERROR, "No client certificate", reason="NO_CERTIFICATE"
            )
        return Result.success(raw)
"""

from railway.result import Result, Success, Failure
from railway.failure import ErrorCode, FailureDescription
from railway.execution import ExecutionContext, NoOpExecutionContext, LoggingExecutionContext
from railway.assertions import ResultAssertions

__all__ = [
    "Result",
    "Success",
    "Failure",
    "ErrorCode",
    "FailureDescription",
    "ExecutionContext",
    "NoOpExecutionContext",
    "LoggingExecutionContext",
    "ResultAssertions",
]

__version__ = "1.1.0"
