"""
Expiry warning controller — the inbound side of the interrupt/resume loop.

Reached only through the redirect issued by ExpiryWarningFilter. Loads the
suspended state by token and decides which client-facing shape applies:

  token missing                  → VALIDATION_ERROR  [MISSING_TOKEN]
  no state for (token, stage)    → NOT_FOUND         [NO_SUCH_STATE]
  acknowledged                   → Resume(working_state)
  otherwise                      → Render(days_left, renew_url, token)

The controller never completes the login itself; the caller hands a Resume
to the pipeline's resume entry point.
"""

from __future__ import annotations

from typing import Any

import structlog
from railway import ErrorCode
from railway.result import Result

from cert_identity.domain.models import (
    EXPIRY_WARNING_STAGE,
    Render,
    Resume,
    ResumeDecision,
    ResumeFailureReason,
)
from cert_identity.domain.ports import StateStore

log = structlog.get_logger()


class ExpiryWarningController:
    """Decide between resuming the paused login and rendering the warning."""

    def __init__(self, state_store: StateStore) -> None:
        self._state_store = state_store

    def handle(self, token: str | None, acknowledged: bool) -> Result[ResumeDecision]:
        if token is None:
            log.warning("expiry_warning.missing_token")
            return Result.failure(
                ErrorCode.VALIDATION_ERROR,
                "Missing required StateId query parameter.",
                reason=ResumeFailureReason.MISSING_TOKEN,
            )

        loaded = self._state_store.load(token, EXPIRY_WARNING_STAGE)
        if loaded.is_failure():
            failure = loaded.error()
            if failure.code is not ErrorCode.NOT_FOUND:
                return Result.failure_from(failure)
            log.warning("expiry_warning.no_such_state")
            return Result.failure(
                ErrorCode.NOT_FOUND,
                "No pending state for this StateId",
                reason=ResumeFailureReason.NO_SUCH_STATE,
            )

        return Result.success(self._decide(token, loaded.value(), acknowledged))

    def _decide(self, token: str, state: dict[str, Any], acknowledged: bool) -> ResumeDecision:
        if acknowledged:
            log.info("expiry_warning.acknowledged")
            return Resume(working_state=state)

        log.info("expiry_warning.showing_warning", days_left=state.get("days_left"))
        return Render(
            days_left=int(state.get("days_left", 0)),
            renew_url=state.get("renew_url"),
            token=token,
        )
