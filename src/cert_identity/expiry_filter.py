"""
Expiry interrupt filter — pause a login to warn about a soon-to-expire certificate.

Domain layer — a pipeline step that either lets the pipeline continue or
suspends it:

  inspect(certificate, working_state)
    → Continue                      passive request, no/invalid certificate, or far from expiry
    → Suspend(token, target)        working state + days_left + renew_url saved under
                                    EXPIRY_WARNING_STAGE; target = warning page + StateId

The filter is advisory: it never fails a login because of the certificate.
Only a State Store failure is returned on the failure track.

Suspension is not cooperative scheduling: the caller returns the redirect and
the request ends. The pipeline is resumed by a new request carrying the token.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import structlog
from railway.result import Result

from cert_identity.domain.models import (
    EXPIRY_WARNING_STAGE,
    Continue,
    FilterOutcome,
    Suspend,
)
from cert_identity.domain.ports import CertificateParser, StateStore

log = structlog.get_logger()

STATE_ID_PARAM = "StateId"
WARNING_PATH = "/expirywarning"
"""Route of the warning page served by the web layer; the default redirect target."""
SECONDS_PER_DAY = 86400


def days_until(not_after: datetime, now: datetime) -> int:
    """Whole days left, truncated toward zero (23 hours left → 0, 25 hours ago → -1)."""
    return int((not_after - now).total_seconds() / SECONDS_PER_DAY)


def with_state_id(url: str, token: str) -> str:
    """Attach the continuation token to `url`, keeping any query it already has."""
    parts = urlsplit(url)
    query = parse_qsl(parts.query, keep_blank_values=True)
    query.append((STATE_ID_PARAM, token))
    return urlunsplit(parts._replace(query=urlencode(query)))


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ExpiryWarningFilter:
    """
    Suspend the pipeline when the presented certificate expires within `warn_days_before` days.

    Args:
        parser: CertificateParser for the presented certificate.
        state_store: where the working state is persisted on suspension.
        warning_url: address of the warning page; the token is attached as StateId.
        warn_days_before: warning threshold in days (default 30).
        renew_url: optional renewal link shown on the warning page.
        clock: returns the current aware datetime (injectable for tests).
    """

    def __init__(
        self,
        parser: CertificateParser,
        state_store: StateStore,
        warning_url: str,
        warn_days_before: int = 30,
        renew_url: str | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._parser = parser
        self._state_store = state_store
        self._warning_url = warning_url
        self._threshold = timedelta(days=warn_days_before)
        self._renew_url = renew_url
        self._clock = clock

    def inspect(
        self,
        certificate: bytes | None,
        working_state: dict[str, Any],
    ) -> Result[FilterOutcome]:
        """Decide whether to continue or suspend; persist state when suspending."""
        if working_state.get("is_passive") is True:
            log.debug("expiry.skipped_passive")
            return Result.success(Continue())

        if not certificate:
            return Result.success(Continue())

        parsed = self._parser.parse(certificate)
        if parsed.is_failure():
            log.error("expiry.invalid_certificate")
            return Result.success(Continue())

        now = self._clock()
        not_after = parsed.value().not_after
        if not_after - now > self._threshold:
            return Result.success(Continue())

        days_left = days_until(not_after, now)
        log.warning("expiry.certificate_expiring", days_left=days_left)
        pending = {**working_state, "days_left": days_left, "renew_url": self._renew_url}
        return self._state_store.save(EXPIRY_WARNING_STAGE, pending).map(self._suspend)

    def _suspend(self, token: str) -> FilterOutcome:
        log.info("expiry.suspended", stage=EXPIRY_WARNING_STAGE)
        return Suspend(token=token, target=with_state_id(self._warning_url, token))
