"""
Login pipeline — certificate resolution followed by the expiry interrupt.

Domain layer — PURE ORCHESTRATION. All I/O is injected via the resolver,
the filter and their ports.

  resolve(certificate)                 → Failure(reason) ends the login
    → expiry_filter.inspect(...)       → Suspend: caller redirects, request ends
      → Authenticated(identity)        → caller completes the login

The working state handed to the filter carries the resolved identity, so a
suspended login can be resumed by LoginResumer without touching the directory
again. This module does not schedule pipeline steps in general; it is the one
concrete pipeline the service runs.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import structlog
from railway import ErrorCode
from railway.result import Result

from cert_identity.domain.models import FilterOutcome, Identity, Suspend
from cert_identity.expiry_filter import ExpiryWarningFilter
from cert_identity.resolver import CertificateResolver

log = structlog.get_logger()


@dataclass(frozen=True, slots=True)
class Authenticated:
    """The login completed with this identity."""

    identity: Identity


type LoginOutcome = Authenticated | Suspend


def identity_to_state(identity: Identity) -> dict[str, Any]:
    return {"dn": identity.dn, "attributes": identity.attributes}


def identity_from_state(working_state: dict[str, Any]) -> Result[Identity]:
    saved = working_state.get("identity")
    if not isinstance(saved, dict) or "dn" not in saved:
        return Result.failure(
            ErrorCode.VALIDATION_ERROR,
            "Suspended login state carries no identity",
        )
    return Result.success(Identity(dn=saved["dn"], attributes=dict(saved.get("attributes", {}))))


def _after_filter(identity: Identity, outcome: FilterOutcome) -> LoginOutcome:
    match outcome:
        case Suspend():
            return outcome
        case _:
            return Authenticated(identity)


def run_login(
    certificate: bytes | None,
    resolver: CertificateResolver,
    expiry_filter: ExpiryWarningFilter | None = None,
    passive: bool = False,
) -> Result[LoginOutcome]:
    """
    Execute one login attempt for the presented certificate.

    Returns Result[Authenticated | Suspend] on success, or the resolver's
    failure (AUTHENTICATION_ERROR with a reason, or a directory fault).
    """
    resolved = resolver.resolve(certificate)
    if expiry_filter is None:
        return resolved.map(Authenticated)

    return resolved.flat_map(
        lambda identity: expiry_filter.inspect(
            certificate,
            {"is_passive": passive, "identity": identity_to_state(identity)},
        ).map(lambda outcome: _after_filter(identity, outcome))
    )


class LoginResumer:
    """
    Resume entry point of the login pipeline.

    Implements the PipelineResumer port: the expiry filter is the last step,
    so resuming means completing the login with the identity saved at suspension.
    """

    def resume(self, working_state: dict[str, Any]) -> Result[Identity]:
        return identity_from_state(working_state).peek(
            lambda identity: log.info("pipeline.resumed", dn=identity.dn)
        )
