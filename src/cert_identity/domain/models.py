"""
Domain models — immutable data structures for certificates, directory entries and flow outcomes.

These are pure value objects with no behavior beyond small conveniences.
All models are frozen dataclasses (immutable) following functional principles.

Outcome types are tagged unions expressed as `A | B` aliases over frozen
dataclasses, so callers dispatch with match/case:

  FilterOutcome  = Continue | Suspend
  ResumeDecision = Resume | Render
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

EXPIRY_WARNING_STAGE = "warning:expire"
"""Stage label reserved for state persisted by the expiry interrupt filter."""


class AuthFailureReason(StrEnum):
    """Terminal, mutually exclusive reasons a certificate resolution can fail."""

    NO_CERTIFICATE = "NO_CERTIFICATE"
    INVALID_CERTIFICATE = "INVALID_CERTIFICATE"
    NO_MATCHING_ENTRY = "NO_MATCHING_ENTRY"
    NO_STORED_CERTIFICATE = "NO_STORED_CERTIFICATE"
    CERTIFICATE_MISMATCH = "CERTIFICATE_MISMATCH"


class ResumeFailureReason(StrEnum):
    """Reasons a warning-page request is rejected as malformed or stale."""

    MISSING_TOKEN = "MISSING_TOKEN"
    NO_SUCH_STATE = "NO_SUCH_STATE"


class CertificateMatch(StrEnum):
    """How a directory-stored certificate is compared with the presented one."""

    PARSED = "parsed"
    """Full equality of every parsed field."""

    FINGERPRINT = "fingerprint"
    """Equality of the SHA-256 digest of the DER encoding."""


@dataclass(frozen=True, slots=True)
class ParsedCertificate:
    """
    Structured view of an X.509 certificate.

    Equality covers every parsed field (subject, issuer, serial, validity,
    signature algorithm, public key and extensions), which is what decides
    whether a directory-stored certificate matches the presented one.
    `fingerprint` is excluded from equality: it is derived from the encoding.
    """

    subject: dict[str, str]
    issuer: dict[str, str]
    serial_number: int
    version: int
    not_before: datetime
    not_after: datetime
    signature_algorithm: str
    public_key: bytes = field(repr=False)
    extensions: tuple[tuple[str, bool, Any], ...] = field(default=(), repr=False)
    fingerprint: str = field(default="", compare=False)


@dataclass(frozen=True, slots=True)
class AttributeMapping:
    """One (certificate subject attribute → directory attribute) pair."""

    certificate_attribute: str
    directory_attribute: str


@dataclass(frozen=True, slots=True)
class DirectoryEntry:
    """Handle to a single directory record, identified by its DN."""

    dn: str


@dataclass(frozen=True, slots=True)
class Identity:
    """
    The resolved identity: the matched entry DN and its (filtered) attributes.

    Attribute values are text; values that are not valid UTF-8 are base64-encoded.
    """

    dn: str
    attributes: dict[str, list[str]] = field(default_factory=dict)


# ─────────────────────── Expiry interrupt outcomes ───────────────────────


@dataclass(frozen=True, slots=True)
class Continue:
    """The filter lets the pipeline proceed without interruption."""


@dataclass(frozen=True, slots=True)
class Suspend:
    """The pipeline is paused; the user must be redirected to `target`."""

    token: str
    target: str


type FilterOutcome = Continue | Suspend


# ─────────────────────── Resume controller decisions ───────────────────────


@dataclass(frozen=True, slots=True)
class Resume:
    """The user acknowledged the warning; continue with the persisted working state."""

    working_state: dict[str, Any]


@dataclass(frozen=True, slots=True)
class Render:
    """Show the expiry warning; `token` is re-attached for the acknowledgement request."""

    days_left: int
    renew_url: str | None
    token: str


type ResumeDecision = Resume | Render
