"""
Certificate resolver — map a presented client certificate to a directory identity.

Domain layer — pure orchestration over the CertificateParser port and the
DirectoryMatcher. No rendering, no redirects: the caller turns the returned
Result into a completed login or an error view.

Railway:

  presented bytes
    → require bytes                       (NO_CERTIFICATE)
      → parse                             (INVALID_CERTIFICATE)
        → first mapping yielding an entry (NO_MATCHING_ENTRY)
          → [cross-check disabled] → identity attributes
          → stored certificates           (NO_STORED_CERTIFICATE)
            → first structural match      (CERTIFICATE_MISMATCH)
              → identity attributes

Every resolution failure is AUTHENTICATION_ERROR with an AuthFailureReason.
Directory faults travel unchanged (EXTERNAL_SERVICE_ERROR).
"""

from __future__ import annotations

import base64
from collections.abc import Mapping, Sequence

import structlog
from railway import ErrorCode
from railway.result import Result

from cert_identity.domain.models import (
    AttributeMapping,
    AuthFailureReason,
    CertificateMatch,
    DirectoryEntry,
    Identity,
    ParsedCertificate,
)
from cert_identity.domain.ports import CertificateParser
from cert_identity.matcher import DirectoryMatcher, values_for

log = structlog.get_logger()

DEFAULT_ATTRIBUTE_MAPPING = (AttributeMapping("UID", "uid"),)
DEFAULT_STORED_CERTIFICATE_ATTRIBUTES = ("userCertificate;binary",)


def _failure(reason: AuthFailureReason, message: str, **context: object) -> Result[Identity]:
    log.error("resolver.denied", reason=reason.value, **context)
    return Result.failure(ErrorCode.AUTHENTICATION_ERROR, message, reason=reason)


def _decode_value(raw: bytes) -> str:
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        return base64.b64encode(raw).decode("ascii")


def merge_stored_certificates(
    stored: Mapping[str, list[bytes]],
    attribute_names: Sequence[str],
) -> list[bytes]:
    """Concatenate values in configured attribute order, keeping value order within each."""
    merged: list[bytes] = []
    for name in attribute_names:
        merged.extend(values_for(stored, name))
    return merged


class CertificateResolver:
    """
    Resolve presented certificates to identities.

    Args:
        parser: CertificateParser used for both presented and stored certificates.
        matcher: DirectoryMatcher bound to one directory backend.
        attribute_mapping: ordered (certificate attribute → directory attribute) pairs;
            the first pair that yields an entry wins. May be empty.
        stored_certificate_attributes: directory attributes holding certificates
            to cross-check. None or empty disables the cross-check.
        identity_attributes: allow-list of attributes returned in the Identity
            (None returns all).
        certificate_match: how stored and presented certificates are compared.
    """

    def __init__(
        self,
        parser: CertificateParser,
        matcher: DirectoryMatcher,
        attribute_mapping: Sequence[AttributeMapping] = DEFAULT_ATTRIBUTE_MAPPING,
        stored_certificate_attributes: Sequence[str] | None = DEFAULT_STORED_CERTIFICATE_ATTRIBUTES,
        identity_attributes: Sequence[str] | None = None,
        certificate_match: CertificateMatch = CertificateMatch.PARSED,
    ) -> None:
        self._parser = parser
        self._matcher = matcher
        self._attribute_mapping = tuple(attribute_mapping)
        self._stored_certificate_attributes = tuple(stored_certificate_attributes or ())
        self._identity_attributes = (
            None if identity_attributes is None else tuple(identity_attributes)
        )
        self._certificate_match = certificate_match

    @property
    def cross_check_enabled(self) -> bool:
        return bool(self._stored_certificate_attributes)

    def resolve(self, presented: bytes | None) -> Result[Identity]:
        """Resolve the presented certificate bytes to exactly one terminal outcome."""
        if not presented:
            return _failure(AuthFailureReason.NO_CERTIFICATE, "No client certificate presented")

        parsed = self._parser.parse(presented)
        if parsed.is_failure():
            return _failure(
                AuthFailureReason.INVALID_CERTIFICATE,
                "Presented client certificate is not a valid X.509 certificate",
            )

        certificate = parsed.value()
        return self._find_entry(certificate).flat_map(
            lambda entry: self._verify(entry, certificate)
        )

    # ─────────────────────── Entry lookup ───────────────────────

    def _find_entry(self, certificate: ParsedCertificate) -> Result[DirectoryEntry]:
        """Walk the mapping in order and stop at the first pair that yields an entry."""
        tried: list[str] = []
        for mapping in self._attribute_mapping:
            value = certificate.subject.get(mapping.certificate_attribute)
            if value is None:
                continue
            tried.append(f"{mapping.certificate_attribute}->{mapping.directory_attribute}={value}")

            log.info(
                "resolver.lookup",
                certificate_attribute=mapping.certificate_attribute,
                directory_attribute=mapping.directory_attribute,
                value=value,
            )
            lookup = self._matcher.find_entry_by_attribute(mapping.directory_attribute, value)
            if lookup.is_success():
                return lookup
            if lookup.error().code is not ErrorCode.NOT_FOUND:
                return lookup

        return _failure(
            AuthFailureReason.NO_MATCHING_ENTRY,
            "Certificate has no matching directory entry",
            subject=dict(certificate.subject),
            tried=tried,
        )

    # ─────────────────────── Cross-check ───────────────────────

    def _verify(self, entry: DirectoryEntry, certificate: ParsedCertificate) -> Result[Identity]:
        if not self.cross_check_enabled:
            log.info("resolver.matched_without_cross_check", dn=entry.dn)
            return self._identity(entry)

        return self._matcher.get_attributes(entry, self._stored_certificate_attributes).flat_map(
            lambda stored: self._cross_check(
                entry,
                certificate,
                merge_stored_certificates(stored, self._stored_certificate_attributes),
            )
        )

    def _cross_check(
        self,
        entry: DirectoryEntry,
        certificate: ParsedCertificate,
        candidates: list[bytes],
    ) -> Result[Identity]:
        if not candidates:
            return _failure(
                AuthFailureReason.NO_STORED_CERTIFICATE,
                "Directory entry has no stored certificate",
                dn=entry.dn,
            )

        for index, candidate in enumerate(candidates):
            decoded = self._parser.parse(candidate)
            if decoded.is_failure():
                log.error("resolver.stored_certificate_invalid", dn=entry.dn, index=index)
                continue
            if self._same_certificate(decoded.value(), certificate):
                log.info("resolver.certificate_matched", dn=entry.dn, index=index)
                return self._identity(entry)

        return _failure(
            AuthFailureReason.CERTIFICATE_MISMATCH,
            "No stored certificate matches the presented certificate",
            dn=entry.dn,
            candidates=len(candidates),
        )

    def _same_certificate(self, stored: ParsedCertificate, presented: ParsedCertificate) -> bool:
        if self._certificate_match is CertificateMatch.FINGERPRINT:
            return stored.fingerprint == presented.fingerprint
        return stored == presented

    # ─────────────────────── Identity ───────────────────────

    def _identity(self, entry: DirectoryEntry) -> Result[Identity]:
        return self._matcher.get_attributes(entry, self._identity_attributes).map(
            lambda attributes: Identity(dn=entry.dn, attributes=self._filter(attributes))
        )

    def _filter(self, attributes: Mapping[str, list[bytes]]) -> dict[str, list[str]]:
        """Decode values and keep only allow-listed attributes (case-insensitive)."""
        allowed = (
            None
            if self._identity_attributes is None
            else {name.lower() for name in self._identity_attributes}
        )
        return {
            name: [_decode_value(value) for value in values]
            for name, values in attributes.items()
            if allowed is None or name.lower() in allowed
        }
