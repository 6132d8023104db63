"""
X.509 parser adapter — PEM/DER decoding + structured field extraction.

Adapter layer — implements the CertificateParser port using:
  - asn1crypto: PEM armor detection/unarmoring and raw SubjectPublicKeyInfo access
  - cryptography (PyCA): X.509 decoding and typed field extraction

Pipeline:
  raw bytes (PEM or DER)
    → asn1crypto: pem.detect() / pem.unarmor() → DER
    → cryptography: x509.load_der_x509_certificate()
    → ParsedCertificate (domain model)

Subject and issuer names are flattened to {short name: value}, using the
OpenSSL short names (CN, UID, emailAddress, ...) so attribute mappings read
the same way administrators write them. Unknown attribute types fall back to
their dotted OID. When an attribute type repeats, the first value wins.
"""

from __future__ import annotations

import structlog
from asn1crypto import pem
from asn1crypto import x509 as asn1_x509
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.x509.oid import NameOID
from railway import ErrorCode
from railway.result import Result

from cert_identity.domain.models import AuthFailureReason, ParsedCertificate

log = structlog.get_logger()

_SHORT_NAMES: dict[x509.ObjectIdentifier, str] = {
    NameOID.COMMON_NAME: "CN",
    NameOID.USER_ID: "UID",
    NameOID.EMAIL_ADDRESS: "emailAddress",
    NameOID.SERIAL_NUMBER: "serialNumber",
    NameOID.GIVEN_NAME: "GN",
    NameOID.SURNAME: "SN",
    NameOID.TITLE: "title",
    NameOID.ORGANIZATION_NAME: "O",
    NameOID.ORGANIZATIONAL_UNIT_NAME: "OU",
    NameOID.COUNTRY_NAME: "C",
    NameOID.STATE_OR_PROVINCE_NAME: "ST",
    NameOID.LOCALITY_NAME: "L",
    NameOID.STREET_ADDRESS: "street",
    NameOID.DOMAIN_COMPONENT: "DC",
}


def _name_to_mapping(name: x509.Name) -> dict[str, str]:
    """Flatten an X.509 Name into {short attribute name: first value}."""
    mapping: dict[str, str] = {}
    for attribute in name:
        key = _SHORT_NAMES.get(attribute.oid, attribute.oid.dotted_string)
        value = attribute.value
        mapping.setdefault(key, value if isinstance(value, str) else value.hex())
    return mapping


def _to_der(raw: bytes) -> bytes:
    """Strip PEM armor if present; DER input is returned unchanged."""
    stripped = raw.strip()
    if pem.detect(stripped):
        _, _, der_bytes = pem.unarmor(stripped)
        return der_bytes
    return raw


def _subject_public_key_info(der_bytes: bytes) -> bytes:
    """Raw SubjectPublicKeyInfo, independent of whether the key algorithm is supported."""
    certificate = asn1_x509.Certificate.load(der_bytes)
    return certificate["tbs_certificate"]["subject_public_key_info"].dump()


def _der_to_parsed_certificate(der_bytes: bytes) -> ParsedCertificate:
    """
    Decode DER bytes into a ParsedCertificate.

    May raise (malformed DER, unsupported encodings) — callers wrap with
    Result.from_computation.
    """
    cert = x509.load_der_x509_certificate(der_bytes)
    return ParsedCertificate(
        subject=_name_to_mapping(cert.subject),
        issuer=_name_to_mapping(cert.issuer),
        serial_number=cert.serial_number,
        version=cert.version.value,
        not_before=cert.not_valid_before_utc,
        not_after=cert.not_valid_after_utc,
        signature_algorithm=cert.signature_algorithm_oid.dotted_string,
        public_key=_subject_public_key_info(der_bytes),
        extensions=tuple(
            (extension.oid.dotted_string, extension.critical, extension.value)
            for extension in cert.extensions
        ),
        fingerprint=cert.fingerprint(hashes.SHA256()).hex(),
    )


class X509CertificateParser:
    """
    Parse PEM or DER certificate bytes into a ParsedCertificate.

    Implements the CertificateParser port.
    All exceptions are caught at this adapter boundary via Result.from_computation().
    """

    def parse(self, raw: bytes) -> Result[ParsedCertificate]:
        """
        Returns Result[ParsedCertificate] on success.
        Returns Result.failure(AUTHENTICATION_ERROR, reason=INVALID_CERTIFICATE)
        when the bytes are not a well-formed certificate.
        """
        return Result.from_computation(
            lambda: _der_to_parsed_certificate(_to_der(raw)),
            ErrorCode.AUTHENTICATION_ERROR,
            "Certificate could not be decoded",
            reason=AuthFailureReason.INVALID_CERTIFICATE,
        ).peek_failure(
            lambda failure: log.debug(
                "parser.invalid_certificate",
                size=len(raw),
                error=str(failure.exception),
            )
        )
