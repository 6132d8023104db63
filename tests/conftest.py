"""
Shared test fixtures and helpers for the cert-identity test suite.

Provides:
  - a certificate factory (cryptography, EC keys) producing PEM/DER client certificates
  - InMemoryDirectory, a fake DirectoryClient backed by a dict of entries
  - a fixed clock for time-dependent components
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, datetime, timedelta

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID
from railway import ErrorCode
from railway.result import Result

from cert_identity.domain.models import DirectoryEntry

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC)

PEOPLE_BASE = "ou=people,dc=example,dc=org"
STAFF_BASE = "ou=staff,dc=example,dc=org"


# ─────────────────────── Certificates ───────────────────────


def make_certificate(
    uid: str | None = "alice",
    cn: str | None = "Alice Example",
    email: str | None = None,
    not_after: datetime | None = None,
    not_before: datetime | None = None,
    serial_number: int | None = None,
    key: ec.EllipticCurvePrivateKey | None = None,
) -> x509.Certificate:
    """
    Build a self-signed client certificate.

    Defaults: valid from NOW - 1 day until NOW + 365 days, subject UID + CN.
    """
    key = key or ec.generate_private_key(ec.SECP256R1())
    attributes = []
    if uid is not None:
        attributes.append(x509.NameAttribute(NameOID.USER_ID, uid))
    if cn is not None:
        attributes.append(x509.NameAttribute(NameOID.COMMON_NAME, cn))
    if email is not None:
        attributes.append(x509.NameAttribute(NameOID.EMAIL_ADDRESS, email))
    name = x509.Name(attributes)

    not_after = not_after or NOW + timedelta(days=365)
    not_before = not_before or min(NOW, not_after) - timedelta(days=1)
    return (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(serial_number or x509.random_serial_number())
        .not_valid_before(not_before)
        .not_valid_after(not_after)
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        .sign(key, hashes.SHA256())
    )


def to_pem(certificate: x509.Certificate) -> bytes:
    return certificate.public_bytes(serialization.Encoding.PEM)


def to_der(certificate: x509.Certificate) -> bytes:
    return certificate.public_bytes(serialization.Encoding.DER)


@pytest.fixture()
def alice_certificate() -> x509.Certificate:
    return make_certificate(uid="alice", cn="Alice Example")


# ─────────────────────── Directory fake ───────────────────────


class InMemoryDirectory:
    """
    Fake DirectoryClient.

    `entries` maps DN → {attribute: [raw values]}. An entry belongs to every
    search base its DN ends with. Calls are recorded for assertions; a
    failure can be injected for search or read.
    """

    def __init__(self, entries: dict[str, dict[str, list[bytes]]] | None = None) -> None:
        self.entries = entries or {}
        self.searches: list[tuple[str, str, str]] = []
        self.reads: list[tuple[str, list[str] | None]] = []
        self.search_failure: Result[list[DirectoryEntry]] | None = None
        self.read_failure: Result[dict[str, list[bytes]]] | None = None

    def add(self, dn: str, **attributes: Sequence[bytes | str]) -> None:
        self.entries[dn] = {
            name.replace("__", ";"): [v.encode() if isinstance(v, str) else v for v in values]
            for name, values in attributes.items()
        }

    def search(self, base: str, attribute: str, value: str) -> Result[list[DirectoryEntry]]:
        self.searches.append((base, attribute, value))
        if self.search_failure is not None:
            return self.search_failure
        wanted = value.encode()
        return Result.success([
            DirectoryEntry(dn)
            for dn, attrs in self.entries.items()
            if dn.lower().endswith(base.lower())
            and any(k.lower() == attribute.lower() and wanted in v for k, v in attrs.items())
        ])

    def read(
        self,
        entry: DirectoryEntry,
        names: Sequence[str] | None = None,
    ) -> Result[dict[str, list[bytes]]]:
        self.reads.append((entry.dn, None if names is None else list(names)))
        if self.read_failure is not None:
            return self.read_failure
        attrs = self.entries.get(entry.dn, {})
        if names is None:
            return Result.success({k: list(v) for k, v in attrs.items()})
        wanted = {name.lower() for name in names}
        return Result.success({k: list(v) for k, v in attrs.items() if k.lower() in wanted})


def directory_outage() -> Result:
    return Result.failure(
        ErrorCode.EXTERNAL_SERVICE_ERROR,
        "Directory search failed",
        ConnectionError("ldap://ldap.example.org unreachable"),
    )


@pytest.fixture()
def directory() -> InMemoryDirectory:
    return InMemoryDirectory()


@pytest.fixture()
def clock():
    """A fixed clock returning NOW."""
    return lambda: NOW
