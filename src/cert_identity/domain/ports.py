"""
Ports — Protocol-based interfaces for infrastructure adapters.

These define WHAT the core needs (contracts) without specifying HOW it's
done (implementation). Following hexagonal architecture:

  Domain ← Ports (protocols) ← Adapters (implementations)

Each port is a Protocol (structural typing) so adapters satisfy the
contract simply by implementing the methods — no inheritance.

Resolution flow:
  CertificateParser → DirectoryClient (via DirectoryMatcher) → Identity
Interrupt/resume flow:
  StateStore.save → redirect → StateStore.load → PipelineResumer.resume
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Protocol, runtime_checkable

from railway.result import Result

from cert_identity.domain.models import DirectoryEntry, Identity, ParsedCertificate


@runtime_checkable
class CertificateParser(Protocol):
    """
    Port: decode certificate bytes (PEM or DER) into a ParsedCertificate.

    Bytes that are present but not a well-formed certificate yield a failure
    with reason INVALID_CERTIFICATE. Absence of bytes is the caller's concern.
    """

    def parse(self, raw: bytes) -> Result[ParsedCertificate]: ...


@runtime_checkable
class DirectoryClient(Protocol):
    """
    Port: synchronous access to one directory backend.

    search() returns every entry under `base` whose `attribute` equals `value`
    (the caller decides what zero or several entries mean). read() fetches the
    named attributes of an entry in a single round trip; `names=None` means
    all user attributes. Attribute values are raw bytes so binary attributes
    (stored certificates) survive untouched.

    Communication faults are failures with EXTERNAL_SERVICE_ERROR — never an
    empty result.
    """

    def search(self, base: str, attribute: str, value: str) -> Result[list[DirectoryEntry]]: ...

    def read(
        self,
        entry: DirectoryEntry,
        names: Sequence[str] | None = None,
    ) -> Result[dict[str, list[bytes]]]: ...


@runtime_checkable
class StateStore(Protocol):
    """
    Port: durable storage for suspended pipeline state.

    save() returns a fresh, unguessable token. load() returns the payload saved
    under exactly (token, stage); anything else (unknown token, other stage,
    expired) is a NOT_FOUND failure. Expiry and garbage collection belong to
    the store.
    """

    def save(self, stage: str, payload: dict[str, Any]) -> Result[str]: ...

    def load(self, token: str, stage: str) -> Result[dict[str, Any]]: ...


@runtime_checkable
class PipelineResumer(Protocol):
    """
    Port: the outer pipeline's resume entry point.

    Continues a suspended authentication exactly where it paused, using the
    persisted working state as-is.
    """

    def resume(self, working_state: dict[str, Any]) -> Result[Identity]: ...
