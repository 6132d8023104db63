"""
LDAP directory adapter — entry search and batched attribute reads via ldap3.

Adapter layer — implements the DirectoryClient port using ldap3 for sync
LDAP access. One connection is opened, bound and unbound per operation;
pooling across servers (failover in listed order) is handled by ldap3's
ServerPool, which makes a single pass per operation and raises when no
server answers.

  search(base, attribute, value)
    → SUBTREE search, filter (attribute=escaped value), no attributes requested
    → [DirectoryEntry(dn), ...]
  read(entry, names)
    → BASE search on entry.dn requesting all `names` at once
    → {attribute: [raw bytes, ...]}

Values come from ldap3's raw_attributes, so binary attributes such as
userCertificate;binary are returned byte-for-byte.

A base DN that does not exist is treated as "no entries" in that base; every
other LDAP error is captured as EXTERNAL_SERVICE_ERROR.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import structlog
from ldap3 import (
    ALL_ATTRIBUTES,
    AUTO_BIND_NO_TLS,
    AUTO_BIND_TLS_BEFORE_BIND,
    BASE,
    FIRST,
    NO_ATTRIBUTES,
    NONE,
    SUBTREE,
    Connection,
    Server,
    ServerPool,
)
from ldap3.core.exceptions import LDAPNoSuchObjectResult
from ldap3.utils.conv import escape_filter_chars
from railway import ErrorCode
from railway.result import Result

from cert_identity.domain.models import DirectoryEntry

log = structlog.get_logger()

_ENTRY = "searchResEntry"

# Passes over the server pool per operation before giving up.
POOL_CYCLES = 1
# An unreachable server is skipped for this long, then tried again.
OFFLINE_SERVER_SECONDS = 60


class Ldap3DirectoryClient:
    """
    Query an LDAP directory with ldap3.

    Implements the DirectoryClient port.
    All exceptions are caught at this adapter boundary via Result.from_computation().
    """

    def __init__(
        self,
        urls: Sequence[str],
        bind_dn: str | None = None,
        bind_password: str | None = None,
        start_tls: bool = False,
        timeout: int = 10,
    ) -> None:
        self._pool = ServerPool(
            [Server(url, get_info=NONE, connect_timeout=timeout) for url in urls],
            pool_strategy=FIRST,
            active=POOL_CYCLES,
            exhaust=OFFLINE_SERVER_SECONDS,
        )
        self._bind_dn = bind_dn
        self._bind_password = bind_password
        self._auto_bind = AUTO_BIND_TLS_BEFORE_BIND if start_tls else AUTO_BIND_NO_TLS
        self._timeout = timeout

    def search(self, base: str, attribute: str, value: str) -> Result[list[DirectoryEntry]]:
        return Result.from_computation(
            lambda: self._search(base, attribute, value),
            ErrorCode.EXTERNAL_SERVICE_ERROR,
            f"Directory search failed under {base}",
        )

    def read(
        self,
        entry: DirectoryEntry,
        names: Sequence[str] | None = None,
    ) -> Result[dict[str, list[bytes]]]:
        return Result.from_computation(
            lambda: self._read(entry, names),
            ErrorCode.EXTERNAL_SERVICE_ERROR,
            f"Directory read failed for {entry.dn}",
        )

    def _connect(self) -> Connection:
        """Open and bind a read-only connection (anonymous when no bind DN is configured)."""
        return Connection(
            self._pool,
            user=self._bind_dn,
            password=self._bind_password,
            auto_bind=self._auto_bind,
            read_only=True,
            check_names=False,
            raise_exceptions=True,
            receive_timeout=self._timeout,
        )

    def _search(self, base: str, attribute: str, value: str) -> list[DirectoryEntry]:
        search_filter = f"({attribute}={escape_filter_chars(value)})"
        with self._connect() as conn:
            try:
                conn.search(base, search_filter, search_scope=SUBTREE, attributes=NO_ATTRIBUTES)
            except LDAPNoSuchObjectResult:
                log.warning("ldap.missing_search_base", base=base)
                return []
            entries = [
                DirectoryEntry(dn=item["dn"])
                for item in conn.response
                if item.get("type") == _ENTRY
            ]
        log.debug("ldap.search", base=base, filter=search_filter, entries=len(entries))
        return entries

    def _read(self, entry: DirectoryEntry, names: Sequence[str] | None) -> dict[str, list[bytes]]:
        attributes: Any = ALL_ATTRIBUTES if names is None else list(names)
        with self._connect() as conn:
            conn.search(
                entry.dn,
                "(objectClass=*)",
                search_scope=BASE,
                attributes=attributes,
            )
            for item in conn.response:
                if item.get("type") == _ENTRY:
                    return {
                        name: [bytes(value) for value in values]
                        for name, values in item["raw_attributes"].items()
                    }
        return {}
