"""
Directory matcher — locate exactly one entry by attribute, fetch its attributes.

Domain layer — talks to the directory only through the DirectoryClient port.

Search bases are tried in configured order; the first base holding exactly one
matching entry wins. A base with several matches is ambiguous and is skipped
rather than guessed at. "No match anywhere" is a NOT_FOUND failure; any other
failure from the client (connection, bind, protocol) propagates unchanged so
callers can tell a directory fault from an unknown user.

Attribute reads are batched: one read() per call regardless of how many
attribute names are requested.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence

import structlog
from railway import ErrorCode
from railway.result import Result

from cert_identity.domain.models import DirectoryEntry
from cert_identity.domain.ports import DirectoryClient

log = structlog.get_logger()


def values_for(attributes: Mapping[str, list[bytes]], name: str) -> list[bytes]:
    """Case-insensitive attribute lookup; LDAP attribute names are not case-sensitive."""
    wanted = name.lower()
    for key, values in attributes.items():
        if key.lower() == wanted:
            return list(values)
    return []


class DirectoryMatcher:
    """Find entries and read their attributes across an ordered list of search bases."""

    def __init__(self, client: DirectoryClient, search_bases: Sequence[str]) -> None:
        self._client = client
        self._search_bases = list(search_bases)

    def find_entry_by_attribute(self, attribute: str, value: str) -> Result[DirectoryEntry]:
        """
        Return the single entry whose `attribute` equals `value`.

        Returns Result.failure(NOT_FOUND) when no base yields exactly one entry.
        Directory faults are returned as-is (EXTERNAL_SERVICE_ERROR).
        """
        for base in self._search_bases:
            found = self._client.search(base, attribute, value)
            if found.is_failure():
                log.error(
                    "matcher.search_failed",
                    base=base,
                    attribute=attribute,
                    failure=str(found.error()),
                )
                return Result.failure_from(found.error())

            entries = found.value()
            if len(entries) == 1:
                log.info("matcher.entry_found", base=base, attribute=attribute, dn=entries[0].dn)
                return Result.success(entries[0])
            if len(entries) > 1:
                log.warning(
                    "matcher.ambiguous_match",
                    base=base,
                    attribute=attribute,
                    matches=len(entries),
                )

        return Result.failure(
            ErrorCode.NOT_FOUND,
            f"No directory entry with {attribute}={value!r}",
        )

    def get_attributes(
        self,
        entry: DirectoryEntry,
        names: Sequence[str] | None = None,
    ) -> Result[dict[str, list[bytes]]]:
        """Fetch several attributes of an entry in one round trip (None = all)."""
        return self._client.read(entry, None if names is None else list(names))

    def get_attribute_values(self, entry: DirectoryEntry, name: str) -> Result[list[bytes]]:
        """Raw values of a single attribute; empty when the entry does not carry it."""
        return self.get_attributes(entry, [name]).map(lambda attributes: values_for(attributes, name))
