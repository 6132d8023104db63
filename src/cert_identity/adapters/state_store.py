"""
State store adapters — persist suspended pipeline state under opaque tokens.

Adapter layer — two implementations of the StateStore port:

  InMemoryStateStore  single-process deployments and tests; dict guarded by a lock
  PsycopgStateStore   PostgreSQL via psycopg (v3), JSONB payload, shared by all workers

Both:
  - mint tokens with `secrets.token_urlsafe` (unguessable, URL-safe)
  - scope every payload to (token, stage): loading with another stage is NOT_FOUND
  - expire payloads after a TTL; expired rows are invisible to load() and are
    deleted by purge_expired() (scheduled by cert_identity.scheduler)

Payloads must be JSON-serializable; both stores hand back a fresh copy on load.
"""

from __future__ import annotations

import copy
import json
import secrets
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

import psycopg
import structlog
from psycopg.types.json import Jsonb
from railway import ErrorCode
from railway.result import Result

log = structlog.get_logger()

TOKEN_BYTES = 32

SCHEMA = """
CREATE TABLE IF NOT EXISTS auth_state (
    token       TEXT PRIMARY KEY,
    stage       TEXT NOT NULL,
    payload     JSONB NOT NULL,
    created_at  TIMESTAMP WITH TIME ZONE NOT NULL,
    expires_at  TIMESTAMP WITH TIME ZONE NOT NULL
);
CREATE INDEX IF NOT EXISTS auth_state_expires_at ON auth_state (expires_at);
"""

_INSERT = """
INSERT INTO auth_state (token, stage, payload, created_at, expires_at)
VALUES (%s, %s, %s, %s, %s)
"""

_SELECT = """
SELECT payload FROM auth_state
WHERE token = %s AND stage = %s AND expires_at > %s
"""

_PURGE = "DELETE FROM auth_state WHERE expires_at <= %s"


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _not_found(stage: str) -> Result[dict[str, Any]]:
    return Result.failure(ErrorCode.NOT_FOUND, f"No state saved for this token at stage {stage!r}")


@dataclass(frozen=True, slots=True)
class _StoredState:
    stage: str
    payload: dict[str, Any]
    expires_at: datetime


class InMemoryStateStore:
    """
    Process-local StateStore.

    Payloads are round-tripped through JSON on save, so what is stored is
    exactly what PsycopgStateStore would store.
    """

    def __init__(
        self,
        ttl: timedelta = timedelta(hours=1),
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._ttl = ttl
        self._clock = clock
        self._states: dict[str, _StoredState] = {}
        self._lock = threading.Lock()

    def save(self, stage: str, payload: dict[str, Any]) -> Result[str]:
        return Result.from_computation(
            lambda: self._save(stage, payload),
            ErrorCode.TECHNICAL_ERROR,
            "Failed to save state",
        )

    def load(self, token: str, stage: str) -> Result[dict[str, Any]]:
        with self._lock:
            stored = self._states.get(token)
        if stored is None or stored.stage != stage or stored.expires_at <= self._clock():
            return _not_found(stage)
        return Result.success(copy.deepcopy(stored.payload))

    def purge_expired(self) -> Result[int]:
        now = self._clock()
        with self._lock:
            expired = [token for token, stored in self._states.items() if stored.expires_at <= now]
            for token in expired:
                del self._states[token]
        return Result.success(len(expired))

    def _save(self, stage: str, payload: dict[str, Any]) -> str:
        token = secrets.token_urlsafe(TOKEN_BYTES)
        stored = _StoredState(
            stage=stage,
            payload=json.loads(json.dumps(payload)),
            expires_at=self._clock() + self._ttl,
        )
        with self._lock:
            self._states[token] = stored
        return token


class PsycopgStateStore:
    """
    Persist state to PostgreSQL (table `auth_state`, see SCHEMA).

    Implements the StateStore port.
    All exceptions are caught at this adapter boundary via Result.from_computation().
    """

    def __init__(
        self,
        dsn: str,
        ttl: timedelta = timedelta(hours=1),
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._dsn = dsn
        self._ttl = ttl
        self._clock = clock

    def ensure_schema(self) -> Result[bool]:
        """Create the auth_state table if it does not exist yet."""
        return Result.from_computation(
            self._create_schema,
            ErrorCode.DATABASE_ERROR,
            "Failed to create auth_state schema",
        )

    def save(self, stage: str, payload: dict[str, Any]) -> Result[str]:
        return Result.from_computation(
            lambda: self._insert(stage, payload),
            ErrorCode.DATABASE_ERROR,
            "Failed to save state to database",
        )

    def load(self, token: str, stage: str) -> Result[dict[str, Any]]:
        return Result.from_computation(
            lambda: self._select(token, stage),
            ErrorCode.DATABASE_ERROR,
            "Failed to load state from database",
        ).flat_map(lambda rows: Result.success(rows[0][0]) if rows else _not_found(stage))

    def purge_expired(self) -> Result[int]:
        """Delete expired rows; returns the number of rows removed."""
        return Result.from_computation(
            self._purge,
            ErrorCode.DATABASE_ERROR,
            "Failed to purge expired state",
        )

    def _create_schema(self) -> bool:
        with psycopg.connect(self._dsn) as conn:
            conn.execute(SCHEMA)
        return True

    def _insert(self, stage: str, payload: dict[str, Any]) -> str:
        token = secrets.token_urlsafe(TOKEN_BYTES)
        now = self._clock()
        with psycopg.connect(self._dsn) as conn:
            conn.execute(_INSERT, (token, stage, Jsonb(payload), now, now + self._ttl))
        log.debug("state_store.saved", stage=stage)
        return token

    def _select(self, token: str, stage: str) -> list[tuple[Any, ...]]:
        with psycopg.connect(self._dsn) as conn:
            return conn.execute(_SELECT, (token, stage, self._clock())).fetchall()

    def _purge(self) -> int:
        with psycopg.connect(self._dsn) as conn, conn.transaction():
            removed = conn.execute(_PURGE, (self._clock(),)).rowcount
        log.info("state_store.purged", removed=removed)
        return removed
