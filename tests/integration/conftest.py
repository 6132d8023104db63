"""
Integration test fixtures — PostgreSQL testcontainer and schema setup.

Provides a real PostgreSQL instance for each test session via testcontainers.
Creates the auth_state table from the production schema.
Each test gets a clean table via truncation.
"""

from __future__ import annotations

import psycopg
import pytest
from testcontainers.postgres import PostgresContainer

from cert_identity.adapters.state_store import SCHEMA

TRUNCATE_ALL = "TRUNCATE auth_state;"


def _psycopg_url(container: PostgresContainer) -> str:
    return container.get_connection_url().replace("postgresql+psycopg2", "postgresql")


@pytest.fixture(scope="session")
def postgres_container() -> PostgresContainer:
    """Start a PostgreSQL container for the entire test session."""
    with PostgresContainer("postgres:16-alpine") as pg:
        with psycopg.connect(_psycopg_url(pg)) as conn:
            conn.execute(SCHEMA)
            conn.commit()
        yield pg


@pytest.fixture()
def dsn(postgres_container: PostgresContainer) -> str:
    """Return a psycopg-compatible DSN and truncate auth_state before each test."""
    connection_url = _psycopg_url(postgres_container)
    with psycopg.connect(connection_url) as conn:
        conn.execute(TRUNCATE_ALL)
        conn.commit()
    return connection_url
