"""End-to-end test fixtures using real PostgreSQL via testcontainers.

These fixtures provide a real PostgreSQL database with the registry schema
for tests of the SQL-backed agent store and endpoint repository.

Run with: pytest tests/e2e/ -m e2e
Skip with: pytest -m "not e2e"
"""

import os
from collections.abc import AsyncIterator, Iterator

import pytest
from testcontainers.postgres import PostgresContainer

from x402_registry.platform.database.engine import DbEngine
from x402_registry.platform.database.tables import db_metadata


def _is_ci_mode() -> bool:
    """Check if running in CI with pre-provisioned database."""
    return os.environ.get("TEST_DB_HOST") is not None


@pytest.fixture(scope="session")
def postgres_container() -> Iterator[PostgresContainer | None]:
    """Start a PostgreSQL container for the test session.

    In CI mode (when TEST_DB_HOST is set), this yields None since
    the database is already provisioned via docker-compose.
    """
    if _is_ci_mode():
        yield None
    else:
        with PostgresContainer("postgres:14") as container:
            yield container


@pytest.fixture(scope="session")
def postgres_connection_info(
    postgres_container: PostgresContainer | None,
) -> dict[str, str | int]:
    """Connection parameters: host, port, user, password, database."""
    if _is_ci_mode():
        return {
            "host": os.environ["TEST_DB_HOST"],
            "port": int(os.environ.get("TEST_DB_PORT", "5432")),
            "user": os.environ.get("TEST_DB_USER", "postgres"),
            "password": os.environ.get("TEST_DB_PASSWORD", "postgres"),
            "database": os.environ.get("TEST_DB_DATABASE", "x402_registry"),
        }
    assert postgres_container is not None
    return {
        "host": postgres_container.get_container_host_ip(),
        "port": int(postgres_container.get_exposed_port(5432)),
        "user": postgres_container.username,
        "password": postgres_container.password,
        "database": postgres_container.dbname,
    }


@pytest.fixture
async def postgres_db(
    postgres_connection_info: dict[str, str | int],
) -> AsyncIterator[DbEngine]:
    """Connected DbEngine with freshly created registry tables.

    Tables are dropped and recreated for every test.
    """
    db = DbEngine(instance_name="test-postgres", app_name="test-suite", pool_size=5)

    await db.connect(
        host=str(postgres_connection_info["host"]),
        port=int(postgres_connection_info["port"]),
        user=str(postgres_connection_info["user"]),
        password=str(postgres_connection_info["password"]),
        database=str(postgres_connection_info["database"]),
    )
    async with db.get_engine().begin() as conn:
        await conn.run_sync(db_metadata.drop_all)
        await conn.run_sync(db_metadata.create_all)

    yield db

    await db.disconnect()
