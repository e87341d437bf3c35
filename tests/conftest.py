"""Pytest configuration and shared fixtures for database tests"""

import os
import sys
from pathlib import Path
from typing import AsyncGenerator, Optional

import pytest
from dotenv import load_dotenv
from sqlalchemy.engine import make_url

from easysql.models.config import ConnectionConfig
from easysql.service import DatabaseService
from easysql.storage import ConnectionStore

# Load environment variables
load_dotenv()

# Fix for Windows: asyncpg requires SelectorEventLoop on Windows
if sys.platform == "win32":
    import asyncio

    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())  # type: ignore[attr-defined]


def config_from_url(session_id: str, db_type: str, url: str) -> ConnectionConfig:
    """Build a connection config from a SQLAlchemy-style test URL."""
    parsed = make_url(url)
    return ConnectionConfig(
        id=session_id,
        type=db_type,
        name=session_id,
        host=parsed.host or "localhost",
        port=parsed.port or 0,
        username=parsed.username or "",
        password=parsed.password or "",
        database=parsed.database,
    )


# ==================== Configuration Fixtures ====================


@pytest.fixture(scope="session")
def pg_database_url() -> Optional[str]:
    """PostgreSQL test database URL from environment"""
    return os.getenv("PG_TEST_DATABASE_URL")


@pytest.fixture(scope="session")
def mysql_database_url() -> Optional[str]:
    """MySQL test database URL from environment"""
    return os.getenv("MYSQL_TEST_DATABASE_URL")


@pytest.fixture(scope="session")
def mssql_database_url() -> Optional[str]:
    """SQL Server test database URL from environment"""
    return os.getenv("MSSQL_TEST_DATABASE_URL")


@pytest.fixture
def sqlite_path(tmp_path: Path) -> Path:
    return tmp_path / "easysql-test.db"


@pytest.fixture
def sqlite_config(sqlite_path: Path) -> ConnectionConfig:
    """SQLite configuration pointing at a fresh file"""
    return ConnectionConfig(
        id="sqlite-test",
        type="sqlite",
        name="SQLite test",
        database=str(sqlite_path),
    )


@pytest.fixture
def pg_config(pg_database_url: Optional[str]) -> ConnectionConfig:
    """PostgreSQL connection configuration"""
    if not pg_database_url:
        pytest.skip("PG_TEST_DATABASE_URL not set in environment")
    return config_from_url("pg-test", "postgres", pg_database_url)


@pytest.fixture
def mysql_config(mysql_database_url: Optional[str]) -> ConnectionConfig:
    """MySQL connection configuration"""
    if not mysql_database_url:
        pytest.skip("MYSQL_TEST_DATABASE_URL not set in environment")
    return config_from_url("mysql-test", "mysql", mysql_database_url)


@pytest.fixture
def mssql_config(mssql_database_url: Optional[str]) -> ConnectionConfig:
    """SQL Server connection configuration"""
    if not mssql_database_url:
        pytest.skip("MSSQL_TEST_DATABASE_URL not set in environment")
    return config_from_url("mssql-test", "sqlserver", mssql_database_url)


# ==================== Service Fixtures ====================


@pytest.fixture
def store(tmp_path: Path) -> ConnectionStore:
    """Connection store writing under the test's temp directory"""
    return ConnectionStore(tmp_path / "config" / "connections.json")


@pytest.fixture
async def service(store: ConnectionStore) -> AsyncGenerator[DatabaseService, None]:
    """Database service with proper cleanup"""
    db_service = DatabaseService(store=store)
    try:
        yield db_service
    finally:
        await db_service.close()


@pytest.fixture
async def sqlite_session(
    service: DatabaseService, sqlite_config: ConnectionConfig
) -> str:
    """Connected SQLite session id"""
    result = await service.connect(sqlite_config)
    assert result.success, result.message
    return sqlite_config.id


# ==================== Generic/Parametrized Fixtures ====================


@pytest.fixture(
    params=[
        pytest.param("postgresql", marks=pytest.mark.postgresql),
        pytest.param("mysql", marks=pytest.mark.mysql),
        pytest.param("sqlserver", marks=pytest.mark.sqlserver),
    ]
)
def server_config(
    request,
    pg_database_url: Optional[str],
    mysql_database_url: Optional[str],
    mssql_database_url: Optional[str],
) -> ConnectionConfig:
    """Parametrized configuration for every server engine with a test URL"""
    db_type = request.param

    if db_type == "postgresql":
        if not pg_database_url:
            pytest.skip("PG_TEST_DATABASE_URL not set")
        return config_from_url("pg-test", "postgres", pg_database_url)
    elif db_type == "mysql":
        if not mysql_database_url:
            pytest.skip("MYSQL_TEST_DATABASE_URL not set")
        return config_from_url("mysql-test", "mysql", mysql_database_url)
    elif db_type == "sqlserver":
        if not mssql_database_url:
            pytest.skip("MSSQL_TEST_DATABASE_URL not set")
        return config_from_url("mssql-test", "sqlserver", mssql_database_url)
    else:
        pytest.skip(f"Unknown database type: {db_type}")
