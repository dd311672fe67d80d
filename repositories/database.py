# ============================================================================
# DATABASE CONNECTION POOL
# ============================================================================
# EPOCH: 1 - WORKFLOW AUTOMATION
# STATUS: Core - Async PostgreSQL connection management
# PURPOSE: One process-wide psycopg pool shared by the workflow repositories
# CREATED: 14 SEP 2026
# ============================================================================
"""
Database Connection Pool

The engine opens one AsyncConnectionPool at startup (main.lifespan) and hands
it to every PostgreSQL repository. DATABASE_URL wins; otherwise the target
is assembled from POSTGRES_HOST / _PORT / _DB / _USER / _PASSWORD / _SSLMODE.
Pool bounds come from DB_POOL_MIN_SIZE and DB_POOL_MAX_SIZE.

Table identifiers for the workflow schema live here so every repository
composes queries against the same WORKFLOW_DB_SCHEMA.
"""

import os
import logging
from typing import Optional

import psycopg
from psycopg import sql
from psycopg.conninfo import conninfo_to_dict, make_conninfo
from psycopg_pool import AsyncConnectionPool

logger = logging.getLogger(__name__)

_pool: Optional[AsyncConnectionPool] = None


def get_connection_string() -> str:
    """Workflow database target from the environment."""
    if url := os.environ.get("DATABASE_URL"):
        return url

    return make_conninfo(
        host=os.environ.get("POSTGRES_HOST", "localhost"),
        port=os.environ.get("POSTGRES_PORT", "5432"),
        dbname=os.environ.get("POSTGRES_DB", "careflow"),
        user=os.environ.get("POSTGRES_USER", "postgres"),
        password=os.environ.get("POSTGRES_PASSWORD") or None,
        sslmode=os.environ.get("POSTGRES_SSLMODE", "prefer"),
    )


def redact_conninfo(conninfo: str) -> str:
    """Connection target without the password, safe for logs and CLI output."""
    try:
        params = conninfo_to_dict(conninfo)
    except psycopg.ProgrammingError:
        return "<invalid connection string>"
    params.pop("password", None)
    return " ".join(f"{key}={value}" for key, value in sorted(params.items()))


async def init_pool(
    min_size: Optional[int] = None,
    max_size: Optional[int] = None,
    connection_string: Optional[str] = None,
) -> AsyncConnectionPool:
    """Open the shared pool; a second call returns the pool already open."""
    global _pool

    if _pool is not None:
        logger.warning("Pool already initialized, returning existing pool")
        return _pool

    min_size = min_size if min_size is not None else int(os.environ.get("DB_POOL_MIN_SIZE", 2))
    max_size = max_size if max_size is not None else int(os.environ.get("DB_POOL_MAX_SIZE", 10))
    conninfo = connection_string or get_connection_string()
    logger.info(f"Opening workflow database pool: {redact_conninfo(conninfo)}")

    _pool = AsyncConnectionPool(
        conninfo=conninfo,
        min_size=min_size,
        max_size=max_size,
        open=False,
    )
    await _pool.open()
    logger.info(f"Workflow database pool open (min={min_size}, max={max_size})")
    return _pool


async def get_pool() -> AsyncConnectionPool:
    if _pool is None:
        return await init_pool()
    return _pool


async def close_pool() -> None:
    global _pool

    if _pool is not None:
        await _pool.close()
        _pool = None
        logger.info("Workflow database pool closed")


# ============================================================================
# WORKFLOW TABLES
# ============================================================================

SCHEMA = os.environ.get("WORKFLOW_DB_SCHEMA", "workflow")

TABLE_DEFINITIONS = sql.Identifier(SCHEMA, "workflow_definitions")
TABLE_INSTANCES = sql.Identifier(SCHEMA, "workflow_instances")
TABLE_EXECUTION_LOGS = sql.Identifier(SCHEMA, "workflow_execution_logs")
TABLE_COMMUNICATIONS = sql.Identifier(SCHEMA, "communication_logs")
