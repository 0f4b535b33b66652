"""
Database module.

PostgreSQL pooling via asyncpg with connection checks, transactions,
health checks and operation metrics.
"""

from internal_utils.db.models import (
    DatabaseConfigError,
    DatabaseConnectionError,
    DatabaseError,
    DbConfig,
    DbHealthCheckResult,
    IsolationLevel,
    PoolStats,
)
from internal_utils.db.postgres import (
    Db,
    DbClient,
    create_pool,
    create_pool_from_env,
)

__all__ = [
    "Db",
    "DbClient",
    "DbConfig",
    "DbHealthCheckResult",
    "IsolationLevel",
    "PoolStats",
    "create_pool",
    "create_pool_from_env",
    "DatabaseError",
    "DatabaseConfigError",
    "DatabaseConnectionError",
]
