"""
Tests for the database module.

asyncpg is replaced with mocks; no database server is needed.
"""

import os
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

CREATE_POOL = "internal_utils.db.postgres.asyncpg.create_pool"


class TestDbConfig:
    """Tests for DbConfig."""

    def test_defaults(self):
        """Test default pool settings."""
        from internal_utils.db import DbConfig

        config = DbConfig()
        assert config.host == "localhost"
        assert config.port == 5432
        assert config.max_connections == 10
        assert config.min_connections == 1
        assert config.connection_timeout_ms == 30000
        assert config.idle_timeout_ms == 10000
        assert config.ssl is None

    def test_min_above_max_rejected(self):
        """Test that min_connections cannot exceed max_connections."""
        from pydantic import ValidationError
        from internal_utils.db import DbConfig

        with pytest.raises(ValidationError):
            DbConfig(max_connections=2, min_connections=5)

    def test_invalid_port_rejected(self):
        """Test port bounds."""
        from pydantic import ValidationError
        from internal_utils.db import DbConfig

        with pytest.raises(ValidationError):
            DbConfig(port=70000)


class TestCreatePool:
    """Tests for create_pool."""

    @pytest.mark.asyncio
    async def test_connection_string(self, mock_pool, mock_connection):
        """Test pool arguments built from a connection string."""
        from internal_utils.db import DbClient, DbConfig, create_pool

        config = DbConfig(
            connection_string="postgres://app:secret@db:5432/app",
            max_connections=5,
            connection_timeout_ms=2000,
            idle_timeout_ms=0,
            ssl=True,
        )

        with patch(CREATE_POOL, new_callable=AsyncMock, return_value=mock_pool) as mock_create:
            client = await create_pool(config)

        assert isinstance(client, DbClient)
        mock_create.assert_awaited_once_with(
            dsn="postgres://app:secret@db:5432/app",
            min_size=1,
            max_size=5,
            max_inactive_connection_lifetime=0,
            timeout=2,
            ssl=True,
        )
        mock_connection.execute.assert_awaited_once_with("SELECT 1")

    @pytest.mark.asyncio
    async def test_individual_fields(self, mock_pool):
        """Test pool arguments built from host, port and credentials."""
        from internal_utils.db import DbConfig, create_pool

        config = DbConfig(host="db", port=6543, database="app", user="app", password="secret")

        with patch(CREATE_POOL, new_callable=AsyncMock, return_value=mock_pool) as mock_create:
            await create_pool(config)

        kwargs = mock_create.call_args.kwargs
        assert kwargs["host"] == "db"
        assert kwargs["port"] == 6543
        assert kwargs["database"] == "app"
        assert "dsn" not in kwargs
        assert "ssl" not in kwargs

    @pytest.mark.asyncio
    async def test_failed_check_closes_pool(self, mock_pool, mock_connection):
        """Test that a failing connection check closes the pool and raises."""
        from internal_utils.db import DatabaseConnectionError, DbConfig, create_pool

        mock_connection.execute.side_effect = RuntimeError("authentication failed")

        with patch(CREATE_POOL, new_callable=AsyncMock, return_value=mock_pool) as mock_create:
            with pytest.raises(DatabaseConnectionError, match="authentication failed"):
                await create_pool(DbConfig(connection_string="postgres://db/app"))

        mock_pool.close.assert_awaited_once()
        # Not a connection error, so no retry
        assert mock_create.await_count == 1

    @pytest.mark.asyncio
    async def test_connection_errors_are_retried(self, mock_pool):
        """Test that refused connections are retried up to connect_attempts."""
        from internal_utils.db import DbConfig, create_pool

        mock_create = AsyncMock(side_effect=[ConnectionRefusedError("refused"), mock_pool])

        with patch(CREATE_POOL, mock_create):
            client = await create_pool(
                DbConfig(connection_string="postgres://db/app", connect_attempts=2)
            )

        assert client.pool is mock_pool
        assert mock_create.await_count == 2

    @pytest.mark.asyncio
    async def test_retries_exhausted(self):
        """Test that the last connection error is wrapped after the final attempt."""
        from internal_utils.db import DatabaseConnectionError, DbConfig, create_pool

        mock_create = AsyncMock(side_effect=ConnectionRefusedError("refused"))

        with patch(CREATE_POOL, mock_create):
            with pytest.raises(DatabaseConnectionError) as exc_info:
                await create_pool(
                    DbConfig(connection_string="postgres://db/app", connect_attempts=1)
                )

        assert isinstance(exc_info.value.__cause__, ConnectionRefusedError)
        assert str(exc_info.value) == "Failed to connect to database: refused"


class TestCreatePoolFromEnv:
    """Tests for environment-based initialization."""

    @pytest.mark.asyncio
    async def test_missing_database_url(self):
        """Test that a missing DATABASE_URL is a configuration error."""
        from internal_utils.db import DatabaseConfigError, create_pool_from_env

        with pytest.raises(DatabaseConfigError, match="DATABASE_URL"):
            await create_pool_from_env()

    @pytest.mark.asyncio
    async def test_uses_database_url(self, mock_pool):
        """Test that DATABASE_URL and max_connections are applied."""
        from internal_utils.db import Db

        os.environ["DATABASE_URL"] = "postgres://app@db/app"

        with patch(CREATE_POOL, new_callable=AsyncMock, return_value=mock_pool) as mock_create:
            await Db.initialize_from_env(max_connections=3)

        kwargs = mock_create.call_args.kwargs
        assert kwargs["dsn"] == "postgres://app@db/app"
        assert kwargs["max_size"] == 3

    @pytest.mark.asyncio
    async def test_connect_default_pool_size(self, mock_pool):
        """Test that Db.connect uses five connections by default."""
        from internal_utils.db import Db

        with patch(CREATE_POOL, new_callable=AsyncMock, return_value=mock_pool) as mock_create:
            await Db.connect("postgres://app@db/app")

        assert mock_create.call_args.kwargs["max_size"] == 5

    @pytest.mark.asyncio
    async def test_initialize(self, mock_pool):
        """Test Db.initialize with an explicit config."""
        from internal_utils.db import Db, DbConfig

        with patch(CREATE_POOL, new_callable=AsyncMock, return_value=mock_pool):
            client = await Db.initialize(DbConfig(connection_string="postgres://db/app"))

        assert client.pool is mock_pool


class TestDbClient:
    """Tests for DbClient operations."""

    @pytest.mark.asyncio
    async def test_query(self, mock_pool, collect_metric):
        """Test that query returns rows and records operation metrics."""
        from internal_utils.db import DbClient

        client = DbClient(mock_pool, meter_name="test.db.query")

        rows = await client.query("SELECT * FROM users WHERE id = $1", 1)

        assert rows == [{"id": 1}]
        mock_pool.fetch.assert_awaited_once_with("SELECT * FROM users WHERE id = $1", 1)
        (count,) = collect_metric("test.db.query", "db.client.operation.total")
        assert count.value == 1
        assert count.attributes["db.operation.name"] == "query"
        assert count.attributes["db.system"] == "postgresql"

    @pytest.mark.asyncio
    async def test_failed_operation_records_error_type(self, mock_pool, collect_metric):
        """Test that errors propagate unchanged and are tagged on the metric."""
        from internal_utils.db import DbClient

        mock_pool.execute.side_effect = ValueError("syntax error")
        client = DbClient(mock_pool, meter_name="test.db.error")

        with pytest.raises(ValueError, match="syntax error"):
            await client.execute("INSERT INTO")

        (count,) = collect_metric("test.db.error", "db.client.operation.total")
        assert count.attributes["error.type"] == "ValueError"

    @pytest.mark.asyncio
    async def test_fetchrow_and_execute(self, mock_pool):
        """Test single-row fetch and statement execution."""
        from internal_utils.db import DbClient

        client = DbClient(mock_pool, meter_name="test.db.misc")

        assert await client.fetchrow("SELECT 1") == {"id": 1}
        assert await client.execute("INSERT INTO t VALUES ($1)", 5) == "INSERT 0 1"

    @pytest.mark.asyncio
    async def test_transaction_commits(self, mock_pool, mock_connection):
        """Test that the callback runs on one connection inside a transaction."""
        from internal_utils.db import DbClient, IsolationLevel

        client = DbClient(mock_pool, meter_name="test.db.tx")

        async def work(conn):
            await conn.execute("UPDATE accounts SET balance = 0")
            return "ok"

        result = await client.transaction(work, IsolationLevel.SERIALIZABLE)

        assert result == "ok"
        mock_connection.transaction.assert_called_once_with(isolation="serializable")
        transaction = mock_connection.transaction.return_value
        exit_args = transaction.__aexit__.call_args.args
        assert exit_args[0] is None

    @pytest.mark.asyncio
    async def test_transaction_rolls_back(self, mock_pool, mock_connection):
        """Test that a raising callback rolls back and re-raises."""
        from internal_utils.db import DbClient

        client = DbClient(mock_pool, meter_name="test.db.rollback")

        async def work(conn):
            raise LookupError("row missing")

        with pytest.raises(LookupError):
            await client.transaction(work)

        mock_connection.transaction.assert_called_once_with(isolation=None)
        transaction = mock_connection.transaction.return_value
        exit_args = transaction.__aexit__.call_args.args
        assert exit_args[0] is LookupError

    @pytest.mark.asyncio
    async def test_health_check_healthy(self, mock_pool):
        """Test a successful health check."""
        from internal_utils.db import DbClient

        result = await DbClient(mock_pool, meter_name="test.db.health").health_check()

        assert result.healthy is True
        assert result.error is None
        assert result.latency_ms >= 0
        assert result.to_dict()["pool"] == {"total": 2, "idle": 1, "max": 10}

    @pytest.mark.asyncio
    async def test_health_check_unhealthy(self, mock_pool):
        """Test that a failing health check is reported, not raised."""
        from internal_utils.db import DbClient

        mock_pool.fetchval.side_effect = ConnectionResetError("connection reset")

        result = await DbClient(mock_pool, meter_name="test.db.health").health_check()

        assert result.healthy is False
        assert result.error == "connection reset"
        assert result.to_dict()["error"] == "connection reset"

    @pytest.mark.asyncio
    async def test_close(self, mock_pool):
        """Test that close and the async context manager close the pool."""
        from internal_utils.db import DbClient

        async with DbClient(mock_pool, meter_name="test.db.close"):
            pass

        mock_pool.close.assert_awaited_once()
