"""
Database client for PostgreSQL using asyncpg.

Runs model-generated statements against the asset database. Every
statement runs inside its own transaction, READ ONLY unless the caller
asks otherwise, so a write that slips past the statement guard still
fails at the server.

Driver errors are mapped onto DatabaseQueryError with a short category
prefix; the original asyncpg exception is kept as __cause__ because its
text is what the model is shown when asked to correct a query.
"""

from typing import Any, Dict, List, Optional, Tuple, Type
from contextlib import asynccontextmanager
import asyncpg

from ..config import DatabaseConfig
from ..utils.logging import get_module_logger
from ..utils.tracing import current_trace_id
from ..domain.errors import DatabaseConnectionError, DatabaseQueryError


logger = get_module_logger()

# Checked in order; the first matching class names the failure
_QUERY_ERROR_CATEGORIES: Tuple[Tuple[Type[Exception], str], ...] = (
    (asyncpg.QueryCanceledError, "Query timeout exceeded"),
    (asyncpg.ReadOnlySQLTransactionError, "Write attempted in read-only transaction"),
    (asyncpg.PostgresSyntaxError, "SQL syntax error"),
    (asyncpg.UndefinedTableError, "Table does not exist"),
    (asyncpg.UndefinedColumnError, "Column does not exist"),
)

_CONNECT_ERROR_CATEGORIES: Tuple[Tuple[Type[Exception], str], ...] = (
    (asyncpg.InvalidCatalogNameError, "Database does not exist"),
    (asyncpg.InvalidPasswordError, "Authentication failed"),
)

# Generated SQL can be long; logs keep the head only
_LOGGED_QUERY_CHARS = 200


def _categorize(error: Exception, categories, fallback: str) -> str:
    for error_type, label in categories:
        if isinstance(error, error_type):
            return label
    return fallback


class DatabaseClient:
    """
    Async PostgreSQL client over an asyncpg connection pool.

    Usage:
        client = DatabaseClient(config)
        await client.connect()

        rows = await client.execute_query("SELECT * FROM assets")
        total = await client.execute_scalar("SELECT COUNT(*) FROM assets")

        await client.close()
    """

    def __init__(self, config: DatabaseConfig):
        self.config = config
        self._pool: Optional[asyncpg.Pool] = None

        logger.info(
            "DatabaseClient initialized",
            default_schema=config.default_schema,
            connection_pool_size=config.connection_pool_max_size,
            query_timeout_seconds=config.query_timeout_seconds,
            enforce_read_only=config.enforce_read_only_default,
            application_name=config.application_name
        )

    async def connect(self) -> None:
        """
        Create the connection pool and prove it with a probe query.

        Raises:
            DatabaseConnectionError: If the pool cannot be created or the
                probe fails
        """
        if self.is_connected():
            logger.warning("Database client already connected")
            return

        trace_id = current_trace_id()
        logger.info("Establishing database connection", trace_id=trace_id)

        try:
            pool = await asyncpg.create_pool(
                dsn=self.config.database_url,
                min_size=self.config.connection_pool_min_size,
                max_size=self.config.connection_pool_max_size,
                command_timeout=self.config.query_timeout_seconds,
                timeout=self.config.connection_timeout_seconds,
                server_settings={
                    "application_name": self.config.application_name,
                    "search_path": self.config.default_schema,
                }
            )
        except Exception as e:
            label = _categorize(e, _CONNECT_ERROR_CATEGORIES, "Failed to connect to database")
            logger.error(f"{label}: {e}", error_type=type(e).__name__, trace_id=trace_id)
            raise DatabaseConnectionError(f"{label}: {e}") from e

        try:
            async with pool.acquire() as conn:
                current_schema = await self._probe(conn)
        except Exception as e:
            pool.terminate()
            logger.error(f"Connection test failed: {e}", trace_id=trace_id)
            raise DatabaseConnectionError(f"Connection test failed: {e}") from e

        self._pool = pool
        logger.info(
            "Database connection established successfully",
            pool_size=self.config.connection_pool_max_size,
            current_schema=current_schema,
            trace_id=trace_id
        )

    @staticmethod
    async def _probe(conn: asyncpg.Connection) -> str:
        """SELECT 1 round trip; returns the session's current schema."""
        if await conn.fetchval("SELECT 1") != 1:
            raise DatabaseConnectionError("Probe query returned an unexpected value")
        return await conn.fetchval("SELECT current_schema()")

    async def close(self) -> None:
        """Close the connection pool, waiting for checked-out connections."""
        if self._pool is None:
            return

        trace_id = current_trace_id()
        logger.info("Closing database connection", trace_id=trace_id)

        pool, self._pool = self._pool, None
        await pool.close()

        logger.info("Database connection closed", trace_id=trace_id)

    def is_connected(self) -> bool:
        return self._pool is not None

    async def health_check(self) -> Dict[str, Any]:
        """
        Probe the pool for the /health endpoint.

        Returns:
            {"status": "healthy", "current_schema": ...} or
            {"status": "unhealthy", "error": ...}; never raises
        """
        if not self.is_connected():
            return {"status": "unhealthy", "error": "Database client not connected"}

        try:
            async with self.acquire_connection(read_only=True) as conn:
                current_schema = await self._probe(conn)
        except Exception as e:
            logger.error(
                "Database health check failed",
                error=str(e),
                error_type=type(e).__name__,
                trace_id=current_trace_id()
            )
            return {"status": "unhealthy", "error": str(e)}

        return {
            "status": "healthy",
            "pool_size": self.config.connection_pool_max_size,
            "current_schema": current_schema,
        }

    @asynccontextmanager
    async def acquire_connection(self, read_only: Optional[bool] = None):
        """
        Acquire a pooled connection inside a transaction.

        Args:
            read_only: Open the transaction READ ONLY. Defaults to
                config.enforce_read_only_default.

        Example:
            async with client.acquire_connection() as conn:
                rows = await conn.fetch("SELECT * FROM assets")
        """
        if self._pool is None:
            raise DatabaseConnectionError("Database client is not connected")

        if read_only is None:
            read_only = self.config.enforce_read_only_default

        async with self._pool.acquire() as connection:
            async with connection.transaction(readonly=read_only):
                yield connection

    async def execute_query(
        self,
        query: str,
        params: Optional[List[Any]] = None,
        timeout: Optional[float] = None,
        read_only: Optional[bool] = None
    ) -> List[Dict[str, Any]]:
        """
        Execute a statement and return its rows as dictionaries.

        Args:
            query: SQL statement
            params: Positional parameters ($1, $2, ...)
            timeout: Per-call timeout in seconds; None falls back to
                config.query_timeout_seconds, which may itself be None
            read_only: Override the read-only transaction default

        Returns:
            Rows in server order, column names as keys

        Raises:
            DatabaseConnectionError: If the client is not connected
            DatabaseQueryError: If the server rejects or cancels the query
        """
        trace_id = current_trace_id()
        effective_timeout = timeout if timeout is not None else self.config.query_timeout_seconds

        logger.info(
            "Executing database query",
            query=query[:_LOGGED_QUERY_CHARS],
            timeout=effective_timeout,
            trace_id=trace_id
        )

        try:
            async with self.acquire_connection(read_only=read_only) as conn:
                records = await conn.fetch(query, *(params or []), timeout=effective_timeout)
        except DatabaseConnectionError:
            raise
        except Exception as e:
            label = _categorize(e, _QUERY_ERROR_CATEGORIES, "Query execution failed")
            logger.error(
                f"{label}: {e}",
                error_type=type(e).__name__,
                query=query[:_LOGGED_QUERY_CHARS],
                trace_id=trace_id
            )
            raise DatabaseQueryError(f"{label}: {e}") from e

        rows = [dict(record) for record in records]
        logger.info("Query executed successfully", row_count=len(rows), trace_id=trace_id)
        return rows

    async def execute_scalar(self, query: str, params: Optional[List[Any]] = None) -> Any:
        """Execute a query and return the first column of the first row."""
        try:
            async with self.acquire_connection() as conn:
                return await conn.fetchval(query, *(params or []))
        except DatabaseConnectionError:
            raise
        except Exception as e:
            logger.error(
                f"Scalar query execution failed: {e}",
                query=query[:_LOGGED_QUERY_CHARS],
                trace_id=current_trace_id()
            )
            raise DatabaseQueryError(f"Scalar query execution failed: {e}") from e
