"""
SQL Execution Repository.

This repository handles the execution step of the query loop: running a
classified statement against the database and reporting the outcome.

Safety Features:
- Read-only enforcement: queries run inside a READ ONLY transaction
- Optional statement timeout (none by default)

Architecture Notes:
- This is a REPOSITORY (data access layer)
- Only executes SQL whose kind the service already permitted
- Uses injected DatabaseClient for connection management
- Database failures are returned as ExecutionOutcome(success=False), not
  raised, because the service feeds the error text back to the model

Usage:
    repo = SQLExecutionRepository(db_client)
    outcome = await repo.execute("SELECT * FROM assets")
    if outcome.success:
        print(f"Returned {outcome.row_count} rows in {outcome.execution_time_ms}ms")
    else:
        print(outcome.error)
"""

import time
from typing import Optional

from ..domain.errors import DatabaseError
from ..domain.responses import ExecutionOutcome
from ..infrastructure.database_client import DatabaseClient
from ..utils.logging import get_module_logger
from ..utils.tracing import current_trace_id

logger = get_module_logger()


class SQLExecutionRepository:
    """
    Repository for SQL execution.

    Executes permitted SQL with read-only enforcement.
    """

    def __init__(
        self,
        db_client: DatabaseClient,
        timeout_seconds: Optional[float] = None,
        read_only: bool = True,
    ):
        self.db_client = db_client
        self.timeout_seconds = timeout_seconds
        self.read_only = read_only

    async def execute(self, sql: str) -> ExecutionOutcome:
        """
        Execute a statement and report the outcome.

        Args:
            sql: Extracted, classified statement

        Returns:
            ExecutionOutcome with rows on success, error text on failure
        """
        trace_id = current_trace_id()

        logger.info(
            "Executing SQL query",
            sql_length=len(sql),
            timeout=self.timeout_seconds,
            read_only=self.read_only,
            trace_id=trace_id,
        )

        start = time.perf_counter()

        try:
            rows = await self.db_client.execute_query(
                query=sql,
                timeout=self.timeout_seconds,
                read_only=self.read_only,
            )
        except DatabaseError as e:
            execution_time_ms = (time.perf_counter() - start) * 1000
            logger.warning(
                "SQL execution failed",
                error=e.message,
                error_code=e.error_code,
                execution_time_ms=round(execution_time_ms, 2),
                trace_id=trace_id,
            )
            return ExecutionOutcome.failed(_error_text(e), execution_time_ms)

        execution_time_ms = (time.perf_counter() - start) * 1000

        logger.info(
            "SQL execution successful",
            row_count=len(rows),
            execution_time_ms=round(execution_time_ms, 2),
            trace_id=trace_id,
        )

        return ExecutionOutcome.ok(rows, execution_time_ms)


def _error_text(error: DatabaseError) -> str:
    """Driver message without the client's category prefix."""
    cause = error.__cause__
    if cause is not None and str(cause):
        return str(cause)
    return error.message
