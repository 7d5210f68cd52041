"""
Schema Service for orchestrating schema operations.

This service turns information_schema metadata into the plain-text table
listing appended to the model's system instruction, and into the JSON and
text files written by scripts/dump_schema.py.
"""

import asyncio
from typing import Any, Dict, List, Optional

from ..repositories.schema_repository import SchemaRepository
from ..domain.schema_nodes import TableNode
from ..utils.input_limits import truncate_text
from ..utils.logging import get_module_logger
from ..utils.tracing import current_trace_id


logger = get_module_logger()


def render_schema_text(tables: List[TableNode]) -> str:
    """Table blocks ("Table: x" then "- col (type)" lines) separated by two blank lines."""
    return "\n\n\n".join(table.render() for table in tables)


def render_schema_json(tables: List[TableNode]) -> Dict[str, List[Dict[str, Any]]]:
    """{table_name: [{"column", "type"}, ...]} in table order."""
    return {table.table_name: table.as_json() for table in tables}


class SchemaService:
    """
    Service for schema-related business logic.

    The rendered context is cached after the first successful load. A
    failed load yields an empty context and is retried on the next call.

    Usage:
        schema_service = SchemaService(schema_repo, schema="public", max_chars=12000)
        context = await schema_service.get_schema_context()
    """

    def __init__(
        self,
        schema_repository: Optional[SchemaRepository],
        schema: str = "public",
        max_chars: int = 12000
    ):
        """
        Initialize schema service.

        Args:
            schema_repository: SchemaRepository, or None when no database
                is available (context is then always empty)
            schema: PostgreSQL schema to describe
            max_chars: Cap on the rendered context size
        """
        self.schema_repo = schema_repository
        self.schema = schema
        self.max_chars = max_chars

        self._context: Optional[str] = None
        self._load_lock = asyncio.Lock()

    async def get_tables(self) -> List[TableNode]:
        """
        Fetch all tables with columns for the configured schema.

        Raises:
            DatabaseQueryError: If the repository query fails
        """
        if self.schema_repo is None:
            return []
        return await self.schema_repo.get_tables_with_columns(self.schema)

    async def get_schema_context(self) -> str:
        """
        Rendered table listing for the system instruction.

        Returns:
            Cached context, or "" when the database is unavailable
        """
        if self._context is not None:
            return self._context

        async with self._load_lock:
            if self._context is not None:
                return self._context

            trace_id = current_trace_id()

            if self.schema_repo is None:
                logger.warning("No database available, schema context disabled", trace_id=trace_id)
                return ""

            try:
                tables = await self.get_tables()
            except Exception as e:
                logger.warning(
                    f"Failed to load schema context: {e}",
                    schema=self.schema,
                    error_type=type(e).__name__,
                    trace_id=trace_id
                )
                return ""

            full_text = render_schema_text(tables)
            self._context = truncate_text(full_text, self.max_chars)

            logger.info(
                "Schema context loaded",
                schema=self.schema,
                table_count=len(tables),
                context_chars=len(self._context),
                truncated=len(full_text) > len(self._context),
                trace_id=trace_id
            )

            return self._context
