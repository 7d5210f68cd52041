"""
Schema Repository for extracting database schema information.

This repository fetches table and column metadata from PostgreSQL
information_schema using the DatabaseClient infrastructure layer.

All methods return domain models from schema_nodes.py for type safety.
"""

from typing import Dict, List

from ..infrastructure.database_client import DatabaseClient
from ..utils.logging import get_module_logger
from ..utils.tracing import current_trace_id
from ..domain.errors import DatabaseQueryError
from ..domain.schema_nodes import TableNode, ColumnNode


logger = get_module_logger()


class SchemaRepository:
    """
    Repository for schema metadata operations.

    Usage:
        db_client = DatabaseClient(config)
        await db_client.connect()

        schema_repo = SchemaRepository(db_client)
        tables = await schema_repo.get_tables_with_columns("public")
    """

    def __init__(self, db_client: DatabaseClient):
        """
        Initialize schema repository.

        Args:
            db_client: DatabaseClient instance for database operations
        """
        self.db_client = db_client

    async def get_tables_with_columns(self, schema: str = "public") -> List[TableNode]:
        """
        Fetch every table in a schema with its columns.

        Tables are ordered by name, columns by ordinal position. Views are
        included; the model may query them like tables.

        Args:
            schema: PostgreSQL schema name (default: "public")

        Returns:
            List of TableNode domain models

        Raises:
            DatabaseQueryError: If query execution fails
        """
        trace_id = current_trace_id()
        logger.info("Fetching tables and columns", schema=schema, trace_id=trace_id)

        query = """
            SELECT
                table_name,
                column_name,
                data_type,
                is_nullable,
                character_maximum_length
            FROM information_schema.columns
            WHERE table_schema = $1
            ORDER BY table_name, ordinal_position
        """

        try:
            results = await self.db_client.execute_query(
                query=query,
                params=[schema],
                read_only=True
            )
        except Exception as e:
            error_msg = f"Failed to fetch columns from schema '{schema}': {e}"
            logger.error(error_msg, trace_id=trace_id)
            raise DatabaseQueryError(error_msg) from e

        tables: Dict[str, TableNode] = {}
        for row in results:
            table_name = row["table_name"]
            table = tables.get(table_name)
            if table is None:
                table = TableNode(table_name=table_name, schema_name=schema)
                tables[table_name] = table

            table.columns.append(
                ColumnNode(
                    column_name=row["column_name"],
                    data_type=row["data_type"],
                    is_nullable=(row["is_nullable"] == "YES"),
                    character_maximum_length=row["character_maximum_length"]
                )
            )

        logger.info(
            "Tables fetched successfully",
            table_count=len(tables),
            column_count=len(results),
            schema=schema,
            trace_id=trace_id
        )

        return list(tables.values())
