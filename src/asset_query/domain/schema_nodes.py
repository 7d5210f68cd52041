from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ColumnNode(BaseModel):
    """One column as reported by information_schema.columns."""

    column_name: str = Field(..., description="Name of the column")
    data_type: str = Field(..., description="Data type of the column")
    is_nullable: bool = Field(default=True, description="Indicates if the column can contain null values")
    character_maximum_length: Optional[int] = Field(default=None, description="Length limit for character types")

    def render(self) -> str:
        return f"- {self.column_name} ({self.data_type})"


class TableNode(BaseModel):
    """A table and its columns in ordinal order."""

    table_name: str = Field(..., description="Name of the table")
    schema_name: str = Field(..., description="Schema to which the table belongs")
    columns: List[ColumnNode] = Field(default_factory=list, description="Columns in ordinal order")

    def render(self) -> str:
        """Plain-text block used in the model's system instruction."""
        lines = [f"Table: {self.table_name}"]
        lines.extend(column.render() for column in self.columns)
        return "\n".join(lines)

    def as_json(self) -> List[Dict[str, Any]]:
        """Column list in the {column, type} shape of the schema dump file."""
        return [{"column": c.column_name, "type": c.data_type} for c in self.columns]
