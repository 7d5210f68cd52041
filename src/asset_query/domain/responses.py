"""
API response models for the asset query service.

These models define the structure for non-streaming responses and for the
internal result objects passed between repositories and services.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .conversation import ChatMessage


class HealthResponse(BaseModel):
    """Response model for health check endpoint."""

    status: str = Field(..., description="Health status", examples=["healthy", "degraded"])
    timestamp: datetime = Field(..., description="Health check timestamp")
    version: str = Field(..., description="Application version")
    database_status: str = Field(..., description="Database connection status")
    llm_service_status: str = Field(..., description="Text-generation service status")
    active_sessions: int = Field(..., description="Conversation sessions held in memory")


class ErrorResponse(BaseModel):
    """Response model for error responses."""

    error: str = Field(..., description="Error type or category")
    message: str = Field(..., description="Human-readable error message")
    details: Optional[Dict[str, Any]] = Field(
        default=None,
        description="Additional error details"
    )
    trace_id: Optional[str] = Field(
        default=None,
        description="Trace ID for debugging"
    )
    timestamp: datetime = Field(..., description="Error timestamp")


class SessionHistoryResponse(BaseModel):
    """Read-only view of one session's conversation history."""

    trace_id: str = Field(..., description="Request trace ID")
    session_id: str = Field(..., description="Conversation identifier")
    message_count: int = Field(..., description="Number of messages held")
    history_limit: int = Field(..., description="Maximum messages kept per session")
    messages: List[ChatMessage] = Field(default_factory=list, description="Oldest first")


class ExecutionOutcome(BaseModel):
    """
    Result of running one generated statement.

    Database failures are data here, not exceptions: the query loop feeds
    the error text back to the model and retries.
    """

    success: bool = Field(..., description="Whether the statement ran")
    rows: List[Dict[str, Any]] = Field(default_factory=list, description="Result rows")
    error: Optional[str] = Field(default=None, description="Database error text (if success=False)")
    row_count: int = Field(default=0, description="Number of rows returned")
    execution_time_ms: float = Field(default=0.0, description="Wall time spent executing")

    @classmethod
    def ok(cls, rows: List[Dict[str, Any]], execution_time_ms: float) -> "ExecutionOutcome":
        return cls(success=True, rows=rows, row_count=len(rows), execution_time_ms=execution_time_ms)

    @classmethod
    def failed(cls, error: str, execution_time_ms: float = 0.0) -> "ExecutionOutcome":
        return cls(success=False, error=error, execution_time_ms=execution_time_ms)
