"""
Domain package for the asset query service.

This package contains the domain models, enums and value objects used
throughout the application for type safety and validation.
"""

from .base_enums import (
    Role,
    QueryKind,
    QueryEventType,
    AttemptOutcome,
    READ_ONLY_KINDS,
    MUTATING_KINDS,
    TERMINAL_EVENT_TYPES,
)
from .conversation import ChatMessage, StreamFragment
from .attempt import GenerationAttempt
from .events import QueryEvent, QueryResultPayload
from .schema_nodes import TableNode, ColumnNode
from .requests import QueryRequest
from .responses import (
    HealthResponse,
    ErrorResponse,
    SessionHistoryResponse,
    ExecutionOutcome,
)

__all__ = [
    # Enums
    "Role",
    "QueryKind",
    "QueryEventType",
    "AttemptOutcome",
    "READ_ONLY_KINDS",
    "MUTATING_KINDS",
    "TERMINAL_EVENT_TYPES",

    # Conversation
    "ChatMessage",
    "StreamFragment",

    # Query loop
    "GenerationAttempt",
    "QueryEvent",
    "QueryResultPayload",

    # Schema
    "TableNode",
    "ColumnNode",

    # Requests / Responses
    "QueryRequest",
    "HealthResponse",
    "ErrorResponse",
    "SessionHistoryResponse",
    "ExecutionOutcome",
]
