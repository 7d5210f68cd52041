"""
Events emitted by the guarded query loop and their server-sent-event framing.

The loop yields QueryEvent objects; the HTTP layer only calls to_sse().
Control frames use bracketed markers ([ERROR], [CONFIRM], [SUCCESS]) so
chat clients can tell them apart from raw model text.
"""

import json
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .base_enums import QueryEventType, QueryKind, TERMINAL_EVENT_TYPES


SUCCESS_MESSAGE = "[SUCCESS] SQL query executed successfully."
RETRY_MESSAGE = "[ERROR] No valid SQL query generated. Retrying..."
CONFIRM_MESSAGE = "[CONFIRM] Data modification query detected. Please confirm with confirmUpdate=true."


class QueryResultPayload(BaseModel):
    """Final payload of a successful invocation."""

    query: str = Field(..., description="SQL that was executed")
    data: List[Dict[str, Any]] = Field(default_factory=list, description="Result rows")


class QueryEvent(BaseModel):
    """One progress or terminal event of a query invocation."""

    type: QueryEventType = Field(..., description="Event kind")
    text: str = Field(..., description="Fragment text or control message")
    attempt: Optional[int] = Field(default=None, description="1-based attempt the event belongs to")
    result: Optional[QueryResultPayload] = Field(default=None, description="Set on SUCCESS only")

    @property
    def is_terminal(self) -> bool:
        return self.type in TERMINAL_EVENT_TYPES

    # -------------------------------------------------------------------------
    # Constructors
    # -------------------------------------------------------------------------

    @classmethod
    def fragment(cls, text: str, attempt: int) -> "QueryEvent":
        return cls(type=QueryEventType.FRAGMENT, text=text, attempt=attempt)

    @classmethod
    def retry_notice(cls, attempt: int) -> "QueryEvent":
        return cls(type=QueryEventType.RETRY_NOTICE, text=RETRY_MESSAGE, attempt=attempt)

    @classmethod
    def execution_error(cls, error: str, attempt: int) -> "QueryEvent":
        return cls(
            type=QueryEventType.EXECUTION_ERROR,
            text=f"[ERROR] SQL query failed: {error}",
            attempt=attempt,
        )

    @classmethod
    def rejected(cls, kind: QueryKind, attempt: int) -> "QueryEvent":
        return cls(
            type=QueryEventType.REJECTED,
            text=f"[ERROR] Only SELECT and WITH queries allowed. Detected: {kind.value}",
            attempt=attempt,
        )

    @classmethod
    def confirmation_required(cls, attempt: int) -> "QueryEvent":
        return cls(type=QueryEventType.CONFIRMATION_REQUIRED, text=CONFIRM_MESSAGE, attempt=attempt)

    @classmethod
    def exhausted(cls, max_attempts: int) -> "QueryEvent":
        return cls(
            type=QueryEventType.EXHAUSTED,
            text=f"[ERROR] Failed to generate and execute a valid SQL query after {max_attempts} attempts.",
        )

    @classmethod
    def failed(cls, message: str, attempt: Optional[int] = None) -> "QueryEvent":
        return cls(type=QueryEventType.FAILED, text=f"[ERROR] {message}", attempt=attempt)

    @classmethod
    def success(cls, query: str, rows: List[Dict[str, Any]], attempt: int) -> "QueryEvent":
        return cls(
            type=QueryEventType.SUCCESS,
            text=SUCCESS_MESSAGE,
            attempt=attempt,
            result=QueryResultPayload(query=query, data=rows),
        )

    # -------------------------------------------------------------------------
    # Wire format
    # -------------------------------------------------------------------------

    def sse_lines(self) -> List[str]:
        """
        Data lines for this event.

        Fragments escape newlines so one fragment stays one frame. A
        success event is two frames: the marker, then the JSON payload.
        """
        if self.type == QueryEventType.FRAGMENT:
            return [self.text.replace("\n", "\\n")]

        lines = [self.text.replace("\n", " ")]
        if self.result is not None:
            lines.append(json.dumps(self.result.model_dump(), default=str, ensure_ascii=False))
        return lines

    def to_sse(self) -> str:
        """Render as server-sent-event frames."""
        return "".join(f"data: {line}\n\n" for line in self.sse_lines())
