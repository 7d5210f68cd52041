"""
Conversation models shared by the history store, the LLM client and the API.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .base_enums import Role


class ChatMessage(BaseModel):
    """One role-tagged entry of a session's conversation history."""

    model_config = ConfigDict(frozen=True)

    role: Role = Field(..., description="Message author role")
    content: str = Field(..., description="Message text")


class StreamFragment(BaseModel):
    """
    One frame of a streamed model reply.

    Content frames carry text; the final frame has done=True and no
    content, which is how a finished stream is told apart from a
    dropped one.
    """

    content: str = Field(default="", description="Incremental reply text")
    done: bool = Field(default=False, description="True only on the end-of-stream marker")
    finish_reason: Optional[str] = Field(default=None, description="Server-reported stop reason")
