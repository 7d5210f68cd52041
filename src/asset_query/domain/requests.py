"""
API request models for the asset query service.

All fields include descriptions that appear in Swagger/OpenAPI documentation.
Chat clients send camelCase keys (confirmUpdate, sessionId); snake_case
is accepted as well.
"""

from pydantic import BaseModel, ConfigDict, Field

from ..config_constants import DEFAULT_SESSION_ID


class QueryRequest(BaseModel):
    """
    Request model for the natural-language query endpoint.

    The prompt is turned into a read-only SQL statement, executed, and the
    progress is streamed back as server-sent events.
    """

    model_config = ConfigDict(populate_by_name=True)

    prompt: str = Field(
        ...,
        description="Natural language question about the asset data. "
                    "Examples: 'show all assets', "
                    "'which laptops are assigned to employee 1042?'",
        min_length=1,
        max_length=4000,
        json_schema_extra={"example": "show all assets"}
    )
    confirm_update: bool = Field(
        default=False,
        alias="confirmUpdate",
        description="Explicit confirmation for data-modifying statements. "
                    "The service only executes read statements; the flag is "
                    "accepted for client compatibility.",
        json_schema_extra={"example": False}
    )
    session_id: str = Field(
        default=DEFAULT_SESSION_ID,
        alias="sessionId",
        description="Conversation identifier. Prompts sharing a session id "
                    "share a bounded message history.",
        min_length=1,
        max_length=200,
        json_schema_extra={"example": "default"}
    )
