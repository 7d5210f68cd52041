"""
SQL Generation Repository.

Handles LLM-based SQL generation:
- System instruction building with optional schema context
- Message composition from the session history
- Streaming the model reply fragment by fragment
"""

from typing import AsyncIterator, List, Sequence

from ..constants import SCHEMA_CONTEXT_HEADER, SYSTEM_INSTRUCTION
from ..domain.base_enums import Role
from ..domain.conversation import ChatMessage
from ..infrastructure.llm_client import LLMClient
from ..utils.logging import get_module_logger
from ..utils.tracing import current_trace_id

logger = get_module_logger()


def build_system_instruction(schema_context: str = "") -> str:
    """Fixed read-only instruction, followed by the schema listing when present."""
    if not schema_context:
        return SYSTEM_INSTRUCTION
    return f"{SYSTEM_INSTRUCTION}\n\n{SCHEMA_CONTEXT_HEADER}{schema_context}"


def build_messages(history: Sequence[ChatMessage], schema_context: str = "") -> List[ChatMessage]:
    """System instruction first, then the history snapshot in order."""
    system = ChatMessage(role=Role.SYSTEM, content=build_system_instruction(schema_context))
    return [system, *history]


class SQLGenerationRepository:
    """
    Repository for LLM-based SQL generation.

    Handles message construction and LLM interaction. Extraction,
    classification and retries are the caller's concern.
    """

    def __init__(self, llm_client: LLMClient):
        self.llm_client = llm_client

    async def stream_reply(
        self,
        history: Sequence[ChatMessage],
        schema_context: str = "",
    ) -> AsyncIterator[str]:
        """
        Stream the model's reply to the conversation so far.

        Args:
            history: Session history snapshot, oldest first
            schema_context: Rendered table/column listing (may be empty)

        Yields:
            Non-empty text fragments in arrival order; returns when the
            client signals end of stream

        Raises:
            LLMError: If the text-generation service fails
        """
        trace_id = current_trace_id()
        messages = build_messages(history, schema_context)

        logger.debug(
            "Calling LLM for SQL generation",
            message_count=len(messages),
            history_length=len(history),
            schema_context_chars=len(schema_context),
            trace_id=trace_id,
        )

        async for fragment in self.llm_client.stream_chat(messages):
            if fragment.done:
                return
            if fragment.content:
                yield fragment.content
