"""
Streaming LLM client for OpenAI-compatible servers using LangChain.

This module provides an async client that uses LangChain's ChatOpenAI to
stream chat completions from a local or hosted inference server.
"""

from typing import AsyncIterator, List, Optional, Sequence

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI
from pydantic import SecretStr

from ..config import LLMConfig
from ..domain.base_enums import Role
from ..domain.conversation import ChatMessage, StreamFragment
from ..domain.errors import LLMError
from ..utils.input_limits import InputValidator
from ..utils.logging import get_module_logger
from ..utils.tracing import current_trace_id


logger = get_module_logger()


def to_langchain_messages(messages: Sequence[ChatMessage]) -> List[BaseMessage]:
    """Map role-tagged history entries onto LangChain message classes."""
    converted: List[BaseMessage] = []
    for message in messages:
        if message.role == Role.SYSTEM:
            converted.append(SystemMessage(content=message.content))
        elif message.role == Role.ASSISTANT:
            converted.append(AIMessage(content=message.content))
        else:
            converted.append(HumanMessage(content=message.content))
    return converted


def _chunk_text(chunk: BaseMessage) -> str:
    """Text carried by one streamed chunk (content may be str or content blocks)."""
    content = chunk.content
    if isinstance(content, str):
        return content
    parts = []
    for block in content:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts)


class LLMClient:
    """
    Streaming chat client using LangChain's ChatOpenAI.

    This is a thin infrastructure layer. Prompt composition and the retry
    loop live in the repository and service layers.

    Features:
    - Any OpenAI-compatible chat completions endpoint
    - Incremental streaming with an explicit end-of-stream fragment
    - Input size validation before each call
    - Structured logging with trace IDs

    Usage:
        client = LLMClient(config)
        await client.connect()

        async for fragment in client.stream_chat(messages):
            if fragment.done:
                break
            print(fragment.content, end="")

        await client.close()
    """

    def __init__(self, config: LLMConfig):
        """
        Initialize LLM client with configuration.

        Args:
            config: LLM configuration
        """
        self.config = config
        self._llm: Optional[ChatOpenAI] = None
        self._is_connected = False

        logger.info(
            "LLMClient initialized",
            default_model=config.default_model,
            base_url=config.base_url,
            temperature=config.temperature,
            max_tokens=config.max_tokens
        )

    async def connect(self) -> None:
        """
        Initialize the LangChain ChatOpenAI client.

        No request is made here; server availability shows up on first use.

        Raises:
            LLMError: If initialization fails
        """
        if self._is_connected:
            logger.warning("LLM client already connected")
            return

        trace_id = current_trace_id()
        logger.info("Initializing LLM client", trace_id=trace_id)

        try:
            self._llm = ChatOpenAI(
                model=self.config.default_model,
                api_key=SecretStr(self.config.api_key),
                base_url=self.config.base_url,
                temperature=self.config.temperature,
                max_tokens=self.config.max_tokens,
                timeout=self.config.timeout_seconds,
                max_retries=self.config.max_retries,
                streaming=True,
            )

            self._is_connected = True
            logger.info("LLM client initialized successfully", trace_id=trace_id)

        except Exception as e:
            error_msg = f"Failed to initialize LLM client: {e}"
            logger.error(error_msg, error_type=type(e).__name__, trace_id=trace_id)
            raise LLMError(error_msg) from e

    async def close(self) -> None:
        """Close LLM client and release resources."""
        trace_id = current_trace_id()
        logger.info("Closing LLM client", trace_id=trace_id)

        self._is_connected = False
        self._llm = None

        logger.info("LLM client closed", trace_id=trace_id)

    def is_connected(self) -> bool:
        """Check if LLM client is connected."""
        return self._is_connected and self._llm is not None

    async def stream_chat(self, messages: Sequence[ChatMessage]) -> AsyncIterator[StreamFragment]:
        """
        Stream a chat completion fragment by fragment.

        Yields one StreamFragment per non-empty content delta, in arrival
        order, then exactly one StreamFragment(done=True) once the server
        closes the stream.

        Args:
            messages: Role-tagged messages, system instruction first

        Raises:
            LLMError: If the client is not connected, the input is too
                large, or the server/transport fails mid-stream
        """
        if not self.is_connected() or self._llm is None:
            raise LLMError("LLM client is not connected")

        try:
            input_chars = InputValidator.validate_message_chars(
                messages, max_chars=self.config.max_input_chars
            )
        except ValueError as e:
            raise LLMError(str(e), details={"max_input_chars": self.config.max_input_chars}) from e

        trace_id = current_trace_id()

        logger.info(
            "Streaming LLM response",
            message_count=len(messages),
            input_chars=input_chars,
            model=self.config.default_model,
            trace_id=trace_id
        )

        fragment_count = 0
        output_chars = 0
        finish_reason: Optional[str] = None

        try:
            async for chunk in self._llm.astream(to_langchain_messages(messages)):
                metadata = getattr(chunk, "response_metadata", None) or {}
                finish_reason = metadata.get("finish_reason") or finish_reason

                text = _chunk_text(chunk)
                if not text:
                    continue

                fragment_count += 1
                output_chars += len(text)
                yield StreamFragment(content=text)

        except LLMError:
            raise
        except Exception as e:
            error_msg = f"LLM streaming failed: {e}"
            logger.error(
                error_msg,
                error_type=type(e).__name__,
                fragments_received=fragment_count,
                trace_id=trace_id
            )
            raise LLMError(error_msg) from e

        logger.info(
            "LLM stream completed",
            fragments=fragment_count,
            output_chars=output_chars,
            finish_reason=finish_reason,
            trace_id=trace_id
        )

        yield StreamFragment(done=True, finish_reason=finish_reason)
