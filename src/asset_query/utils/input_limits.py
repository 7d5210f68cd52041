"""
Input size utilities for LLM requests and prompt context.

Character counts are used instead of token counts: the service talks to
arbitrary OpenAI-compatible servers whose tokenizers are unknown.
"""

from typing import Iterable

from asset_query.domain.conversation import ChatMessage


def truncate_text(text: str, max_chars: int, marker: str = "\n...") -> str:
    """
    Cut text to at most max_chars characters, ending with marker when cut.

    Cuts at the last newline before the limit so line-oriented content
    (schema listings) does not end mid-line.

    Example:
        >>> truncate_text("Table: a\\n- id (int)\\n- name (text)", max_chars=24)
        'Table: a\\n- id (int)\\n...'
    """
    if max_chars <= 0:
        return ""
    if len(text) <= max_chars:
        return text

    budget = max(max_chars - len(marker), 0)
    cut = text[:budget]
    newline = cut.rfind("\n")
    if newline > 0:
        cut = cut[:newline]
    return cut + marker


class InputValidator:
    """
    Input validation utility for checking character limits.
    """

    @staticmethod
    def validate_message_chars(messages: Iterable[ChatMessage], max_chars: int) -> int:
        """
        Validate total character count across a chat message list.

        Args:
            messages: Messages about to be sent in one request
            max_chars: Maximum allowed total characters

        Returns:
            Total character count

        Raises:
            ValueError: If total exceeds character limit
        """
        total_chars = sum(len(message.content) for message in messages)

        if total_chars > max_chars:
            raise ValueError(
                f"Total input too large: {total_chars} characters, "
                f"maximum allowed: {max_chars}"
            )

        return total_chars
