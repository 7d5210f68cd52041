"""
Conversation Store.

In-memory, per-session conversation history for the query loop.

Bounds:
- Each session keeps at most history_limit messages; the oldest go first
- At most max_sessions sessions are held; the least recently used idle
  session is evicted when a new one would exceed the cap

Concurrency:
- session_lock(session_id) is an async context manager over one
  asyncio.Lock per session. The query loop holds it for a whole
  invocation so appends from two requests on the same session never
  interleave. A session is busy while any request holds or waits on its
  lock, and busy sessions are never evicted.

Architecture Notes:
- Process-local state; history is lost on restart and not shared between
  workers
- No deletion operation is exposed
"""

import asyncio
from collections import OrderedDict
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, List

from ..domain.base_enums import Role
from ..domain.conversation import ChatMessage
from ..utils.logging import get_module_logger

logger = get_module_logger()


@dataclass
class _Session:
    messages: List[ChatMessage] = field(default_factory=list)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    # Holder plus queued waiters on lock
    users: int = 0


class ConversationStore:
    """
    Bounded map of session id to bounded message history.

    Usage:
        store = ConversationStore(history_limit=10, max_sessions=1000)
        async with store.session_lock("default"):
            store.append("default", Role.USER, "show all assets")
            history = store.get("default")
    """

    def __init__(self, history_limit: int = 10, max_sessions: int = 1000):
        if history_limit < 1:
            raise ValueError("history_limit must be at least 1")
        if max_sessions < 1:
            raise ValueError("max_sessions must be at least 1")

        self.history_limit = history_limit
        self.max_sessions = max_sessions
        self._sessions: "OrderedDict[str, _Session]" = OrderedDict()

    def _touch(self, session_id: str) -> _Session:
        session = self._sessions.get(session_id)
        if session is None:
            session = _Session()
            self._sessions[session_id] = session
            self._evict_idle()
        else:
            self._sessions.move_to_end(session_id)
        return session

    def _evict_idle(self) -> None:
        excess = len(self._sessions) - self.max_sessions
        if excess <= 0:
            return

        # Oldest first; the session just added sits at the end
        for session_id in list(self._sessions)[:-1]:
            if excess <= 0:
                break
            if self._sessions[session_id].users:
                continue
            del self._sessions[session_id]
            excess -= 1
            logger.debug("Evicted idle conversation session", evicted_session_id=session_id)

    def get(self, session_id: str) -> List[ChatMessage]:
        """
        Snapshot of a session's history, oldest first.

        Creates an empty session when absent. The returned list is a copy.
        """
        return list(self._touch(session_id).messages)

    def append(self, session_id: str, role: Role, content: str) -> None:
        """Append a message, then drop the oldest ones beyond history_limit."""
        messages = self._touch(session_id).messages
        messages.append(ChatMessage(role=role, content=content))
        overflow = len(messages) - self.history_limit
        if overflow > 0:
            del messages[:overflow]

    @asynccontextmanager
    async def session_lock(self, session_id: str) -> AsyncIterator[None]:
        """
        Serialise invocations on one session.

        The session counts as busy from the moment a caller starts waiting
        until it leaves the block, so a queued request keeps its history
        even when the lock changes hands while other sessions are created.
        """
        session = self._touch(session_id)
        session.users += 1
        try:
            async with session.lock:
                yield
        finally:
            session.users -= 1

    def peek(self, session_id: str) -> List[ChatMessage]:
        """Copy of a session's history without creating or touching it."""
        session = self._sessions.get(session_id)
        return list(session.messages) if session else []

    def session_count(self) -> int:
        return len(self._sessions)
