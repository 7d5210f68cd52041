import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

import structlog

# Request-scoped identifiers shared across async operations
trace_id_var: ContextVar[Optional[str]] = ContextVar('trace_id', default=None)
session_id_var: ContextVar[Optional[str]] = ContextVar('session_id', default=None)


def generate_trace_id() -> str:
    """Generate a new trace ID."""
    return str(uuid.uuid4())


def set_trace_id(trace_id: str) -> None:
    """Set the trace ID for the current context."""
    trace_id_var.set(trace_id)


def current_trace_id() -> Optional[str]:
    """Get the current trace ID."""
    return trace_id_var.get()


def get_trace_id() -> str:
    """Get existing trace ID or create a new one."""
    trace_id = current_trace_id()
    if trace_id is None:
        trace_id = generate_trace_id()
        set_trace_id(trace_id)
    return trace_id


@contextmanager
def session_scope(session_id: str) -> Iterator[None]:
    """
    Bind a chat session id for the duration of a block.

    The id is held in session_id_var and is merged into every structlog
    record emitted inside the block.
    """
    # Restored by value: streaming generators may resume in a copied context
    previous = session_id_var.get()
    session_id_var.set(session_id)
    structlog.contextvars.bind_contextvars(session_id=session_id)
    try:
        yield
    finally:
        session_id_var.set(previous)
        if previous is None:
            structlog.contextvars.unbind_contextvars("session_id")
        else:
            structlog.contextvars.bind_contextvars(session_id=previous)
