from enum import Enum


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class QueryKind(str, Enum):
    """Coarse statement classification by leading keyword."""
    READ = "read"        # select
    WITH = "with"
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"
    UNKNOWN = "unknown"


READ_ONLY_KINDS = frozenset({QueryKind.READ, QueryKind.WITH})
MUTATING_KINDS = frozenset({QueryKind.INSERT, QueryKind.UPDATE, QueryKind.DELETE})


class QueryEventType(str, Enum):
    """Events streamed to the caller of the query loop."""
    # Progress events
    FRAGMENT = "fragment"
    RETRY_NOTICE = "retry_notice"
    EXECUTION_ERROR = "execution_error"

    # Terminal events (exactly one per invocation)
    SUCCESS = "success"
    REJECTED = "rejected"
    CONFIRMATION_REQUIRED = "confirmation_required"
    EXHAUSTED = "exhausted"
    FAILED = "failed"


TERMINAL_EVENT_TYPES = frozenset({
    QueryEventType.SUCCESS,
    QueryEventType.REJECTED,
    QueryEventType.CONFIRMATION_REQUIRED,
    QueryEventType.EXHAUSTED,
    QueryEventType.FAILED,
})


class AttemptOutcome(str, Enum):
    """How a single generation attempt ended."""
    PENDING = "pending"
    NO_SQL = "no_sql"
    REJECTED = "rejected"
    NEEDS_CONFIRMATION = "needs_confirmation"
    EXECUTION_FAILED = "execution_failed"
    EXECUTED = "executed"
