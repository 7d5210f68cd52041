"""
Main FastAPI application for the asset query service.

This module sets up the FastAPI application with logging, tracing and
error handling middleware, and exposes the streaming query endpoint.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Dict, Union

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse

from .utils.logging import configure_logging, get_module_logger
from .utils.tracing import get_trace_id
from .domain.requests import QueryRequest
from .domain.responses import HealthResponse, SessionHistoryResponse
from .api.middleware import (
    trace_id_middleware,
    logging_middleware,
    security_headers_middleware,
    register_exception_handlers,
    ERROR_RESPONSES,
)
from .api.dependencies import (
    SettingsDep,
    QueryServiceDep,
    ConversationStoreDep,
    OptionalDatabaseClientDep,
    OptionalLLMClientDep,
)
from .config import get_settings
from .infrastructure.database_client import DatabaseClient
from .infrastructure.llm_client import LLMClient
from .repositories.conversation_store import ConversationStore
from .repositories.schema_repository import SchemaRepository
from .services.query_service import QueryService
from .services.schema_service import SchemaService


APP_VERSION = "0.1.0"

# Configure logging on module import
configure_logging()
logger = get_module_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info("Starting asset query API server", version=APP_VERSION)

    settings = get_settings()
    app.state.settings = settings
    logger.info("Settings loaded successfully")

    # Conversation memory lives for the lifetime of the process
    app.state.conversation_store = ConversationStore(
        history_limit=settings.query.history_limit,
        max_sessions=settings.query.max_sessions,
    )

    db_client = DatabaseClient(settings.database)
    try:
        await db_client.connect()
        logger.info("Database client connected successfully")
    except Exception as e:
        logger.error(f"Failed to connect database client: {e}")
        # Continue without database - health check will report status

    llm_client = LLMClient(settings.llm)
    try:
        await llm_client.connect()
        logger.info("LLM client connected successfully")
    except Exception as e:
        logger.error(f"Failed to connect LLM client: {e}")
        # Continue without LLM - health check will report status

    app.state.db_client = db_client
    app.state.llm_client = llm_client

    # Shared so the rendered schema context is cached across requests
    app.state.schema_service = SchemaService(
        schema_repository=SchemaRepository(db_client) if db_client.is_connected() else None,
        schema=settings.database.default_schema,
        max_chars=settings.query.schema_context_max_chars,
    )

    yield

    logger.info("Shutting down asset query API server")

    if hasattr(app.state, "db_client"):
        await app.state.db_client.close()
        logger.info("Database client closed")

    if hasattr(app.state, "llm_client"):
        await app.state.llm_client.close()
        logger.info("LLM client closed")


app = FastAPI(
    title="Asset Query API",
    description="Natural language questions over the IT asset database, answered by "
                "a guarded, retrying SQL generation loop streamed as server-sent events",
    version=APP_VERSION,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Trace-ID"],
)

# Last registered = first executed
app.middleware("http")(security_headers_middleware)
app.middleware("http")(logging_middleware)
app.middleware("http")(trace_id_middleware)

register_exception_handlers(app)


# API Routes
@app.get("/", tags=["Root"])
async def root(settings: SettingsDep) -> Dict[str, Union[str, None]]:
    """
    Root endpoint returning basic API information.

    **Response**: Dict with message, version, trace_id, log_level
    """
    trace_id = get_trace_id()
    logger.info("Root endpoint accessed", trace_id=trace_id)

    return {
        "message": "Asset Query API",
        "version": APP_VERSION,
        "trace_id": trace_id,
        "log_level": settings.app.log_level.value
    }


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health(
    db_client: OptionalDatabaseClientDep,
    llm_client: OptionalLLMClientDep,
    store: ConversationStoreDep,
) -> HealthResponse:
    """
    Health check endpoint with system status.

    **Response Model**: `HealthResponse`
    - status: Overall health (healthy/degraded)
    - database_status, llm_service_status
    - active_sessions: Conversation sessions held in memory
    """
    trace_id = get_trace_id()
    logger.debug("Health check endpoint accessed", trace_id=trace_id)

    database_status = "not_configured"
    if db_client:
        db_health = await db_client.health_check()
        database_status = db_health.get("status", "unknown")

    llm_status = "not_configured"
    if llm_client:
        llm_status = "healthy" if llm_client.is_connected() else "unhealthy"

    overall_status = "healthy" if (
        database_status == "healthy" and
        llm_status == "healthy"
    ) else "degraded"

    return HealthResponse(
        status=overall_status,
        timestamp=datetime.now(timezone.utc),
        version=APP_VERSION,
        database_status=database_status,
        llm_service_status=llm_status,
        active_sessions=store.session_count()
    )


# -------------------------
# Query Endpoint
# -------------------------

async def _event_stream(service: QueryService, request: QueryRequest) -> AsyncIterator[str]:
    async for event in service.generate_and_run(
        prompt=request.prompt,
        confirm_update=request.confirm_update,
        session_id=request.session_id,
    ):
        yield event.to_sse()


@app.post(
    "/query",
    tags=["Query"],
    response_class=StreamingResponse,
    responses={
        200: {
            "description": "Server-sent events: model fragments, control frames, "
                           "and a final JSON {query, data} frame on success",
            "content": {"text/event-stream": {}},
        },
        **{k: v for k, v in ERROR_RESPONSES.items() if k in [422, 500, 503]},
    },
)
async def query(request: QueryRequest, query_service: QueryServiceDep) -> StreamingResponse:
    """
    Answer a natural language question with live SQL generation.

    The model's reply is streamed as it is produced. The extracted
    statement is executed only if it is a SELECT or WITH query; failed
    executions are fed back to the model and retried.

    **Request Model**: `QueryRequest`
    - prompt: Natural language question (required, non-empty)
    - confirmUpdate: Confirmation flag for data-modifying statements
    - sessionId: Conversation identifier (default: "default")

    **Stream frames** (`data: <text>`):
    - raw model text (newlines escaped as `\\n`)
    - `[ERROR] ...` retry, failure, rejection and exhaustion notices
    - `[CONFIRM] ...` confirmation request
    - `[SUCCESS] ...` followed by a JSON `{"query", "data"}` frame

    **Possible Errors** (before streaming starts):
    - 422: Missing or empty prompt
    - 503: Database or text-generation service unavailable
    """
    trace_id = get_trace_id()

    logger.info(
        "Query requested",
        prompt_length=len(request.prompt),
        session_id=request.session_id,
        confirm_update=request.confirm_update,
        trace_id=trace_id,
    )

    return StreamingResponse(
        _event_stream(query_service, request),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
        },
    )


@app.get(
    "/api/v1/sessions/{session_id}/history",
    response_model=SessionHistoryResponse,
    tags=["Sessions"],
)
async def session_history(
    session_id: str,
    store: ConversationStoreDep,
) -> SessionHistoryResponse:
    """
    Read-only view of one session's conversation history.

    Unknown sessions return an empty history; they are not created.

    **Response Model**: `SessionHistoryResponse`
    - messages: Oldest first, at most history_limit entries
    """
    trace_id = get_trace_id()
    logger.info("Session history requested", requested_session_id=session_id, trace_id=trace_id)

    messages = store.peek(session_id)

    return SessionHistoryResponse(
        trace_id=trace_id,
        session_id=session_id,
        message_count=len(messages),
        history_limit=store.history_limit,
        messages=messages,
    )


# Use scripts/run_dev.py for development or scripts/run_prod.py in production
