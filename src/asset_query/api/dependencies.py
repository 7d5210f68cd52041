"""
FastAPI dependencies for dependency injection.

This module provides reusable dependencies that can be injected into
API route handlers following the layered architecture:
- QueryService for the guarded query loop (built per request)
- ConversationStore and SchemaService singletons from app state
- Settings for configuration
- Optional client dependencies for health checks only

Routes should depend on services, not infrastructure clients directly.
"""

from typing import Annotated, Optional

from fastapi import Depends, Request

from ..infrastructure.database_client import DatabaseClient
from ..infrastructure.llm_client import LLMClient
from ..repositories.conversation_store import ConversationStore
from ..repositories.sql_generation import SQLGenerationRepository
from ..repositories.sql_execution import SQLExecutionRepository
from ..services.schema_service import SchemaService
from ..services.query_service import QueryService
from ..domain.errors import ServiceUnavailableError
from ..config import Settings


def get_settings(request: Request) -> Settings:
    """
    Dependency to get the settings from app state.

    Raises:
        RuntimeError: If settings are not initialized
    """
    if not hasattr(request.app.state, "settings"):
        raise RuntimeError("Settings not initialized")

    return request.app.state.settings


def get_conversation_store(request: Request) -> ConversationStore:
    """
    Dependency to get the process-wide conversation store.

    Raises:
        RuntimeError: If the store is not initialized
    """
    if not hasattr(request.app.state, "conversation_store"):
        raise RuntimeError("Conversation store not initialized")

    return request.app.state.conversation_store


# Optional dependency getters for health checks and endpoints that need graceful degradation
def get_db_client_optional(request: Request) -> Optional[DatabaseClient]:
    """Get database client if available, None otherwise."""
    return getattr(request.app.state, "db_client", None)


def get_llm_client_optional(request: Request) -> Optional[LLMClient]:
    """Get LLM client if available, None otherwise."""
    return getattr(request.app.state, "llm_client", None)


def get_schema_service_optional(request: Request) -> Optional[SchemaService]:
    """Get the cached schema service if a database was available at startup."""
    return getattr(request.app.state, "schema_service", None)


def get_query_service(request: Request) -> QueryService:
    """
    Dependency to get a QueryService instance.

    Builds the orchestrator over the shared clients and store:
    QueryService
      ├── SQLGenerationRepository (streamed generation)
      ├── SQLExecutionRepository (read-only execution)
      ├── ConversationStore (shared, per-session history)
      └── SchemaService (shared, cached schema context; optional)

    Raises:
        ServiceUnavailableError: If the LLM or database client is unavailable
        RuntimeError: If settings or the store are not initialized
    """
    settings = get_settings(request)
    store = get_conversation_store(request)

    llm_client = get_llm_client_optional(request)
    if llm_client is None or not llm_client.is_connected():
        raise ServiceUnavailableError("Text generation service is not available")

    db_client = get_db_client_optional(request)
    if db_client is None or not db_client.is_connected():
        raise ServiceUnavailableError("Database service is not available")

    sql_generation_repo = SQLGenerationRepository(llm_client=llm_client)

    sql_execution_repo = SQLExecutionRepository(
        db_client=db_client,
        timeout_seconds=settings.database.query_timeout_seconds,
        read_only=True,
    )

    return QueryService(
        sql_generation_repository=sql_generation_repo,
        sql_execution_repository=sql_execution_repo,
        conversation_store=store,
        config=settings.query,
        schema_service=get_schema_service_optional(request),
    )


# Type aliases for cleaner dependency injection
# Service dependencies (used in API routes)
QueryServiceDep = Annotated[QueryService, Depends(get_query_service)]
ConversationStoreDep = Annotated[ConversationStore, Depends(get_conversation_store)]
SettingsDep = Annotated[Settings, Depends(get_settings)]

# Optional client dependencies (used in health checks)
OptionalDatabaseClientDep = Annotated[Optional[DatabaseClient], Depends(get_db_client_optional)]
OptionalLLMClientDep = Annotated[Optional[LLMClient], Depends(get_llm_client_optional)]
