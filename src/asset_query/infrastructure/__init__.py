"""
Infrastructure layer for external integrations.

This module contains the clients for the PostgreSQL database and the
OpenAI-compatible text-generation server.
"""

from .database_client import DatabaseClient
from .llm_client import LLMClient

__all__ = ["DatabaseClient", "LLMClient"]
