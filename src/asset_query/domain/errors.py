"""
Custom exception hierarchy for the asset query service.

This module defines the exception hierarchy with:
- Consistent error codes for API responses
- HTTP status code mappings for FastAPI
- Detailed error messages for debugging

Exception Categories (all 5xx):
- DatabaseError: connection and query failures
- LLMError: text-generation failures, including the generation deadline
- ServiceUnavailableError: a required client is not connected

Errors raised before a query stream starts become JSON error responses.
Once streaming has begun, the query service converts them into a terminal
stream event instead, so the client always sees one channel.

Usage:
    raise DatabaseConnectionError("Failed to connect to database")
    raise LLMError("Generation deadline exceeded", details={"deadline_seconds": 60})
"""

from typing import Any, Dict, Optional


class AssetQueryException(Exception):
    """
    Base exception for all service errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable error code (e.g., "DATABASE_CONNECTION_ERROR")
        http_status: HTTP status code to return (default: 500)
        details: Optional dictionary with additional error context
    """

    error_code: str = "INTERNAL_ERROR"
    http_status: int = 500

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None,
        http_status: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if error_code:
            self.error_code = error_code
        if http_status:
            self.http_status = http_status


# =============================================================================
# Database Errors (5xx)
# =============================================================================


class DatabaseError(AssetQueryException):
    """
    Base class for database-related errors.

    HTTP Status: 503 Service Unavailable
    """

    error_code = "DATABASE_ERROR"
    http_status = 503


class DatabaseConnectionError(DatabaseError):
    """
    Raised when database connection fails.

    HTTP Status: 503 Service Unavailable

    Examples:
        - Connection timeout
        - Authentication failure
        - Pool not initialised
    """

    error_code = "DATABASE_CONNECTION_ERROR"
    http_status = 503


class DatabaseQueryError(DatabaseError):
    """
    Raised when database query execution fails.

    HTTP Status: 500 Internal Server Error

    Examples:
        - SQL syntax error
        - Table/column not found
        - Write attempted inside a read-only transaction
    """

    error_code = "DATABASE_QUERY_ERROR"
    http_status = 500


# =============================================================================
# LLM Errors (5xx)
# =============================================================================


class LLMError(AssetQueryException):
    """
    Raised when the text-generation service fails.

    HTTP Status: 503 Service Unavailable

    Examples:
        - Inference server unreachable
        - Stream broken mid-reply
        - Generation deadline exceeded
        - Input larger than the configured character budget
    """

    error_code = "LLM_ERROR"
    http_status = 503


class GenerationTimeoutError(LLMError):
    """
    Raised when one streamed model reply exceeds the generation deadline.

    HTTP Status: 504 Gateway Timeout
    """

    error_code = "GENERATION_TIMEOUT"
    http_status = 504


# =============================================================================
# Service Unavailable (5xx)
# =============================================================================


class ServiceUnavailableError(AssetQueryException):
    """
    Raised when a required service is not available.

    HTTP Status: 503 Service Unavailable

    Examples:
        - Database client not connected
        - LLM client not initialized
    """

    error_code = "SERVICE_UNAVAILABLE"
    http_status = 503
