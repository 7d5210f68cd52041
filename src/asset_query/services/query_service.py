"""
Query Service - retry-governed driver for natural language to SQL.

This service is a THIN ORCHESTRATOR that coordinates repositories:
1. ConversationStore - per-session bounded history and locking
2. SQLGenerationRepository - streamed model replies
3. sql_extraction / sql_validation - statement extraction and classification
4. SQLExecutionRepository - read-only execution
5. SchemaService - optional schema context for the system instruction

Loop (per attempt, up to max_attempts):
    stream reply -> record reply -> extract -> classify -> execute
- No statement found: retry notice, next attempt
- Kind not permitted: rejected, stop
- Mutating kind without confirmation: confirmation required, stop
- Execution failed: correction request added to history, next attempt
- Executed: success with {query, data}, stop

Key principles:
- Every invocation ends with exactly one terminal event
- Text-generation failures, deadline expiry and unexpected errors are not
  retried; they end the stream with a FAILED event
"""

import asyncio
from contextlib import aclosing
from typing import AsyncIterator, FrozenSet, List, Optional

from ..config import QueryConfig
from ..config_constants import DEFAULT_SESSION_ID
from ..constants import CORRECTION_TEMPLATE, PROMPT_PREFIX
from ..domain.attempt import GenerationAttempt
from ..domain.base_enums import AttemptOutcome, QueryKind, Role, READ_ONLY_KINDS
from ..domain.errors import GenerationTimeoutError, LLMError
from ..domain.events import QueryEvent
from ..repositories.conversation_store import ConversationStore
from ..repositories.sql_execution import SQLExecutionRepository
from ..repositories.sql_extraction import extract_sql
from ..repositories.sql_generation import SQLGenerationRepository
from ..repositories.sql_validation import (
    StatementClassifier,
    classify_statement,
    is_mutating,
    is_permitted,
)
from ..services.schema_service import SchemaService
from ..utils.logging import get_module_logger
from ..utils.tracing import current_trace_id, session_scope

logger = get_module_logger()

LLM_FAILURE_MESSAGE = "Text generation service is unavailable. Please try again later."
DEADLINE_MESSAGE = "Text generation timed out. Please try again."
UNEXPECTED_FAILURE_MESSAGE = "Unexpected error while processing the query."


class QueryService:
    """
    Main orchestrator for the guarded query loop.

    The permitted kinds and the classifier are injectable so a future
    write-enabled mode can relax the read-only policy without touching
    the loop. Settings never relax it.
    """

    def __init__(
        self,
        sql_generation_repository: SQLGenerationRepository,
        sql_execution_repository: SQLExecutionRepository,
        conversation_store: ConversationStore,
        config: QueryConfig,
        schema_service: Optional[SchemaService] = None,
        permitted_kinds: FrozenSet[QueryKind] = READ_ONLY_KINDS,
        classifier: StatementClassifier = classify_statement,
    ):
        self.generation_repo = sql_generation_repository
        self.execution_repo = sql_execution_repository
        self.store = conversation_store
        self.config = config
        self.schema_service = schema_service
        self.permitted_kinds = frozenset(permitted_kinds)
        self.classifier = classifier

    async def generate_and_run(
        self,
        prompt: str,
        confirm_update: bool = False,
        session_id: str = DEFAULT_SESSION_ID,
    ) -> AsyncIterator[QueryEvent]:
        """
        Run the loop for one prompt and stream its events.

        Args:
            prompt: Natural language question (non-empty)
            confirm_update: Caller's confirmation for mutating statements
            session_id: Conversation whose history the prompt joins

        Yields:
            Progress events, then exactly one terminal event
        """
        trace_id = current_trace_id()

        async with self.store.session_lock(session_id):
            with session_scope(session_id):
                logger.info(
                    "Starting query loop",
                    prompt_length=len(prompt),
                    confirm_update=confirm_update,
                    max_attempts=self.config.max_attempts,
                    trace_id=trace_id,
                )

                attempts: List[GenerationAttempt] = []
                try:
                    async with aclosing(self._run(prompt, confirm_update, session_id, attempts)) as events:
                        async for event in events:
                            yield event

                except GenerationTimeoutError as e:
                    logger.error(
                        "Generation deadline exceeded",
                        error=e.message,
                        attempts=len(attempts),
                        trace_id=trace_id,
                        exc_info=True,
                    )
                    yield QueryEvent.failed(DEADLINE_MESSAGE, attempt=len(attempts) or None)

                except LLMError as e:
                    logger.error(
                        "Text generation failed",
                        error=e.message,
                        attempts=len(attempts),
                        trace_id=trace_id,
                        exc_info=True,
                    )
                    yield QueryEvent.failed(LLM_FAILURE_MESSAGE, attempt=len(attempts) or None)

                except Exception as e:
                    logger.error(
                        "Query loop failed",
                        error=str(e),
                        error_type=type(e).__name__,
                        attempts=len(attempts),
                        trace_id=trace_id,
                        exc_info=True,
                    )
                    yield QueryEvent.failed(UNEXPECTED_FAILURE_MESSAGE, attempt=len(attempts) or None)

                logger.info(
                    "Query loop finished",
                    attempt_outcomes=[a.outcome.value for a in attempts],
                    trace_id=trace_id,
                )

    async def _run(
        self,
        prompt: str,
        confirm_update: bool,
        session_id: str,
        attempts: List[GenerationAttempt],
    ) -> AsyncIterator[QueryEvent]:
        trace_id = current_trace_id()

        self.store.append(session_id, Role.USER, PROMPT_PREFIX + prompt)
        schema_context = await self._schema_context()

        while len(attempts) < self.config.max_attempts:
            attempt = GenerationAttempt(index=len(attempts) + 1)
            attempts.append(attempt)

            logger.info(
                f"SQL generation attempt {attempt.index}/{self.config.max_attempts}",
                trace_id=trace_id,
            )

            history = self.store.get(session_id)
            async with aclosing(self._stream_with_deadline(history, schema_context)) as fragments:
                async for fragment in fragments:
                    attempt.fragments.append(fragment)
                    yield QueryEvent.fragment(fragment, attempt.index)

            # Model replies are recorded under the user role
            self.store.append(session_id, Role.USER, attempt.raw_output)

            logger.debug(
                "Model reply received",
                attempt=attempt.index,
                reply=attempt.raw_output,
                trace_id=trace_id,
            )

            attempt.sql = extract_sql(attempt.raw_output)
            if not attempt.sql:
                attempt.outcome = AttemptOutcome.NO_SQL
                logger.warning("No SQL found in model reply", attempt=attempt.index, trace_id=trace_id)
                yield QueryEvent.retry_notice(attempt.index)
                continue

            attempt.kind = self.classifier(attempt.sql)

            if not is_permitted(attempt.kind, self.permitted_kinds):
                attempt.outcome = AttemptOutcome.REJECTED
                logger.warning(
                    "Statement kind not permitted",
                    kind=attempt.kind.value,
                    attempt=attempt.index,
                    trace_id=trace_id,
                )
                yield QueryEvent.rejected(attempt.kind, attempt.index)
                return

            if is_mutating(attempt.kind) and not confirm_update:
                attempt.outcome = AttemptOutcome.NEEDS_CONFIRMATION
                logger.info(
                    "Mutating statement awaiting confirmation",
                    kind=attempt.kind.value,
                    attempt=attempt.index,
                    trace_id=trace_id,
                )
                yield QueryEvent.confirmation_required(attempt.index)
                return

            outcome = await self.execution_repo.execute(attempt.sql)

            if outcome.success:
                attempt.outcome = AttemptOutcome.EXECUTED
                attempt.row_count = outcome.row_count
                logger.info(
                    "Query loop succeeded",
                    attempt=attempt.index,
                    kind=attempt.kind.value,
                    row_count=outcome.row_count,
                    trace_id=trace_id,
                )
                yield QueryEvent.success(attempt.sql, outcome.rows, attempt.index)
                return

            attempt.outcome = AttemptOutcome.EXECUTION_FAILED
            attempt.execution_error = outcome.error or "unknown error"
            self.store.append(
                session_id,
                Role.USER,
                CORRECTION_TEMPLATE.format(error=attempt.execution_error),
            )
            yield QueryEvent.execution_error(attempt.execution_error, attempt.index)

        logger.warning(
            "Query loop exhausted attempts",
            max_attempts=self.config.max_attempts,
            trace_id=trace_id,
        )
        yield QueryEvent.exhausted(self.config.max_attempts)

    async def _stream_with_deadline(self, history, schema_context: str) -> AsyncIterator[str]:
        """
        Relay reply fragments, bounding the whole reply by one deadline.

        The deadline covers waiting on the model only; time the consumer
        spends between fragments is outside the timeout scope.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.config.generation_deadline_seconds
        stream = self.generation_repo.stream_reply(history, schema_context)

        try:
            while True:
                try:
                    async with asyncio.timeout_at(deadline):
                        fragment = await anext(stream, None)
                except TimeoutError as e:
                    raise GenerationTimeoutError(
                        "Generation deadline exceeded",
                        details={"deadline_seconds": self.config.generation_deadline_seconds},
                    ) from e

                if fragment is None:
                    return
                yield fragment
        finally:
            await stream.aclose()

    async def _schema_context(self) -> str:
        if not self.config.include_schema_context or self.schema_service is None:
            return ""
        return await self.schema_service.get_schema_context()
