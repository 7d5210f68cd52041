"""
Unit tests for the guarded query loop.

The generation and execution repositories are replaced by scripted fakes
so every branch of the loop can be driven without a model or database.
"""

import asyncio
from typing import List

import pytest

from asset_query.config import QueryConfig
from asset_query.constants import PROMPT_PREFIX
from asset_query.domain.base_enums import QueryEventType, QueryKind, Role, READ_ONLY_KINDS, TERMINAL_EVENT_TYPES
from asset_query.domain.errors import LLMError
from asset_query.domain.events import QueryEvent
from asset_query.domain.responses import ExecutionOutcome
from asset_query.repositories.conversation_store import ConversationStore
from asset_query.services.query_service import (
    DEADLINE_MESSAGE,
    LLM_FAILURE_MESSAGE,
    UNEXPECTED_FAILURE_MESSAGE,
    QueryService,
)


class Hang:
    """Reply that never finishes."""


class FakeGenerationRepository:
    """Replays scripted replies; each is a fragment list, optionally ending in an exception."""

    def __init__(self, replies):
        self.replies = list(replies)
        self.calls = []

    async def stream_reply(self, history, schema_context=""):
        self.calls.append({"history": list(history), "schema_context": schema_context})
        reply = self.replies.pop(0)
        for part in reply:
            if isinstance(part, Exception):
                raise part
            if isinstance(part, Hang):
                await asyncio.sleep(10)
            yield part


class FakeExecutionRepository:
    """Returns scripted outcomes and records the SQL it was asked to run."""

    def __init__(self, outcomes=()):
        self.outcomes = list(outcomes)
        self.executed: List[str] = []

    async def execute(self, sql):
        self.executed.append(sql)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeSchemaService:

    def __init__(self, context):
        self.context = context

    async def get_schema_context(self):
        return self.context


ASSET_ROWS = [
    {"id": 1, "name": "ThinkPad T14", "status": "assigned"},
    {"id": 2, "name": "Dell U2720Q", "status": "in_stock"},
    {"id": 3, "name": "iPhone 13", "status": "repair"},
]


def build_service(replies, outcomes=(), store=None, **kwargs):
    config = QueryConfig(**{"include_schema_context": False, **kwargs.pop("config", {})})
    generation = FakeGenerationRepository(replies)
    execution = FakeExecutionRepository(outcomes)
    service = QueryService(
        sql_generation_repository=generation,
        sql_execution_repository=execution,
        conversation_store=store or ConversationStore(),
        config=config,
        **kwargs,
    )
    return service, generation, execution


async def collect(service, prompt="show all assets", **kwargs) -> List[QueryEvent]:
    return [event async for event in service.generate_and_run(prompt, **kwargs)]


def types_of(events):
    return [event.type for event in events]


def assert_single_terminal(events):
    terminal = [event for event in events if event.type in TERMINAL_EVENT_TYPES]
    assert len(terminal) == 1
    assert events[-1] is terminal[0]


class TestSuccessfulRuns:

    @pytest.mark.asyncio
    async def test_show_all_assets_end_to_end(self):
        service, generation, execution = build_service(
            replies=[["```sql\nSELECT * FROM ", "Asset_Master;\n```"]],
            outcomes=[ExecutionOutcome.ok(ASSET_ROWS, 4.2)],
        )

        events = await collect(service, "show all assets")

        assert types_of(events) == [
            QueryEventType.FRAGMENT,
            QueryEventType.FRAGMENT,
            QueryEventType.SUCCESS,
        ]
        assert [e.text for e in events[:2]] == ["```sql\nSELECT * FROM ", "Asset_Master;\n```"]
        assert events[-1].result.query == "SELECT * FROM Asset_Master"
        assert events[-1].result.data == ASSET_ROWS
        assert execution.executed == ["SELECT * FROM Asset_Master"]
        assert_single_terminal(events)

    @pytest.mark.asyncio
    async def test_prompt_and_reply_recorded_under_user_role(self):
        store = ConversationStore()
        service, _, _ = build_service(
            replies=[["SELECT * FROM Assets"]],
            outcomes=[ExecutionOutcome.ok([], 1.0)],
            store=store,
        )

        await collect(service, "show all assets", session_id="desk")

        history = store.get("desk")
        assert [m.content for m in history] == [
            PROMPT_PREFIX + "show all assets",
            "SELECT * FROM Assets",
        ]
        assert all(m.role == Role.USER for m in history)

    @pytest.mark.asyncio
    async def test_prose_then_with_query_retries_once(self):
        store = ConversationStore()
        service, generation, execution = build_service(
            replies=[
                ["I'm not sure which table holds that."],
                ["WITH assigned AS (SELECT * FROM Assets WHERE status = 'assigned') ", "SELECT * FROM assigned"],
            ],
            outcomes=[ExecutionOutcome.ok(ASSET_ROWS[:1], 2.0)],
            store=store,
        )

        events = await collect(service, "which assets are assigned?")

        assert types_of(events) == [
            QueryEventType.FRAGMENT,
            QueryEventType.RETRY_NOTICE,
            QueryEventType.FRAGMENT,
            QueryEventType.FRAGMENT,
            QueryEventType.SUCCESS,
        ]
        assert execution.executed[0].startswith("WITH assigned AS")
        assert len(store.get("default")) == 3
        # Second attempt saw the first reply in its history
        assert generation.calls[1]["history"][-1].content == "I'm not sure which table holds that."
        assert_single_terminal(events)

    @pytest.mark.asyncio
    async def test_correction_request_fed_back_to_model(self):
        store = ConversationStore()
        service, generation, execution = build_service(
            replies=[["SELECT * FROM Asset"], ["SELECT * FROM Assets"]],
            outcomes=[
                ExecutionOutcome.failed('relation "asset" does not exist'),
                ExecutionOutcome.ok(ASSET_ROWS, 3.0),
            ],
            store=store,
        )

        events = await collect(service)

        assert types_of(events) == [
            QueryEventType.FRAGMENT,
            QueryEventType.EXECUTION_ERROR,
            QueryEventType.FRAGMENT,
            QueryEventType.SUCCESS,
        ]
        assert events[1].text == '[ERROR] SQL query failed: relation "asset" does not exist'

        correction = generation.calls[1]["history"][-1]
        assert correction.role == Role.USER
        assert correction.content == (
            'The SQL query failed with the error:\nrelation "asset" does not exist\n'
            "Please correct and regenerate the SQL."
        )
        assert execution.executed == ["SELECT * FROM Asset", "SELECT * FROM Assets"]


class TestExhaustion:

    @pytest.mark.asyncio
    async def test_three_execution_failures_exhaust_budget(self):
        store = ConversationStore()
        service, _, execution = build_service(
            replies=[["SELECT * FROM Assetz"]] * 3,
            outcomes=[ExecutionOutcome.failed('relation "assetz" does not exist')] * 3,
            store=store,
        )

        events = await collect(service)

        assert len(execution.executed) == 3
        assert types_of(events).count(QueryEventType.EXECUTION_ERROR) == 3
        assert events[-1].type == QueryEventType.EXHAUSTED
        assert events[-1].text == "[ERROR] Failed to generate and execute a valid SQL query after 3 attempts."
        # prompt + (reply + correction) per attempt
        assert len(store.get("default")) == 7
        assert_single_terminal(events)

    @pytest.mark.asyncio
    async def test_no_sql_on_every_attempt(self):
        service, _, execution = build_service(replies=[["I cannot answer that."]] * 3)

        events = await collect(service)

        assert types_of(events).count(QueryEventType.RETRY_NOTICE) == 3
        assert events[-1].type == QueryEventType.EXHAUSTED
        assert execution.executed == []

    @pytest.mark.asyncio
    async def test_attempt_budget_is_configurable(self):
        service, _, execution = build_service(
            replies=[["SELECT 1"]],
            outcomes=[ExecutionOutcome.failed("boom")],
            config={"max_attempts": 1},
        )

        events = await collect(service)

        assert len(execution.executed) == 1
        assert events[-1].text.endswith("after 1 attempts.")


class TestStatementGuard:

    @pytest.mark.asyncio
    async def test_update_rejected_without_execution(self):
        service, _, execution = build_service(
            replies=[["```sql\nUPDATE Assets SET status = 'retired' WHERE id = 3\n```"]],
        )

        events = await collect(service, "retire the broken phone")

        assert types_of(events) == [QueryEventType.FRAGMENT, QueryEventType.REJECTED]
        assert events[-1].text == "[ERROR] Only SELECT and WITH queries allowed. Detected: update"
        assert execution.executed == []

    @pytest.mark.asyncio
    async def test_unknown_statement_rejected(self):
        service, _, execution = build_service(replies=[["```sql\nDROP TABLE Assets\n```"]])

        events = await collect(service)

        assert events[-1].type == QueryEventType.REJECTED
        assert events[-1].text.endswith("Detected: unknown")
        assert execution.executed == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("confirm_update", [False, True])
    @pytest.mark.parametrize("statement", [
        "INSERT INTO Assets (name) VALUES ('x')",
        "UPDATE Assets SET name = 'x'",
        "DELETE FROM Assets",
    ])
    async def test_confirmation_gate_unreachable_with_default_policy(self, statement, confirm_update):
        service, _, execution = build_service(replies=[[f"```sql\n{statement}\n```"]])

        events = await collect(service, confirm_update=confirm_update)

        assert events[-1].type == QueryEventType.REJECTED
        assert QueryEventType.CONFIRMATION_REQUIRED not in types_of(events)
        assert execution.executed == []

    @pytest.mark.asyncio
    async def test_relaxed_policy_requires_confirmation(self):
        service, _, execution = build_service(
            replies=[["```sql\nUPDATE Assets SET status = 'retired'\n```"]],
            permitted_kinds=READ_ONLY_KINDS | {QueryKind.UPDATE},
        )

        events = await collect(service, confirm_update=False)

        assert events[-1].type == QueryEventType.CONFIRMATION_REQUIRED
        assert execution.executed == []
        assert_single_terminal(events)

    @pytest.mark.asyncio
    async def test_relaxed_policy_with_confirmation_executes(self):
        service, _, execution = build_service(
            replies=[["```sql\nUPDATE Assets SET status = 'retired'\n```"]],
            outcomes=[ExecutionOutcome.ok([], 1.0)],
            permitted_kinds=READ_ONLY_KINDS | {QueryKind.UPDATE},
        )

        events = await collect(service, confirm_update=True)

        assert events[-1].type == QueryEventType.SUCCESS
        assert execution.executed == ["UPDATE Assets SET status = 'retired'"]

    @pytest.mark.asyncio
    async def test_injected_classifier_is_used(self):
        service, _, execution = build_service(
            replies=[["SELECT * FROM Assets"]],
            classifier=lambda sql: QueryKind.DELETE,
        )

        events = await collect(service)

        assert events[-1].type == QueryEventType.REJECTED
        assert execution.executed == []

    @pytest.mark.asyncio
    async def test_narrowed_policy_rejects_read_kind(self):
        service, _, execution = build_service(
            replies=[["```sql\nWITH t AS (SELECT 1) SELECT * FROM t\n```"]],
            permitted_kinds=frozenset({QueryKind.READ}),
        )

        events = await collect(service)

        assert events[-1].type == QueryEventType.REJECTED
        assert events[-1].text.endswith("Detected: with")
        assert execution.executed == []


class TestTransportFailures:

    @pytest.mark.asyncio
    async def test_llm_error_ends_stream_without_retry(self):
        store = ConversationStore()
        service, generation, execution = build_service(
            replies=[["SELECT", LLMError("LLM streaming failed: connection reset")], ["SELECT 1"]],
            store=store,
        )

        events = await collect(service)

        assert types_of(events) == [QueryEventType.FRAGMENT, QueryEventType.FAILED]
        assert events[-1].text == f"[ERROR] {LLM_FAILURE_MESSAGE}"
        assert len(generation.calls) == 1
        assert execution.executed == []
        # Partial reply is not recorded
        assert [m.content for m in store.get("default")] == [PROMPT_PREFIX + "show all assets"]
        assert_single_terminal(events)

    @pytest.mark.asyncio
    async def test_llm_error_after_retry_is_not_exhaustion(self):
        service, _, _ = build_service(
            replies=[["no sql here"], [LLMError("server went away")]],
        )

        events = await collect(service)

        assert types_of(events) == [
            QueryEventType.FRAGMENT,
            QueryEventType.RETRY_NOTICE,
            QueryEventType.FAILED,
        ]
        assert events[-1].attempt == 2

    @pytest.mark.asyncio
    async def test_generation_deadline(self):
        service, _, execution = build_service(
            replies=[["SELECT", Hang()]],
            config={"generation_deadline_seconds": 0.05},
        )

        events = await collect(service)

        assert types_of(events) == [QueryEventType.FRAGMENT, QueryEventType.FAILED]
        assert events[-1].text == f"[ERROR] {DEADLINE_MESSAGE}"
        assert execution.executed == []

    @pytest.mark.asyncio
    async def test_unexpected_error_becomes_failed_event(self):
        service, _, _ = build_service(
            replies=[["SELECT * FROM Assets"]],
            outcomes=[RuntimeError("pool exploded")],
        )

        events = await collect(service)

        assert events[-1].type == QueryEventType.FAILED
        assert events[-1].text == f"[ERROR] {UNEXPECTED_FAILURE_MESSAGE}"
        assert "pool exploded" not in events[-1].text
        assert_single_terminal(events)


class TestSchemaContextAndSessions:

    @pytest.mark.asyncio
    async def test_schema_context_passed_when_enabled(self):
        service, generation, _ = build_service(
            replies=[["SELECT 1"]],
            outcomes=[ExecutionOutcome.ok([], 1.0)],
            schema_service=FakeSchemaService("Table: Assets\n- id (integer)"),
            config={"include_schema_context": True},
        )

        await collect(service)

        assert generation.calls[0]["schema_context"] == "Table: Assets\n- id (integer)"

    @pytest.mark.asyncio
    async def test_schema_context_skipped_when_disabled(self):
        service, generation, _ = build_service(
            replies=[["SELECT 1"]],
            outcomes=[ExecutionOutcome.ok([], 1.0)],
            schema_service=FakeSchemaService("Table: Assets"),
        )

        await collect(service)

        assert generation.calls[0]["schema_context"] == ""

    @pytest.mark.asyncio
    async def test_concurrent_requests_on_one_session_do_not_interleave(self):
        store = ConversationStore()
        service, _, _ = build_service(
            replies=[["SELECT ", "1"], ["SELECT ", "2"]],
            outcomes=[ExecutionOutcome.ok([], 1.0), ExecutionOutcome.ok([], 1.0)],
            store=store,
        )

        first, second = await asyncio.gather(
            collect(service, "first question"),
            collect(service, "second question"),
        )

        assert first[-1].type == QueryEventType.SUCCESS
        assert second[-1].type == QueryEventType.SUCCESS
        assert [m.content for m in store.get("default")] == [
            PROMPT_PREFIX + "first question",
            "SELECT 1",
            PROMPT_PREFIX + "second question",
            "SELECT 2",
        ]

    @pytest.mark.asyncio
    async def test_sessions_have_separate_histories(self):
        store = ConversationStore()
        service, _, _ = build_service(
            replies=[["SELECT 1"], ["SELECT 2"]],
            outcomes=[ExecutionOutcome.ok([], 1.0), ExecutionOutcome.ok([], 1.0)],
            store=store,
        )

        await collect(service, "for alice", session_id="alice")
        await collect(service, "for bob", session_id="bob")

        assert len(store.get("alice")) == 2
        assert store.get("bob")[0].content == PROMPT_PREFIX + "for bob"
