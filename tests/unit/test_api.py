"""
API tests for the FastAPI application.

The lifespan is not started: tests place the settings and the
conversation store on app.state themselves and override the query service
dependency with one built over scripted fakes.
"""

import json

import pytest
from fastapi.testclient import TestClient

from asset_query.api.dependencies import get_query_service
from asset_query.config import QueryConfig, get_settings
from asset_query.constants import PROMPT_PREFIX
from asset_query.domain.base_enums import QueryKind, READ_ONLY_KINDS
from asset_query.domain.responses import ExecutionOutcome
from asset_query.main import app
from asset_query.repositories.conversation_store import ConversationStore
from asset_query.services.query_service import QueryService


class ScriptedGeneration:

    def __init__(self, replies):
        self.replies = list(replies)

    async def stream_reply(self, history, schema_context=""):
        for fragment in self.replies.pop(0):
            yield fragment


class ScriptedExecution:

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)

    async def execute(self, sql):
        return self.outcomes.pop(0)


def sse_frames(body: str):
    """Split an event-stream body into its data payloads."""
    return [frame[len("data: "):] for frame in body.split("\n\n") if frame]


@pytest.fixture
def store():
    return ConversationStore()


@pytest.fixture
def client(store):
    app.state.settings = get_settings()
    app.state.conversation_store = store
    yield TestClient(app)
    app.dependency_overrides.clear()
    del app.state.settings
    del app.state.conversation_store


@pytest.fixture
def use_service(store):
    """Serve /query from a QueryService over scripted replies and outcomes."""

    def _install(replies, outcomes=(), **kwargs):
        service = QueryService(
            sql_generation_repository=ScriptedGeneration(replies),
            sql_execution_repository=ScriptedExecution(outcomes),
            conversation_store=store,
            config=QueryConfig(include_schema_context=False),
            **kwargs,
        )
        app.dependency_overrides[get_query_service] = lambda: service
        return service

    return _install


class TestRootAndHealth:

    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Asset Query API"
        assert body["version"] == "0.1.0"
        assert body["trace_id"]

    def test_health_without_clients_is_degraded(self, client, store):
        store.append("desk", "user", "hello")

        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "degraded"
        assert body["database_status"] == "not_configured"
        assert body["llm_service_status"] == "not_configured"
        assert body["active_sessions"] == 1

    def test_trace_id_echoed(self, client):
        response = client.get("/health", headers={"X-Trace-ID": "trace-1234"})

        assert response.headers["X-Trace-ID"] == "trace-1234"

    def test_trace_id_generated_when_absent(self, client):
        response = client.get("/health")

        assert response.headers["X-Trace-ID"]
        assert response.headers["X-Content-Type-Options"] == "nosniff"


class TestQueryEndpoint:

    def test_successful_stream(self, client, use_service):
        rows = [{"id": 1, "name": "ThinkPad T14"}, {"id": 2, "name": "Dell U2720Q"}]
        use_service(
            replies=[["```sql\nSELECT * FROM ", "Assets;\n```"]],
            outcomes=[ExecutionOutcome.ok(rows, 3.1)],
        )

        response = client.post("/query", json={"prompt": "show all assets"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["cache-control"] == "no-cache"

        frames = sse_frames(response.text)
        assert frames[0] == "```sql\\nSELECT * FROM "
        assert frames[1] == "Assets;\\n```"
        assert frames[2] == "[SUCCESS] SQL query executed successfully."
        assert json.loads(frames[3]) == {"query": "SELECT * FROM Assets", "data": rows}
        assert len(frames) == 4

    def test_rejected_statement_stream(self, client, use_service):
        use_service(replies=[["```sql\nDELETE FROM Assets\n```"]])

        response = client.post("/query", json={"prompt": "remove everything"})

        frames = sse_frames(response.text)
        assert frames[-1] == "[ERROR] Only SELECT and WITH queries allowed. Detected: delete"

    def test_camel_case_fields(self, client, use_service, store):
        use_service(
            replies=[["```sql\nUPDATE Assets SET status = 'retired'\n```"]],
            outcomes=[ExecutionOutcome.ok([], 1.0)],
            permitted_kinds=READ_ONLY_KINDS | {QueryKind.UPDATE},
        )

        response = client.post(
            "/query",
            json={"prompt": "retire it", "sessionId": "desk-7", "confirmUpdate": True},
        )

        assert sse_frames(response.text)[-2] == "[SUCCESS] SQL query executed successfully."
        assert store.peek("desk-7")[0].content == PROMPT_PREFIX + "retire it"
        assert store.peek("default") == []

    @pytest.mark.parametrize("payload", [{}, {"prompt": ""}])
    def test_missing_or_empty_prompt(self, client, use_service, payload):
        use_service(replies=[])

        response = client.post("/query", json=payload)

        assert response.status_code == 422
        body = response.json()
        assert body["error"] == "validation_error"
        assert body["details"]["errors"][0]["field"] == "body.prompt"

    def test_unavailable_services(self, client):
        response = client.post("/query", json={"prompt": "show all assets"})

        assert response.status_code == 503
        body = response.json()
        assert body["error"] == "service_unavailable"
        assert body["message"] == "Text generation service is not available"
        assert body["trace_id"] == response.headers["X-Trace-ID"]


class TestSessionHistory:

    def test_history_after_query(self, client, use_service):
        use_service(
            replies=[["SELECT * FROM Assets"]],
            outcomes=[ExecutionOutcome.ok([], 1.0)],
        )
        client.post("/query", json={"prompt": "show all assets", "sessionId": "ops"})

        response = client.get("/api/v1/sessions/ops/history")

        assert response.status_code == 200
        body = response.json()
        assert body["session_id"] == "ops"
        assert body["message_count"] == 2
        assert body["history_limit"] == 10
        assert body["messages"][1] == {"role": "user", "content": "SELECT * FROM Assets"}

    def test_unknown_session_is_not_created(self, client, store):
        response = client.get("/api/v1/sessions/nobody/history")

        assert response.json()["messages"] == []
        assert store.session_count() == 0
