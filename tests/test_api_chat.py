"""
Tests for the chat and health endpoints

The orchestrator on app.state is replaced with a mock, so these tests
cover request handling, error mapping and SSE output only.
"""
import json
from unittest.mock import AsyncMock, Mock

import pytest
from fastapi.testclient import TestClient

from dataroom_rag.core.errors import PipelineCancelledError, PipelineDisposedError
from dataroom_rag.main import create_app
from dataroom_rag.schemas.intent import SearchStrategy
from dataroom_rag.schemas.retrieval import Source
from dataroom_rag.services.metadata_tracker import ChatMetadataTracker
from dataroom_rag.services.streaming import StreamingAnswer
from dataroom_rag.utils.cancellation import CancellationSignal

URL = "/api/v1/datarooms/room-1/chat"
BODY = {
    "query": "What is the rent on page 3?",
    "documents": [{"document_id": "doc-1", "document_name": "Lease", "num_pages": 10}],
    "strategy": "PageQueryStrategy",
    "query_extraction": {"page_numbers": [3]},
    "chat_session_id": "s-1",
}


def _frames(text):
    return [json.loads(line[len("data: "):]) for line in text.splitlines() if line.startswith("data: ")]


@pytest.fixture
def app():
    app = create_app(use_lifespan=False)
    app.state.orchestrator = Mock()
    app.state.orchestrator.is_disposed = False
    app.state.chat_storage = AsyncMock()
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


class TestChatEndpoint:

    def test_streams_answer_as_sse(self, app, client):
        source = Source(document_id="doc-1", document_name="Lease", chunk_id="c1", page_number=3)

        async def answer(**kwargs):
            async def deltas():
                yield "Rent is "
                yield "5000."
            return StreamingAnswer(deltas(), sources=[source])

        app.state.orchestrator.process_query = AsyncMock(side_effect=answer)

        response = client.post(URL, json=BODY)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["x-answer-kind"] == "answer"
        frames = _frames(response.text)
        assert frames[0]["sources"][0]["chunk_id"] == "c1"
        assert "".join(f["delta"] for f in frames if f["type"] == "text-delta") == "Rent is 5000."
        assert frames[-1] == {"type": "finish", "aborted": False}

    def test_passes_request_to_orchestrator(self, app, client):
        app.state.orchestrator.process_query = AsyncMock(return_value=StreamingAnswer.from_text("ok"))

        client.post(URL, json=BODY)

        kwargs = app.state.orchestrator.process_query.await_args.kwargs
        assert kwargs["dataroom_id"] == "room-1"
        assert kwargs["strategy"] == SearchStrategy.PAGE_QUERY
        assert kwargs["query_extraction"].page_numbers == [3]
        assert kwargs["indexed_documents"][0].num_pages == 10
        assert kwargs["chat_session_id"] == "s-1"
        assert isinstance(kwargs["abort_signal"], CancellationSignal)
        assert isinstance(kwargs["metadata_tracker"], ChatMetadataTracker)
        assert kwargs["timeout_ms"] > 0
        app.state.chat_storage.add_message.assert_awaited_once_with(
            session_id="s-1", role="user", content=BODY["query"],
        )

    def test_disposed_maps_to_503(self, app, client):
        app.state.orchestrator.process_query = AsyncMock(side_effect=PipelineDisposedError("gone"))
        assert client.post(URL, json=BODY).status_code == 503

    def test_cancelled_maps_to_499(self, app, client):
        app.state.orchestrator.process_query = AsyncMock(side_effect=PipelineCancelledError("stop"))
        assert client.post(URL, json=BODY).status_code == 499

    def test_empty_query_rejected(self, client):
        assert client.post(URL, json={**BODY, "query": ""}).status_code == 422

    def test_not_ready_without_orchestrator(self, app, client):
        app.state.orchestrator = None
        assert client.post(URL, json=BODY).status_code == 503


class TestHistoryAndHealth:

    def test_history(self, app, client):
        app.state.chat_storage.list_messages = AsyncMock(return_value=[{"role": "user", "content": "hi"}])

        response = client.get("/api/v1/datarooms/room-1/chat/sessions/s-1/messages")

        assert response.status_code == 200
        assert response.json()["messages"] == [{"role": "user", "content": "hi"}]

    def test_health(self, app, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json()["accepting_queries"] is True

        app.state.orchestrator.is_disposed = True
        assert client.get("/api/health").json()["accepting_queries"] is False
