"""Tests for the HTTP AI client."""

import json
from unittest.mock import patch

import httpx
import pytest

from expertise_engine.api.documents import get_record_store
from expertise_engine.core.background import drain_background
from expertise_engine.core.errors import UpstreamError
from expertise_engine.core.interview_session import InterviewSession, SessionPhase
from expertise_engine.core.schemas_documents import EditOperation
from expertise_engine.core.schemas_interviews import (
    ChatMessage,
    InterviewContext,
    InterviewPromptContext,
    TurnRole,
)
from expertise_engine.core.schemas_playbooks import PlaybookType, SourceDocument, SynthesisRequest
from expertise_engine.core.stream_frames import Dialect, EventKind, iter_stream_events
from expertise_engine.main import app
from expertise_engine.services.ai_client import HttpAIClient
from tests.fakes.fake_anthropic import mock_anthropic_client, mock_anthropic_stream

BASE_URL = "http://engine.test/v1"

MESSAGES = [ChatMessage(role=TurnRole.USER, content="Hello")]
PROMPT_CONTEXT = InterviewPromptContext(process_to_document="Case Study: Acme renewal")


def _client(handler) -> HttpAIClient:
    return HttpAIClient(BASE_URL, transport=httpx.MockTransport(handler))


async def _collect(chunks) -> list[bytes]:
    return [chunk async for chunk in chunks]


# ============================================================================
# MockTransport
# ============================================================================


@pytest.mark.asyncio
async def test_stream_chat_posts_transcript_and_yields_bytes():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, content=b'data: {"text": "Hi"}\n\ndata: [DONE]\n\n')

    async with _client(handler) as client:
        events = [e async for e in iter_stream_events(client.stream_chat(MESSAGES, PROMPT_CONTEXT), Dialect.SIMPLE)]

    assert seen["path"] == "/v1/interviews/chat"
    assert seen["body"]["messages"] == [{"role": "user", "content": "Hello"}]
    assert seen["body"]["context"]["process_to_document"] == "Case Study: Acme renewal"
    assert [(e.kind, e.text) for e in events] == [(EventKind.TOKEN, "Hi"), (EventKind.COMPLETE, "")]


@pytest.mark.asyncio
async def test_stream_error_status_raises_with_detail():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"detail": "Anthropic API key not configured"})

    async with _client(handler) as client:
        with pytest.raises(UpstreamError, match="Anthropic API key not configured"):
            await _collect(client.stream_chat(MESSAGES, PROMPT_CONTEXT))


@pytest.mark.asyncio
async def test_stream_synthesis_sends_request_model():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, content=b'event: complete\ndata: {"content": "# P"}\n\n')

    request = SynthesisRequest(
        playbook_type=PlaybookType.SALES_PLAYBOOK,
        sources=[SourceDocument(id="d1", title="T", content="C")],
    )
    async with _client(handler) as client:
        chunks = await _collect(client.stream_synthesis(request))

    assert seen["path"] == "/v1/playbooks/synthesize"
    assert seen["body"]["playbook_type"] == "sales-playbook"
    assert seen["body"]["sources"][0]["id"] == "d1"
    assert b"".join(chunks).startswith(b"event: complete")


@pytest.mark.asyncio
async def test_complete_once_and_suggest_edit():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/interviews/document"):
            return httpx.Response(200, json={"document": "# Doc"})
        body = json.loads(request.content)
        assert body == {"selected_text": "teh", "operation": "fix-grammar"}
        return httpx.Response(200, json={"text": "the"})

    async with _client(handler) as client:
        assert await client.complete_once(MESSAGES, PROMPT_CONTEXT) == "# Doc"
        assert await client.suggest_edit("teh", EditOperation.FIX_GRAMMAR) == "the"


@pytest.mark.asyncio
async def test_one_shot_error_uses_server_message():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502, json={"detail": "AI service rate limit exceeded. Please try again later."})

    async with _client(handler) as client:
        with pytest.raises(UpstreamError) as exc_info:
            await client.complete_once(MESSAGES, PROMPT_CONTEXT)

    assert exc_info.value.message == "AI service rate limit exceeded. Please try again later."


@pytest.mark.asyncio
async def test_error_without_json_body_falls_back_to_status():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="Service Unavailable")

    async with _client(handler) as client:
        with pytest.raises(UpstreamError, match="HTTP 503"):
            await client.request_summary("doc-1")


@pytest.mark.asyncio
async def test_connection_failure_is_upstream():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with _client(handler) as client:
        with pytest.raises(UpstreamError):
            await client.request_summary("doc-1")
        with pytest.raises(UpstreamError):
            await _collect(client.stream_chat(MESSAGES, PROMPT_CONTEXT))


# ============================================================================
# Against the real app
# ============================================================================


@pytest.mark.asyncio
async def test_interview_session_over_http(store):
    context = InterviewContext(
        title="Acme renewal rescue",
        description="How we saved the Acme renewal after their champion left mid-cycle",
        expert_name="Dana",
    )
    summary_json = json.dumps(
        {
            "executive_summary": "Saved the renewal",
            "key_insights": "Find a second champion",
            "tactical_details": "Mapped stakeholders",
            "challenges_solutions": "Budget freeze",
            "topics": ["champion-departure"],
            "skill_areas": ["stakeholder-mapping"],
        }
    )
    app.dependency_overrides[get_record_store] = lambda: store

    try:
        with patch(
            "expertise_engine.chains.interview_chat.get_anthropic_client",
            side_effect=lambda: mock_anthropic_stream("Tell me ", "what happened."),
        ), patch(
            "expertise_engine.chains.generate_document.get_anthropic_client",
            return_value=mock_anthropic_client("# Acme Renewal\n\nWe found a new sponsor."),
        ), patch(
            "expertise_engine.chains.generate_ai_summary.get_anthropic_client",
            return_value=mock_anthropic_client(summary_json),
        ):
            async with HttpAIClient(BASE_URL, transport=httpx.ASGITransport(app=app)) as ai_client:
                session = InterviewSession(store, ai_client, user_id="user-1")

                assert (await session.start(context)).ok
                assert (await session.send_user_turn("Our champion resigned in March")).ok
                outcome = await session.finalize()
                await drain_background()
    finally:
        app.dependency_overrides.pop(get_record_store, None)

    assert outcome.ok, outcome.message
    assert session.phase == SessionPhase.COMPLETED
    assert [t.content for t in store.turns[session.session_id]] == [
        "Tell me what happened.",
        "Our champion resigned in March",
        "Tell me what happened.",
    ]
    assert "We found a new sponsor." in outcome.value.plain_text
    assert store.summaries[outcome.value.id].topics == ["champion-departure"]
