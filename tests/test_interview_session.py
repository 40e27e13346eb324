"""Tests for the interview session state machine."""

import asyncio

import pytest

from expertise_engine.core.background import drain_background
from expertise_engine.core.document_model import content_to_markdown
from expertise_engine.core.errors import UpstreamError
from expertise_engine.core.interview_session import (
    InterviewSession,
    InterviewSessionConfig,
    SessionPhase,
    opening_message,
)
from expertise_engine.core.schemas_documents import DocumentFormat
from expertise_engine.core.schemas_interviews import (
    DocumentType,
    InterviewContext,
    InterviewStatus,
    InterviewTurn,
    TurnRole,
)
from tests.fakes.fake_ai_client import token_frames

USER_ID = "user-1"

DESCRIPTION = "How we saved the Acme renewal after their champion left mid-cycle"


def _context(**overrides) -> InterviewContext:
    fields = {
        "document_type": DocumentType.CASE_STUDY,
        "title": "Acme renewal rescue",
        "function_area": "Customer Success",
        "description": DESCRIPTION,
        "expert_name": "Dana",
        "expert_role": "CSM",
        "years_of_experience": 7,
    }
    fields.update(overrides)
    return InterviewContext(**fields)


def _session(store, ai_client, **kwargs) -> InterviewSession:
    return InterviewSession(store, ai_client, user_id=USER_ID, **kwargs)


async def _started(store, ai_client) -> InterviewSession:
    ai_client.queue_chat("What happened ", "first?")
    session = _session(store, ai_client)
    outcome = await session.start(_context())
    assert outcome.ok, outcome.message
    return session


# ============================================================================
# Happy path
# ============================================================================


@pytest.mark.asyncio
async def test_full_interview_produces_one_document(store, ai_client):
    session = await _started(store, ai_client)
    assert session.phase == SessionPhase.CONVERSING
    assert [(t.role, t.sequence_number) for t in store.turns[session.session_id]] == [
        (TurnRole.ASSISTANT, 1)
    ]

    ai_client.queue_chat("Interesting. ", "Who noticed first?")
    outcome = await session.send_user_turn("Tell me more")
    assert outcome.ok
    assert outcome.value.content == "Interesting. Who noticed first?"

    turns = store.turns[session.session_id]
    assert [(t.role, t.sequence_number) for t in turns] == [
        (TurnRole.ASSISTANT, 1),
        (TurnRole.USER, 2),
        (TurnRole.ASSISTANT, 3),
    ]
    assert turns[1].content == "Tell me more"

    ai_client.document_markdown = "# Acme Renewal\n\n## Situation\n- Champion left\n- Budget froze"
    outcome = await session.finalize()
    assert outcome.ok
    document = outcome.value

    assert session.phase == SessionPhase.COMPLETED
    assert store.writes_of("create_document") == [document.id]
    assert document.interview_id == session.session_id
    assert document.format == DocumentFormat.BLOCKS
    assert document.title == "Acme renewal rescue"
    assert document.is_shared is False
    assert "Champion left" in document.plain_text
    assert content_to_markdown(document.content, document.format).startswith("# Acme Renewal")

    stored = store.sessions[session.session_id]
    assert stored.status == InterviewStatus.COMPLETED
    assert stored.completed_at is not None

    await drain_background()
    assert ai_client.summary_calls == [document.id]


@pytest.mark.asyncio
async def test_opening_message_is_sent_but_not_persisted(store, ai_client):
    session = await _started(store, ai_client)

    messages, prompt_context = ai_client.chat_calls[0]
    assert len(messages) == 1
    assert messages[0].role == TurnRole.USER
    assert messages[0].content == opening_message(_context())
    assert "Case Study: How we saved" in messages[0].content
    assert prompt_context.expert_name == "Dana"
    assert prompt_context.role == "CSM"

    persisted = [t.content for t in store.turns[session.session_id]]
    assert messages[0].content not in persisted


@pytest.mark.asyncio
async def test_each_request_carries_full_history(store, ai_client):
    session = await _started(store, ai_client)
    ai_client.queue_chat("Go on")
    await session.send_user_turn("It started in March")

    messages, _ = ai_client.chat_calls[1]
    assert [(m.role, m.content) for m in messages] == [
        (TurnRole.USER, opening_message(_context())),
        (TurnRole.ASSISTANT, "What happened first?"),
        (TurnRole.USER, "It started in March"),
    ]


@pytest.mark.asyncio
async def test_tokens_reach_callback_in_order(store, ai_client):
    received = []
    ai_client.queue_chat("One ", "two ", "three")
    session = _session(store, ai_client, on_token=received.append)

    await session.start(_context())

    assert received == ["One ", "two ", "three"]
    assert session.live_text == ""


@pytest.mark.asyncio
async def test_sequence_numbers_stay_gapless(store, ai_client):
    session = await _started(store, ai_client)
    for answer in ["First", "Second", "Third"]:
        ai_client.queue_chat(f"Ack {answer}")
        assert (await session.send_user_turn(answer)).ok

    sequence = [t.sequence_number for t in store.turns[session.session_id]]
    assert sequence == list(range(1, 8))


# ============================================================================
# Guards
# ============================================================================


@pytest.mark.asyncio
async def test_short_description_is_rejected_without_writes(store, ai_client):
    session = _session(store, ai_client)

    outcome = await session.start(_context(description="Too short"))

    assert outcome.kind == "validation"
    assert store.writes == []
    assert ai_client.chat_calls == []
    assert session.phase == SessionPhase.COLLECTING_CONTEXT


@pytest.mark.asyncio
async def test_empty_message_is_rejected(store, ai_client):
    session = await _started(store, ai_client)
    writes_before = list(store.writes)

    outcome = await session.send_user_turn("   ")

    assert outcome.kind == "validation"
    assert store.writes == writes_before


@pytest.mark.asyncio
async def test_finalize_needs_minimum_turns(store, ai_client):
    session = await _started(store, ai_client)
    writes_before = list(store.writes)

    outcome = await session.finalize()

    assert outcome.kind == "validation"
    assert store.writes == writes_before
    assert ai_client.complete_calls == []
    assert session.phase == SessionPhase.CONVERSING


@pytest.mark.asyncio
async def test_send_before_start_is_illegal(store, ai_client):
    outcome = await _session(store, ai_client).send_user_turn("hello")

    assert outcome.kind == "illegal_transition"


@pytest.mark.asyncio
async def test_second_send_while_streaming_is_rejected(store, ai_client):
    session = await _started(store, ai_client)
    release = asyncio.Event()

    async def slow_stream(messages, context):
        yield token_frames("Still thinking")[0]
        await release.wait()
        yield b"data: [DONE]\n\n"

    ai_client.stream_chat = slow_stream
    first = asyncio.create_task(session.send_user_turn("First answer"))
    while not session.live_text:
        await asyncio.sleep(0)

    assert session.in_flight
    second = await session.send_user_turn("Second answer")
    assert second.kind == "illegal_transition"
    finalize = await session.finalize()
    assert finalize.kind == "illegal_transition"

    release.set()
    outcome = await first
    assert outcome.ok
    assert [t.content for t in store.turns[session.session_id]][1:] == ["First answer", "Still thinking"]


# ============================================================================
# Failures
# ============================================================================


@pytest.mark.asyncio
async def test_truncated_stream_persists_nothing_and_keeps_user_text(store, ai_client):
    session = await _started(store, ai_client)
    ai_client.queue_chat("Half an ans", done=False)

    outcome = await session.send_user_turn("My answer")

    assert outcome.kind == "stream_protocol"
    assert len(store.turns[session.session_id]) == 1
    assert session.pending_user_text == "My answer"
    assert session.transcript[-1].content == "My answer"
    assert session.phase == SessionPhase.CONVERSING
    assert not session.in_flight

    ai_client.queue_chat("Full answer")
    retried = await session.retry()
    assert retried.ok
    assert [t.sequence_number for t in store.turns[session.session_id]] == [1, 2, 3]
    assert session.pending_user_text is None


@pytest.mark.asyncio
async def test_transport_failure_mid_stream_is_upstream(store, ai_client):
    session = await _started(store, ai_client)
    ai_client.chat_streams.append([token_frames("partial")[0], UpstreamError("connection reset")])

    outcome = await session.send_user_turn("My answer")

    assert outcome.kind == "upstream"
    assert outcome.message == "connection reset"
    assert len(store.turns[session.session_id]) == 1


@pytest.mark.asyncio
async def test_failed_opening_turn_can_be_retried(store, ai_client):
    session = _session(store, ai_client)
    ai_client.queue_chat(done=False)

    outcome = await session.start(_context())
    assert outcome.kind == "stream_protocol"
    assert session.phase == SessionPhase.COLLECTING_CONTEXT

    ai_client.queue_chat("Welcome")
    assert (await session.start(_context())).ok
    assert len(store.writes_of("create_session")) == 1
    assert store.turns[session.session_id][0].sequence_number == 1


@pytest.mark.asyncio
async def test_finalize_failure_returns_to_conversing(store, ai_client):
    session = await _started(store, ai_client)
    ai_client.queue_chat("Next question")
    await session.send_user_turn("Answer")
    ai_client.document_markdown = UpstreamError("Overloaded")

    outcome = await session.finalize()

    assert outcome.kind == "upstream"
    assert session.phase == SessionPhase.CONVERSING
    assert store.writes_of("create_document") == []
    assert store.sessions[session.session_id].status == InterviewStatus.IN_PROGRESS

    ai_client.document_markdown = "# Recovered"
    assert (await session.finalize()).ok
    assert len(store.writes_of("create_document")) == 1


@pytest.mark.asyncio
async def test_finalize_after_partial_save_updates_same_document(store, ai_client):
    session = await _started(store, ai_client)
    ai_client.queue_chat("Next question")
    await session.send_user_turn("Answer")
    store.fail_on["set_session_status"] = ValueError("status write failed")

    assert (await session.finalize()).kind == "upstream"
    outcome = await session.finalize()

    assert outcome.ok
    assert len(store.writes_of("create_document")) == 1
    assert store.writes_of("update_document") == [outcome.value.id]


@pytest.mark.asyncio
async def test_finalize_of_deleted_interview_writes_no_document(store, ai_client):
    session = await _started(store, ai_client)
    ai_client.queue_chat("Next question")
    await session.send_user_turn("Answer")
    del store.sessions[session.session_id]

    outcome = await session.finalize()

    assert outcome.kind == "stale_reference"
    assert store.writes_of("create_document") == []
    assert store.writes_of("update_document") == []
    assert store.documents == {}
    assert session.phase == SessionPhase.CONVERSING


@pytest.mark.asyncio
async def test_summary_failure_does_not_affect_finalize(store, ai_client):
    session = await _started(store, ai_client)
    ai_client.queue_chat("Next question")
    await session.send_user_turn("Answer")
    ai_client.summary_error = UpstreamError("summary service down")

    outcome = await session.finalize()
    await drain_background()

    assert outcome.ok
    assert session.phase == SessionPhase.COMPLETED


# ============================================================================
# Resume
# ============================================================================


async def _stored_interview(store, user_id=USER_ID, status=InterviewStatus.IN_PROGRESS):
    record = await store.create_session(user_id, _context())
    await store.append_turn(record.id, InterviewTurn(role=TurnRole.ASSISTANT, content="Q1", sequence_number=1))
    await store.append_turn(record.id, InterviewTurn(role=TurnRole.USER, content="A1", sequence_number=2))
    await store.append_turn(record.id, InterviewTurn(role=TurnRole.ASSISTANT, content="Q2", sequence_number=3))
    if status == InterviewStatus.COMPLETED:
        await store.set_session_status(record.id, status)
    return record


@pytest.mark.asyncio
async def test_resume_continues_sequence(store, ai_client):
    record = await _stored_interview(store)
    session = _session(store, ai_client)

    outcome = await session.resume(record.id, expert_name="Dana")
    assert outcome.ok
    assert [t.content for t in outcome.value] == ["Q1", "A1", "Q2"]
    assert session.phase == SessionPhase.CONVERSING
    assert session.context.description == DESCRIPTION

    ai_client.queue_chat("Q3")
    assert (await session.send_user_turn("A2")).ok
    assert [t.sequence_number for t in store.turns[record.id]] == [1, 2, 3, 4, 5]


@pytest.mark.asyncio
async def test_resume_other_users_interview_is_denied(store, ai_client):
    record = await _stored_interview(store, user_id="someone-else")

    outcome = await _session(store, ai_client).resume(record.id)

    assert outcome.kind == "access_denied"


@pytest.mark.asyncio
async def test_resume_missing_interview_is_stale(store, ai_client):
    outcome = await _session(store, ai_client).resume("does-not-exist")

    assert outcome.kind == "stale_reference"


@pytest.mark.asyncio
async def test_resume_completed_interview_cannot_finalize_again(store, ai_client):
    record = await _stored_interview(store, status=InterviewStatus.COMPLETED)
    session = _session(store, ai_client)

    assert (await session.resume(record.id)).ok
    assert session.phase == SessionPhase.COMPLETED
    assert (await session.finalize()).kind == "illegal_transition"


# ============================================================================
# Progress
# ============================================================================


@pytest.mark.asyncio
async def test_progress_is_capped_until_completed(store, ai_client):
    session = await _started(store, ai_client)
    assert session.progress == pytest.approx(1 / 20)

    session.turns = session.turns * 30
    assert session.progress == 0.95


def test_config_defaults():
    config = InterviewSessionConfig()

    assert config.min_description_chars == 50
    assert config.min_finalize_turns == 2
