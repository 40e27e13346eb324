"""Interview session state machine.

Phases::

    collecting_context -> awaiting_first_response -> conversing -> finalizing -> completed

``resume()`` jumps from collecting_context straight to conversing (or to
completed for a finished interview). Turns are persisted only once fully
received, user turn before assistant turn, with gapless sequence numbers
starting at 1. One request is in flight per session at any time.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING

from expertise_engine.core.background import spawn_background
from expertise_engine.core.config import get_settings
from expertise_engine.core.document_model import DocumentModel
from expertise_engine.core.errors import (
    AccessDeniedError,
    IllegalTransitionError,
    StaleReferenceError,
    UpstreamError,
    ValidationError,
    guarded,
)
from expertise_engine.core.logging import get_logger, log_with_context
from expertise_engine.core.schemas_documents import DocumentFormat, DocumentRecord
from expertise_engine.core.schemas_interviews import (
    ChatMessage,
    InterviewContext,
    InterviewPromptContext,
    InterviewSessionState,
    InterviewStatus,
    InterviewTurn,
    TurnRole,
)
from expertise_engine.core.stream_frames import Dialect, EventKind, close_chunks, iter_stream_events

if TYPE_CHECKING:
    from expertise_engine.db.record_store import RecordStore
    from expertise_engine.services.ai_client import AIClient

logger = get_logger(__name__)

OPENING_MESSAGE_TEMPLATE = "Hello! I'm ready to begin the knowledge transfer interview about: {topic}"

# Turn count at which the displayed progress would reach 100%
PROGRESS_TARGET_TURNS = 20


class SessionPhase(str, Enum):
    COLLECTING_CONTEXT = "collecting_context"
    AWAITING_FIRST_RESPONSE = "awaiting_first_response"
    CONVERSING = "conversing"
    FINALIZING = "finalizing"
    COMPLETED = "completed"


ALLOWED_TRANSITIONS: dict[SessionPhase, set[SessionPhase]] = {
    SessionPhase.COLLECTING_CONTEXT: {
        SessionPhase.AWAITING_FIRST_RESPONSE,
        SessionPhase.CONVERSING,
        SessionPhase.COMPLETED,
    },
    # Back to collecting_context when the opening turn fails
    SessionPhase.AWAITING_FIRST_RESPONSE: {SessionPhase.CONVERSING, SessionPhase.COLLECTING_CONTEXT},
    SessionPhase.CONVERSING: {SessionPhase.FINALIZING},
    SessionPhase.FINALIZING: {SessionPhase.COMPLETED, SessionPhase.CONVERSING},
    SessionPhase.COMPLETED: set(),
}


def opening_message(context: InterviewContext) -> str:
    """Synthetic first user message. Sent to the AI, never persisted."""
    return OPENING_MESSAGE_TEMPLATE.format(topic=context.process_to_document)


@dataclass
class InterviewSessionConfig:
    """Guards applied by an InterviewSession."""

    min_description_chars: int = 50
    min_finalize_turns: int = 2

    @classmethod
    def from_settings(cls) -> "InterviewSessionConfig":
        settings = get_settings()
        return cls(
            min_description_chars=settings.MIN_DESCRIPTION_CHARS,
            min_finalize_turns=settings.MIN_FINALIZE_TURNS,
        )


class InterviewSession:
    """One expert interview, from context collection to the final document.

    Every public operation returns an ``Outcome``. ``live_text`` holds the
    assistant turn currently streaming; ``on_token`` is called with each
    fragment as it arrives.
    """

    def __init__(
        self,
        store: "RecordStore",
        ai_client: "AIClient",
        user_id: str,
        config: InterviewSessionConfig | None = None,
        on_token: Callable[[str], None] | None = None,
    ):
        self.store = store
        self.ai_client = ai_client
        self.user_id = user_id
        self.config = config or InterviewSessionConfig()
        self.on_token = on_token

        self.phase = SessionPhase.COLLECTING_CONTEXT
        self.context: InterviewContext | None = None
        self.session: InterviewSessionState | None = None
        self.turns: list[InterviewTurn] = []
        self.document: DocumentRecord | None = None
        self.live_text = ""
        # User text shown as sent but not yet persisted (kept after a failed turn)
        self.pending_user_text: str | None = None
        self._in_flight = False

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def session_id(self) -> str | None:
        return self.session.id if self.session else None

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def transcript(self) -> list[ChatMessage]:
        """Conversation as the user sees it, including an unsent user turn."""
        messages = [ChatMessage(role=t.role, content=t.content) for t in self.turns]
        if self.pending_user_text is not None:
            messages.append(ChatMessage(role=TurnRole.USER, content=self.pending_user_text))
        return messages

    @property
    def progress(self) -> float:
        if self.phase == SessionPhase.COMPLETED:
            return 1.0
        return min(len(self.turns) / PROGRESS_TARGET_TURNS, 0.95)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    @guarded
    async def start(self, context: InterviewContext) -> InterviewTurn:
        """Create the interview and stream the first interviewer turn (sequence 1)."""
        self._require_phase(SessionPhase.COLLECTING_CONTEXT)
        self._require_idle()
        if len(context.description.strip()) < self.config.min_description_chars:
            raise ValidationError(
                f"Please describe the experience in at least {self.config.min_description_chars} characters"
            )

        self._in_flight = True
        try:
            # A failed opening turn keeps the record; a retry reuses it
            if self.session is None:
                self.session = await self.store.create_session(self.user_id, context)
            self.context = context
            self._transition(SessionPhase.AWAITING_FIRST_RESPONSE)

            try:
                reply = await self._stream_assistant_turn(self._request_messages())
                turn = await self.store.append_turn(
                    self.session.id,
                    InterviewTurn(role=TurnRole.ASSISTANT, content=reply, sequence_number=1),
                )
            except Exception:
                self._transition(SessionPhase.COLLECTING_CONTEXT)
                raise

            self.turns.append(turn)
            self._transition(SessionPhase.CONVERSING)
            return turn
        finally:
            self.live_text = ""
            self._in_flight = False

    @guarded
    async def send_user_turn(self, text: str) -> InterviewTurn:
        """Send one expert message and stream the interviewer's reply.

        Both turns are persisted only after the reply is fully received.
        """
        self._require_phase(SessionPhase.CONVERSING)
        self._require_idle()
        if not text or not text.strip():
            raise ValidationError("Message cannot be empty")

        self.pending_user_text = text.strip()
        self._in_flight = True
        try:
            reply = await self._stream_assistant_turn(self._request_messages())

            next_seq = self._next_sequence()
            user_turn = await self.store.append_turn(
                self.session.id,
                InterviewTurn(role=TurnRole.USER, content=self.pending_user_text, sequence_number=next_seq),
            )
            self.turns.append(user_turn)
            self.pending_user_text = None

            assistant_turn = await self.store.append_turn(
                self.session.id,
                InterviewTurn(role=TurnRole.ASSISTANT, content=reply, sequence_number=next_seq + 1),
            )
            self.turns.append(assistant_turn)
            log_with_context(
                logger,
                logging.INFO,
                "Interview round persisted",
                session_id=self.session.id,
                sequence_number=assistant_turn.sequence_number,
            )
            return assistant_turn
        finally:
            self.live_text = ""
            self._in_flight = False

    async def retry(self):
        """Resend the user turn whose reply failed."""
        return await self.send_user_turn(self.pending_user_text or "")

    @guarded
    async def finalize(self) -> DocumentRecord:
        """Generate the interview document and complete the session."""
        self._require_phase(SessionPhase.CONVERSING)
        self._require_idle()
        if len(self.turns) < self.config.min_finalize_turns:
            raise ValidationError(
                f"Have at least {self.config.min_finalize_turns} messages before ending the interview"
            )

        self._in_flight = True
        self._transition(SessionPhase.FINALIZING)
        try:
            markdown = await self.ai_client.complete_once(
                [ChatMessage(role=t.role, content=t.content) for t in self.turns],
                InterviewPromptContext.from_interview(self.context),
            )
            if not markdown or not markdown.strip():
                raise UpstreamError("The AI service returned an empty document")

            if await self.store.get_session(self.session.id) is None:
                raise StaleReferenceError(f"Interview {self.session.id} no longer exists")
            document = await self._save_document(DocumentModel.from_markdown(markdown))
            self.session = await self.store.set_session_status(
                self.session.id,
                InterviewStatus.COMPLETED,
                completed_at=datetime.now(timezone.utc),
            )
        except Exception:
            self._transition(SessionPhase.CONVERSING)
            raise
        finally:
            self._in_flight = False

        self.document = document
        self._transition(SessionPhase.COMPLETED)
        spawn_background(self.ai_client.request_summary(document.id), name=f"summary:{document.id}")
        return document

    @guarded
    async def resume(
        self,
        session_id: str,
        expert_name: str = "Expert",
        expert_role: str = "",
        years_of_experience: int = 0,
    ) -> list[InterviewTurn]:
        """Reload a stored interview and continue where it left off."""
        self._require_phase(SessionPhase.COLLECTING_CONTEXT)
        self._require_idle()

        session = await self.store.get_session(session_id)
        if session is None:
            raise StaleReferenceError(f"Interview {session_id} no longer exists")
        if session.user_id != self.user_id:
            raise AccessDeniedError("You can only resume your own interviews")

        self.session = session
        self.context = InterviewContext(
            document_type=session.document_type,
            title=session.title or "",
            function_area=session.function_area or "",
            description=session.description,
            expert_name=expert_name,
            expert_role=expert_role,
            years_of_experience=years_of_experience,
        )
        self.turns = await self.store.list_turns(session_id)
        self.pending_user_text = None

        if session.status == InterviewStatus.COMPLETED:
            self.document = await self.store.get_document_by_interview(session_id)
            self._transition(SessionPhase.COMPLETED)
        else:
            self._transition(SessionPhase.CONVERSING)
        return list(self.turns)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _transition(self, target: SessionPhase) -> None:
        if target not in ALLOWED_TRANSITIONS[self.phase]:
            raise IllegalTransitionError(f"Cannot move from {self.phase.value} to {target.value}")
        log_with_context(
            logger,
            logging.INFO,
            f"Interview phase {self.phase.value} -> {target.value}",
            session_id=self.session_id,
        )
        self.phase = target

    def _require_phase(self, phase: SessionPhase) -> None:
        if self.phase != phase:
            raise IllegalTransitionError(f"Not allowed while the interview is {self.phase.value}")

    def _require_idle(self) -> None:
        if self._in_flight:
            raise IllegalTransitionError("Wait for the current response to finish")

    def _next_sequence(self) -> int:
        return self.turns[-1].sequence_number + 1 if self.turns else 1

    def _request_messages(self) -> list[ChatMessage]:
        """Full stateless request: synthetic opening, persisted turns, unsent user turn."""
        return [ChatMessage(role=TurnRole.USER, content=opening_message(self.context)), *self.transcript]

    async def _stream_assistant_turn(self, messages: list[ChatMessage]) -> str:
        self.live_text = ""
        chunks = self.ai_client.stream_chat(messages, InterviewPromptContext.from_interview(self.context))
        try:
            async for event in iter_stream_events(chunks, Dialect.SIMPLE):
                if event.kind == EventKind.TOKEN:
                    self.live_text += event.text
                    if self.on_token:
                        self.on_token(event.text)
                elif event.kind == EventKind.ERROR:
                    raise event.to_exception()
        finally:
            await close_chunks(chunks)

        reply = self.live_text.strip()
        if not reply:
            raise UpstreamError("The interviewer returned an empty response")
        return reply

    async def _save_document(self, model: DocumentModel) -> DocumentRecord:
        fields = {
            "content": model.serialize(),
            "format": DocumentFormat.BLOCKS.value,
            "plain_text": model.to_plain_text(),
        }
        # A previous finalize may have written the document before failing
        existing = await self.store.get_document_by_interview(self.session.id)
        if existing is not None:
            return await self.store.update_document(existing.id, **fields)

        return await self.store.create_document(
            {
                **fields,
                "interview_id": self.session.id,
                "user_id": self.user_id,
                "title": self.context.title or self.context.process_to_document[:80],
                "document_type": self.context.document_type.value,
                "function_area": self.context.function_area or None,
                "is_shared": False,
            }
        )
