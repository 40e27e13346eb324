"""Interview API endpoints: interviewer turns (streamed) and final documents."""

from fastapi import APIRouter, HTTPException
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from expertise_engine.api._streaming import require_anthropic_key, sse_response
from expertise_engine.chains.generate_document import generate_interview_document
from expertise_engine.chains.interview_chat import InterviewChatConfig, generate_interview_stream
from expertise_engine.chains.synthesize_playbook import friendly_error_message
from expertise_engine.core.logging import get_logger
from expertise_engine.core.schemas_interviews import ChatMessage, InterviewPromptContext, TurnRole

logger = get_logger(__name__)

router = APIRouter()


class InterviewChatRequest(BaseModel):
    """Full transcript plus interview context; the service keeps no history."""

    messages: list[ChatMessage] = Field(default_factory=list)
    context: InterviewPromptContext


class InterviewDocumentResponse(BaseModel):
    document: str


def _validate_messages(messages: list[ChatMessage]) -> None:
    if not messages:
        raise HTTPException(status_code=400, detail="At least one message is required")
    if messages[0].role != TurnRole.USER:
        raise HTTPException(status_code=400, detail="The transcript must start with a user message")


@router.post("/chat")
async def interview_chat(request: InterviewChatRequest) -> StreamingResponse:
    """
    Stream the next interviewer turn.

    Returns:
        StreamingResponse of ``data: {"text": ...}`` frames ending with ``data: [DONE]``
    """
    _validate_messages(request.messages)
    require_anthropic_key()

    config = InterviewChatConfig.from_settings(request.messages, request.context)
    return sse_response(generate_interview_stream(config))


@router.post("/document", response_model=InterviewDocumentResponse)
async def interview_document(request: InterviewChatRequest) -> InterviewDocumentResponse:
    """Generate the case study or best practices document for a finished interview."""
    _validate_messages(request.messages)
    require_anthropic_key()

    try:
        document = await generate_interview_document(request.messages, request.context)
    except Exception as e:
        logger.error(f"Error generating interview document: {e}", exc_info=True)
        raise HTTPException(status_code=502, detail=friendly_error_message(e)) from e

    return InterviewDocumentResponse(document=document)
