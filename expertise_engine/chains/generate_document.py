"""One-shot document generation from a finished interview transcript."""

import time

from expertise_engine.chains.interview_prompts import build_document_prompt
from expertise_engine.core.config import get_settings
from expertise_engine.core.llm import get_anthropic_client, response_text, usage_counts
from expertise_engine.core.llm_usage import log_llm_usage
from expertise_engine.core.logging import get_logger
from expertise_engine.core.schemas_interviews import ChatMessage, InterviewPromptContext, TurnRole

logger = get_logger(__name__)


def format_transcript(messages: list[ChatMessage]) -> str:
    """Render a transcript with the expert as ``Expert:`` and the AI as ``Interviewer:``."""
    lines = []
    for m in messages:
        speaker = "Expert" if m.role == TurnRole.USER else "Interviewer"
        lines.append(f"{speaker}: {m.content}")
    return "\n\n".join(lines)


async def generate_interview_document(
    messages: list[ChatMessage],
    context: InterviewPromptContext,
) -> str:
    """
    Write the case study / best practices document for a transcript.

    Args:
        messages: Full transcript, oldest first
        context: Interview context (kind, expert, subject)

    Returns:
        Markdown document

    Raises:
        ValueError: If the model returns no text
    """
    settings = get_settings()
    client = get_anthropic_client()
    prompt = build_document_prompt(context, format_transcript(messages))

    start = time.time()
    response = await client.messages.create(
        model=settings.DOCUMENT_MODEL,
        max_tokens=settings.DOCUMENT_MAX_TOKENS,
        messages=[{"role": "user", "content": prompt}],
    )
    duration_ms = int((time.time() - start) * 1000)

    log_llm_usage(
        operation="generate_document",
        model=settings.DOCUMENT_MODEL,
        duration_ms=duration_ms,
        **usage_counts(response),
    )

    document = response_text(response).strip()
    if not document:
        raise ValueError("Document generation returned no content")

    logger.info(
        f"Generated {context.document_type.value} document "
        f"({len(document)} chars from {len(messages)} messages, {duration_ms}ms)"
    )
    return document
