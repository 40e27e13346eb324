"""Interviewer turn streaming: Anthropic text deltas re-emitted as simple-dialect frames."""

import time
from collections.abc import AsyncGenerator
from dataclasses import dataclass

from expertise_engine.chains.interview_prompts import build_chat_system_prompt
from expertise_engine.core.config import get_settings
from expertise_engine.core.llm import get_anthropic_client, usage_counts
from expertise_engine.core.llm_usage import log_llm_usage
from expertise_engine.core.logging import get_logger
from expertise_engine.core.schemas_interviews import ChatMessage, InterviewPromptContext
from expertise_engine.core.stream_frames import sse_data, sse_done

logger = get_logger(__name__)


@dataclass
class InterviewChatConfig:
    """Explicit inputs for one interviewer turn."""

    messages: list[ChatMessage]
    context: InterviewPromptContext
    model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 2000

    @classmethod
    def from_settings(
        cls, messages: list[ChatMessage], context: InterviewPromptContext
    ) -> "InterviewChatConfig":
        settings = get_settings()
        return cls(
            messages=messages,
            context=context,
            model=settings.CHAT_MODEL,
            max_tokens=settings.CHAT_MAX_TOKENS,
        )


async def generate_interview_stream(config: InterviewChatConfig) -> AsyncGenerator[str, None]:
    """Stream the next interviewer turn.

    Yields ``data: {"text": ...}`` per delta and ``data: [DONE]`` at the end.
    On an upstream failure the stream stops without ``[DONE]`` so the client
    treats the turn as failed.
    """
    client = get_anthropic_client()
    messages = [
        {"role": m.role.value, "content": m.content}
        for m in config.messages
        if m.content.strip()
    ]
    system_prompt = build_chat_system_prompt(config.context)

    try:
        start = time.time()
        async with client.messages.stream(
            model=config.model,
            max_tokens=config.max_tokens,
            system=system_prompt,
            messages=messages,
        ) as stream:
            async for event in stream:
                if getattr(event, "type", None) == "content_block_delta":
                    text = getattr(event.delta, "text", None)
                    if text:
                        yield sse_data({"text": text})
            final_message = await stream.get_final_message()

        duration_ms = int((time.time() - start) * 1000)
        log_llm_usage(
            operation="interview_chat",
            model=config.model,
            duration_ms=duration_ms,
            **usage_counts(final_message),
        )
        logger.info(
            f"Interviewer turn streamed ({config.context.document_type.value}, "
            f"{len(messages)} messages, {duration_ms}ms)"
        )
        yield sse_done()

    except Exception as e:
        logger.error(f"Interview chat stream failed: {e}", exc_info=True)
