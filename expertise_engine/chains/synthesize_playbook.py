"""Playbook synthesis streaming: generate or update a playbook, reporting progress as typed frames.

Frame sequence::

    status* -> complete {content, type, sourceDocuments, generatedAt}
    status* -> error {error}

Exactly one terminal frame is emitted per request.
"""

import time
from collections.abc import AsyncGenerator
from datetime import datetime, timezone

from expertise_engine.chains.playbook_prompts import (
    build_generate_prompt,
    build_synthesis_system,
    build_update_prompt,
)
from expertise_engine.core.config import get_settings
from expertise_engine.core.llm import get_anthropic_client, usage_counts
from expertise_engine.core.llm_usage import log_llm_usage
from expertise_engine.core.logging import get_logger
from expertise_engine.core.schemas_playbooks import SynthesisRequest
from expertise_engine.core.stream_frames import sse_event

logger = get_logger(__name__)

GENERATE_PROGRESS_MESSAGES = [
    "Structuring the playbook...",
    "Writing executive summary...",
    "Generating actionable frameworks...",
    "Adding practical examples...",
    "Finalizing content...",
]

UPDATE_PROGRESS_MESSAGES = [
    "Integrating new insights...",
    "Updating sections...",
    "Enhancing examples...",
    "Finalizing content...",
]

DEFAULT_ERROR_MESSAGE = "Failed to generate content. Please try again."


def friendly_error_message(error: Exception) -> str:
    """Map provider failures onto messages a user can act on."""
    message = str(error)
    if "API key" in message:
        return "AI service configuration error. Please contact support."
    if "token" in message:
        return "Content too long. Try selecting fewer or shorter documents."
    if "rate limit" in message:
        return "AI service rate limit exceeded. Please try again later."
    return DEFAULT_ERROR_MESSAGE


def progress_message(chunk_count: int, every: int, messages: list[str]) -> str | None:
    """Rotating status text, emitted once every ``every`` chunks."""
    if every <= 0 or chunk_count % every != 0:
        return None
    index = min(chunk_count // (every * 2), len(messages) - 1)
    return messages[index]


async def generate_synthesis_stream(
    request: SynthesisRequest,
    status_every: int | None = None,
) -> AsyncGenerator[str, None]:
    """Run one synthesis request and yield typed-dialect frames."""
    settings = get_settings()
    every = status_every if status_every is not None else settings.SYNTHESIS_STATUS_EVERY
    is_update = request.mode == "update"

    try:
        yield sse_event("status", {"message": "Validating request..."})

        sources = [s for s in request.sources if s.content and s.content.strip()]
        if is_update:
            if not request.existing_content or not request.existing_content.strip():
                yield sse_event("error", {"error": "Existing playbook content is required"})
                return
            if not sources and not request.instructions:
                yield sse_event("error", {"error": "At least 1 document must be selected"})
                return
        elif len(sources) < settings.MIN_SYNTHESIS_SOURCES:
            yield sse_event(
                "error",
                {
                    "error": f"Only {len(sources)} documents have content. "
                    f"Need at least {settings.MIN_SYNTHESIS_SOURCES} documents with content."
                },
            )
            return

        if is_update:
            yield sse_event("status", {"message": "Analyzing content..."})
            new_ids = set(request.new_document_ids)
            prompt = build_update_prompt(
                playbook_type=request.playbook_type,
                title=request.title or "Untitled Playbook",
                existing_content=request.existing_content,
                new_sources=[s for s in sources if s.id in new_ids],
                instructions=request.instructions,
            )
            model, max_tokens = settings.SYNTHESIS_MODEL, settings.UPDATE_MAX_TOKENS
            progress = UPDATE_PROGRESS_MESSAGES
            yield sse_event("status", {"message": "Generating updated content..."})
        else:
            yield sse_event("status", {"message": "Analyzing selected experiences..."})
            prompt = build_generate_prompt(
                playbook_type=request.playbook_type,
                sources=sources,
                title=request.title,
                instructions=request.instructions,
            )
            model, max_tokens = settings.SYNTHESIS_MODEL, settings.SYNTHESIS_MAX_TOKENS
            progress = GENERATE_PROGRESS_MESSAGES
            yield sse_event("status", {"message": "Extracting key insights and patterns..."})
            yield sse_event("status", {"message": "Generating playbook content..."})

        system = [
            {
                "type": "text",
                "text": build_synthesis_system(sources),
                "cache_control": {"type": "ephemeral"},
            }
        ]

        client = get_anthropic_client()
        content = ""
        chunk_count = 0
        start = time.time()
        async with client.messages.stream(
            model=model,
            max_tokens=max_tokens,
            temperature=0.7,
            system=system,
            messages=[{"role": "user", "content": prompt}],
        ) as stream:
            async for event in stream:
                if getattr(event, "type", None) != "content_block_delta":
                    continue
                text = getattr(event.delta, "text", None)
                if not text:
                    continue
                content += text
                chunk_count += 1
                message = progress_message(chunk_count, every, progress)
                if message:
                    yield sse_event("status", {"message": message})
            final_message = await stream.get_final_message()

        duration_ms = int((time.time() - start) * 1000)
        log_llm_usage(
            operation=f"playbook_{request.mode}",
            model=model,
            duration_ms=duration_ms,
            **usage_counts(final_message),
        )

        if not content.strip():
            yield sse_event("error", {"error": DEFAULT_ERROR_MESSAGE})
            return

        logger.info(
            f"Playbook {request.mode} produced {len(content)} chars "
            f"from {len(sources)} sources ({duration_ms}ms)"
        )
        yield sse_event(
            "complete",
            {
                "content": content,
                "type": request.playbook_type.value,
                "sourceDocuments": len(sources),
                "generatedAt": datetime.now(timezone.utc).isoformat(),
            },
        )

    except Exception as e:
        logger.error(f"Playbook {request.mode} failed: {e}", exc_info=True)
        yield sse_event("error", {"error": friendly_error_message(e)})
