"""Anthropic client helpers and LLM output parsing."""

import json
import re
from typing import Any, TypeVar

from anthropic import AsyncAnthropic
from pydantic import BaseModel

from expertise_engine.core.config import get_settings

T = TypeVar("T", bound=BaseModel)


def get_anthropic_client(api_key: str | None = None) -> AsyncAnthropic:
    """
    Get an AsyncAnthropic client.

    Args:
        api_key: Key override (defaults to ANTHROPIC_API_KEY from settings)

    Returns:
        AsyncAnthropic instance
    """
    settings = get_settings()
    return AsyncAnthropic(api_key=api_key or settings.ANTHROPIC_API_KEY)


def response_text(response: Any) -> str:
    """Concatenate the text blocks of a non-streaming Messages response."""
    parts = []
    for block in getattr(response, "content", None) or []:
        if getattr(block, "type", "text") == "text":
            parts.append(getattr(block, "text", "") or "")
    return "".join(parts)


def usage_counts(response: Any) -> dict[str, int]:
    """Token counts of a Messages response, zeros when usage is missing."""
    usage = getattr(response, "usage", None)
    return {
        "tokens_input": getattr(usage, "input_tokens", 0) or 0,
        "tokens_output": getattr(usage, "output_tokens", 0) or 0,
        "tokens_cache_read": getattr(usage, "cache_read_input_tokens", 0) or 0,
        "tokens_cache_create": getattr(usage, "cache_creation_input_tokens", 0) or 0,
    }


def _strip_llm_fences(raw_output: str) -> str:
    """Strip markdown code fences from LLM output.

    Handles: ```json ... ```, ``` ... ```, leading/trailing whitespace.
    """
    cleaned = raw_output.strip()

    fence_match = re.search(r"```(?:json)?\s*\n?(.*?)```", cleaned, re.DOTALL)
    if fence_match:
        return fence_match.group(1).strip()

    # Unterminated fence
    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    elif cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()


def parse_llm_json(raw_output: str, model: type[T]) -> T:
    """
    Parse LLM output as JSON and validate against a Pydantic model.

    Args:
        raw_output: Raw string from LLM response
        model: Pydantic model class to validate against

    Returns:
        Validated Pydantic model instance

    Raises:
        json.JSONDecodeError: If JSON parsing fails after cleanup
        pydantic.ValidationError: If parsed JSON doesn't match schema
    """
    return model.model_validate(parse_llm_json_dict(raw_output))


def parse_llm_json_dict(raw_output: str) -> dict:
    """
    Parse LLM output as JSON, returning a raw dict.

    Falls back to the outermost ``{...}`` span when the model wrapped the
    object in prose.

    Raises:
        json.JSONDecodeError: If no JSON object can be recovered
    """
    cleaned = _strip_llm_fences(raw_output)
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError:
        start, end = cleaned.find("{"), cleaned.rfind("}")
        if start == -1 or end <= start:
            raise
        parsed = json.loads(cleaned[start : end + 1])
    if isinstance(parsed, str):
        # Double-encoded JSON string
        parsed = json.loads(parsed)
    if not isinstance(parsed, dict):
        raise json.JSONDecodeError("Expected a JSON object", cleaned, 0)
    return parsed
