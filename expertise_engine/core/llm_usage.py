"""LLM usage logger for token/cost tracking."""

import logging

from expertise_engine.db.supabase_client import get_supabase

logger = logging.getLogger(__name__)

# Pricing per 1M tokens: (input, output)
MODEL_PRICING: dict[str, tuple[float, float]] = {
    "claude-sonnet-4-20250514": (3.0, 15.0),
    "claude-sonnet-4-5-20250929": (3.0, 15.0),
    "claude-3-5-haiku-20241022": (0.80, 4.0),
    "claude-haiku-4-5-20251001": (0.80, 4.0),
}


def _estimate_cost(
    model: str,
    tokens_input: int,
    tokens_output: int,
    tokens_cache_read: int = 0,
) -> float:
    """Estimate cost in USD based on model pricing."""
    pricing = MODEL_PRICING.get(model)
    if not pricing:
        for key, val in MODEL_PRICING.items():
            if model.startswith(key.rsplit("-", 1)[0]):
                pricing = val
                break
    if not pricing:
        logger.warning(f"No pricing found for model '{model}', using $0")
        return 0.0

    input_rate, output_rate = pricing
    # Cache reads bill at 10% of the input rate
    effective_input = (tokens_input - tokens_cache_read) + (tokens_cache_read * 0.1)
    cost = (effective_input * input_rate / 1_000_000) + (tokens_output * output_rate / 1_000_000)
    return round(cost, 6)


def log_llm_usage(
    operation: str,
    model: str,
    tokens_input: int,
    tokens_output: int,
    duration_ms: int = 0,
    user_id: str | None = None,
    document_id: str | None = None,
    tokens_cache_read: int = 0,
    tokens_cache_create: int = 0,
) -> None:
    """Log an LLM call to the usage tracking table. Fire-and-forget."""
    try:
        estimated_cost = _estimate_cost(model, tokens_input, tokens_output, tokens_cache_read)

        row = {
            "operation": operation,
            "model": model,
            "provider": "anthropic",
            "tokens_input": tokens_input,
            "tokens_output": tokens_output,
            "tokens_cache_read": tokens_cache_read,
            "tokens_cache_create": tokens_cache_create,
            "estimated_cost_usd": estimated_cost,
            "duration_ms": duration_ms,
        }
        if user_id:
            row["user_id"] = user_id
        if document_id:
            row["document_id"] = document_id

        get_supabase().table("llm_usage").insert(row).execute()

        logger.debug(
            f"LLM usage logged: {operation} model={model} "
            f"tokens={tokens_input}+{tokens_output} cost=${estimated_cost:.4f}"
        )
    except Exception as e:
        # Never fail the main operation due to logging
        logger.error(f"Failed to log LLM usage: {e}")
