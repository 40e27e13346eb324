"""Selection-scoped rewrites (improve, fix grammar, formalize, simplify, expand)."""

from expertise_engine.core.config import get_settings
from expertise_engine.core.llm import get_anthropic_client, response_text, usage_counts
from expertise_engine.core.llm_usage import log_llm_usage
from expertise_engine.core.logging import get_logger
from expertise_engine.core.schemas_documents import EditOperation

logger = get_logger(__name__)

EDIT_SYSTEM_PROMPTS: dict[EditOperation, str] = {
    EditOperation.IMPROVE: (
        "You are a professional editor. Improve the following text to make it clearer, more concise, "
        "and more professional. Maintain the original meaning and tone. "
        "Return only the improved text without any explanation."
    ),
    EditOperation.FIX_GRAMMAR: (
        "You are a professional editor. Fix any grammar, spelling, and punctuation errors in the "
        "following text. Maintain the original meaning and style. "
        "Return only the corrected text without any explanation."
    ),
    EditOperation.FORMALIZE: (
        "You are a professional business writer. Rewrite the following text in a more professional "
        "and formal tone suitable for business documentation. "
        "Return only the rewritten text without any explanation."
    ),
    EditOperation.SIMPLIFY: (
        "You are a professional editor. Simplify the following text to make it easier to understand "
        "while maintaining accuracy. Use simpler words and shorter sentences. "
        "Return only the simplified text without any explanation."
    ),
    EditOperation.EXPAND: (
        "You are a professional writer. Expand the following text by adding more detail, examples, "
        "or context while maintaining the original message. "
        "Return only the expanded text without any explanation."
    ),
}


async def suggest_edit(selected_text: str, operation: EditOperation) -> str:
    """
    Rewrite a selection according to ``operation``.

    Raises:
        ValueError: If the selection is empty or the model returns nothing
    """
    if not selected_text.strip():
        raise ValueError("No text provided")

    settings = get_settings()
    client = get_anthropic_client()
    response = await client.messages.create(
        model=settings.EDIT_MODEL,
        max_tokens=settings.EDIT_MAX_TOKENS,
        system=EDIT_SYSTEM_PROMPTS[operation],
        messages=[{"role": "user", "content": selected_text}],
    )
    log_llm_usage(operation=f"edit_{operation.value}", model=settings.EDIT_MODEL, **usage_counts(response))

    suggested = response_text(response).strip()
    if not suggested:
        raise ValueError("Edit returned no content")
    logger.debug(f"Edit {operation.value}: {len(selected_text)} -> {len(suggested)} chars")
    return suggested
