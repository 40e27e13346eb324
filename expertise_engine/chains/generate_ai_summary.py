"""Retrieval-oriented AI summaries of documents."""

import logging
import time

from expertise_engine.core.config import get_settings
from expertise_engine.core.document_model import content_to_markdown
from expertise_engine.core.errors import StaleReferenceError
from expertise_engine.core.llm import get_anthropic_client, parse_llm_json, response_text, usage_counts
from expertise_engine.core.llm_usage import log_llm_usage
from expertise_engine.core.logging import get_logger, log_with_context
from expertise_engine.core.schemas_documents import DocumentSummary
from expertise_engine.db.record_store import RecordStore

logger = get_logger(__name__)

SUMMARY_PROMPT = """Extract key information from this document for efficient AI retrieval and playbook generation.

DOCUMENT TITLE: {title}

DOCUMENT CONTENT:
{content}

YOUR TASK:
Extract and structure this content into summaries that preserve the critical nuances, insights and tactical details. Focus on information density and actionability.

OUTPUT (JSON):
{{
  "executive_summary": "500-character overview focusing on WHAT happened and the core outcome",
  "key_insights": "1000 characters of CRITICAL NUANCES and lessons - the subtle details and counterintuitive insights that made the difference",
  "tactical_details": "1500 characters of HOW they did it - specific actions, methods, frameworks and steps",
  "challenges_solutions": "1000 characters of problems encountered and how they were solved, including the thought process and pivots",
  "topics": ["keyword1", "keyword2", "keyword3"],
  "skill_areas": ["skill1", "skill2", "skill3"]
}}

REQUIREMENTS:
1. Preserve nuances and counterintuitive insights
2. Include specific tactics, not generic advice
3. Capture the "why" behind decisions, not just the "what"
4. Keep the expert's voice and perspective
5. Topics are 2-3 word kebab-case phrases (e.g. "champion-departure", "stakeholder-mapping")
6. Skill areas are clear competencies (e.g. "relationship-building", "crisis-management")

Return ONLY valid JSON, no other text."""


async def generate_ai_summary(document_id: str, store: RecordStore) -> DocumentSummary:
    """
    Summarize a document and upsert the result into document_ai_summaries.

    Raises:
        StaleReferenceError: If the document does not exist
        ValueError: If the document is empty or the model output is not a valid summary
    """
    document = await store.get_document(document_id)
    if document is None:
        raise StaleReferenceError(f"Document {document_id} not found")

    content = document.plain_text or content_to_markdown(document.content, document.format)
    if not content or not content.strip():
        raise ValueError("Document has no content to summarize")

    settings = get_settings()
    client = get_anthropic_client()

    start = time.time()
    response = await client.messages.create(
        model=settings.SUMMARY_MODEL,
        max_tokens=settings.SUMMARY_MAX_TOKENS,
        temperature=0.5,
        messages=[
            {"role": "user", "content": SUMMARY_PROMPT.format(title=document.title, content=content)}
        ],
    )
    duration_ms = int((time.time() - start) * 1000)
    log_llm_usage(
        operation="generate_ai_summary",
        model=settings.SUMMARY_MODEL,
        duration_ms=duration_ms,
        document_id=document_id,
        **usage_counts(response),
    )

    summary = parse_llm_json(response_text(response), DocumentSummary)
    await store.upsert_document_summary(document_id, summary)

    log_with_context(
        logger,
        logging.INFO,
        "AI summary generated",
        document_id=document_id,
        topics=len(summary.topics),
        duration_ms=duration_ms,
    )
    return summary
