"""Playbook API endpoints."""

from fastapi import APIRouter
from fastapi.responses import StreamingResponse

from expertise_engine.api._streaming import require_anthropic_key, sse_response
from expertise_engine.chains.synthesize_playbook import generate_synthesis_stream
from expertise_engine.core.logging import get_logger
from expertise_engine.core.schemas_playbooks import SynthesisRequest

logger = get_logger(__name__)

router = APIRouter()


@router.post("/synthesize")
async def synthesize_playbook(request: SynthesisRequest) -> StreamingResponse:
    """
    Generate or update a playbook from the supplied source documents.

    The caller has already authorized and loaded the sources; this endpoint
    only runs the synthesis. Progress arrives as ``status`` frames and the
    stream ends with exactly one ``complete`` or ``error`` frame.
    """
    require_anthropic_key()
    logger.info(
        f"Playbook {request.mode} requested: type={request.playbook_type.value}, "
        f"sources={len(request.sources)}, new={len(request.new_document_ids)}"
    )
    return sse_response(generate_synthesis_stream(request))
