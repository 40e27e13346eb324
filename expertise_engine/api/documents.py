"""Document API endpoints."""

import json

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from pydantic import ValidationError as SchemaValidationError

from expertise_engine.chains.generate_ai_summary import generate_ai_summary
from expertise_engine.chains.synthesize_playbook import friendly_error_message
from expertise_engine.core.errors import StaleReferenceError
from expertise_engine.core.logging import get_logger
from expertise_engine.core.schemas_documents import DocumentSummary
from expertise_engine.db.record_store import RecordStore, SupabaseRecordStore
from expertise_engine.db.supabase_client import get_supabase

logger = get_logger(__name__)

router = APIRouter()


def get_record_store() -> RecordStore:
    return SupabaseRecordStore(get_supabase())


class SummaryResponse(BaseModel):
    document_id: str
    summary: DocumentSummary
    importance_scores: dict[str, float]


@router.post("/{document_id}/summary", response_model=SummaryResponse)
async def regenerate_summary(
    document_id: str,
    store: RecordStore = Depends(get_record_store),
) -> SummaryResponse:
    """(Re)generate the AI summary used for retrieval and playbook synthesis."""
    try:
        summary = await generate_ai_summary(document_id, store)
    except StaleReferenceError as e:
        raise HTTPException(status_code=404, detail="Document not found") from e
    except (json.JSONDecodeError, SchemaValidationError) as e:
        logger.error(f"Invalid AI summary for document {document_id}: {e}")
        raise HTTPException(status_code=502, detail="Invalid summary response from AI") from e
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except Exception as e:
        logger.error(f"Error generating AI summary for {document_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=friendly_error_message(e)) from e

    return SummaryResponse(
        document_id=document_id,
        summary=summary,
        importance_scores=summary.importance_scores(),
    )
