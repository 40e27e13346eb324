"""Editor API endpoints: AI rewrites of a selection."""

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from expertise_engine.chains.suggest_edit import suggest_edit
from expertise_engine.chains.synthesize_playbook import friendly_error_message
from expertise_engine.core.logging import get_logger
from expertise_engine.core.schemas_documents import EditOperation

logger = get_logger(__name__)

router = APIRouter()


class SuggestEditRequest(BaseModel):
    selected_text: str
    operation: str


class SuggestEditResponse(BaseModel):
    text: str


@router.post("/suggest", response_model=SuggestEditResponse)
async def suggest(request: SuggestEditRequest) -> SuggestEditResponse:
    """Return the rewritten selection. Nothing is stored."""
    if not request.selected_text.strip():
        raise HTTPException(status_code=400, detail="No text provided")
    try:
        operation = EditOperation(request.operation)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown edit operation: {request.operation}") from None

    try:
        text = await suggest_edit(request.selected_text, operation)
    except Exception as e:
        logger.error(f"Edit {operation.value} failed: {e}", exc_info=True)
        raise HTTPException(status_code=502, detail=friendly_error_message(e)) from e

    return SuggestEditResponse(text=text)
