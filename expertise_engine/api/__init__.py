"""API router for v1 endpoints."""

from fastapi import APIRouter

from expertise_engine.api import documents, editor, interviews, playbooks

router = APIRouter()

# Interviewer turns and interview documents
router.include_router(interviews.router, prefix="/interviews", tags=["interviews"])

# Playbook synthesis (typed-event stream)
router.include_router(playbooks.router, prefix="/playbooks", tags=["playbooks"])

# Selection-scoped edits
router.include_router(editor.router, prefix="/editor", tags=["editor"])

# Document AI summaries
router.include_router(documents.router, prefix="/documents", tags=["documents"])
