"""Record store: interviews, turns, documents, playbooks and document summaries.

``RecordStore`` is the contract engine components depend on; the Supabase
implementation parses every row into its pydantic model at this boundary.
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any, TypeVar

from supabase import Client

from expertise_engine.core.errors import StaleReferenceError
from expertise_engine.core.logging import get_logger
from expertise_engine.core.schemas_documents import DocumentRecord, DocumentSummary
from expertise_engine.core.schemas_interviews import (
    InterviewContext,
    InterviewSessionState,
    InterviewStatus,
    InterviewTurn,
)
from expertise_engine.core.schemas_playbooks import PlaybookRecord

logger = get_logger(__name__)

T = TypeVar("T")

_DOCUMENT_WITH_AUTHOR = "*, profiles:user_id (full_name, role)"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class RecordStore(ABC):
    """Single-row creates/reads/updates used by the engine."""

    # === Interviews ===

    @abstractmethod
    async def create_session(self, user_id: str, context: InterviewContext) -> InterviewSessionState:
        """Create an interview row with status in_progress."""

    @abstractmethod
    async def get_session(self, session_id: str) -> InterviewSessionState | None:
        """Fetch an interview row."""

    @abstractmethod
    async def append_turn(self, session_id: str, turn: InterviewTurn) -> InterviewTurn:
        """Persist one finalized turn."""

    @abstractmethod
    async def list_turns(self, session_id: str) -> list[InterviewTurn]:
        """All turns of a session ordered by sequence_number."""

    @abstractmethod
    async def set_session_status(
        self,
        session_id: str,
        status: InterviewStatus,
        completed_at: datetime | None = None,
    ) -> InterviewSessionState:
        """Update status. Raises StaleReferenceError if the session is gone."""

    # === Documents ===

    @abstractmethod
    async def create_document(self, fields: dict[str, Any]) -> DocumentRecord:
        """Insert a document row."""

    @abstractmethod
    async def update_document(self, document_id: str, **fields: Any) -> DocumentRecord:
        """Update document fields. Raises StaleReferenceError if the document is gone."""

    @abstractmethod
    async def get_document(self, document_id: str) -> DocumentRecord | None:
        """Fetch a document row."""

    @abstractmethod
    async def get_document_by_interview(self, interview_id: str) -> DocumentRecord | None:
        """Fetch the document produced by an interview, if any."""

    @abstractmethod
    async def list_documents_by_ids(self, document_ids: list[str]) -> list[DocumentRecord]:
        """Fetch documents (with author name/role) for the given ids."""

    @abstractmethod
    async def upsert_document_summary(self, document_id: str, summary: DocumentSummary) -> None:
        """Create or replace the AI summary of a document."""

    # === Playbooks ===

    @abstractmethod
    async def create_playbook(self, fields: dict[str, Any]) -> PlaybookRecord:
        """Insert a playbook row."""

    @abstractmethod
    async def update_playbook(self, playbook_id: str, **fields: Any) -> PlaybookRecord:
        """Update playbook fields. Raises StaleReferenceError if the playbook is gone."""

    @abstractmethod
    async def get_playbook(self, playbook_id: str) -> PlaybookRecord | None:
        """Fetch a playbook row."""

    # === Profiles ===

    @abstractmethod
    async def get_organization_id(self, user_id: str) -> str | None:
        """Organization of a user, if they belong to one."""


class SupabaseRecordStore(RecordStore):
    """RecordStore over a Supabase client.

    supabase-py is synchronous; every query runs in a worker thread so
    callers on the event loop are never blocked.
    """

    def __init__(self, supabase: Client):
        self.supabase = supabase

    async def _run(self, query: Callable[[], T]) -> T:
        return await asyncio.to_thread(query)

    # === Interviews ===

    async def create_session(self, user_id: str, context: InterviewContext) -> InterviewSessionState:
        data = {
            "user_id": user_id,
            "document_type": context.document_type.value,
            "title": context.title,
            "function_area": context.function_area,
            "description": context.description,
            "status": InterviewStatus.IN_PROGRESS.value,
        }
        response = await self._run(lambda: self.supabase.table("interviews").insert(data).execute())
        if not response.data:
            raise ValueError("Failed to create interview")
        session = InterviewSessionState.model_validate(response.data[0])
        logger.info(f"Created interview {session.id} ({context.document_type.value}) for user {user_id}")
        return session

    async def get_session(self, session_id: str) -> InterviewSessionState | None:
        response = await self._run(
            lambda: self.supabase.table("interviews").select("*").eq("id", session_id).limit(1).execute()
        )
        if not response.data:
            return None
        return InterviewSessionState.model_validate(response.data[0])

    async def append_turn(self, session_id: str, turn: InterviewTurn) -> InterviewTurn:
        data = {
            "interview_id": session_id,
            "role": turn.role.value,
            "content": turn.content,
            "sequence_number": turn.sequence_number,
        }
        response = await self._run(lambda: self.supabase.table("interview_messages").insert(data).execute())
        if not response.data:
            raise ValueError(f"Failed to save turn {turn.sequence_number} of interview {session_id}")
        return InterviewTurn.model_validate(response.data[0])

    async def list_turns(self, session_id: str) -> list[InterviewTurn]:
        response = await self._run(
            lambda: self.supabase.table("interview_messages")
            .select("*")
            .eq("interview_id", session_id)
            .order("sequence_number")
            .execute()
        )
        return [InterviewTurn.model_validate(row) for row in response.data or []]

    async def set_session_status(
        self,
        session_id: str,
        status: InterviewStatus,
        completed_at: datetime | None = None,
    ) -> InterviewSessionState:
        update_data: dict[str, Any] = {"status": status.value, "updated_at": _now_iso()}
        if completed_at is not None:
            update_data["completed_at"] = completed_at.isoformat()
        response = await self._run(
            lambda: self.supabase.table("interviews").update(update_data).eq("id", session_id).execute()
        )
        if not response.data:
            raise StaleReferenceError(f"Interview {session_id} no longer exists")
        logger.info(f"Interview {session_id} status -> {status.value}")
        return InterviewSessionState.model_validate(response.data[0])

    # === Documents ===

    async def create_document(self, fields: dict[str, Any]) -> DocumentRecord:
        response = await self._run(lambda: self.supabase.table("documents").insert(fields).execute())
        if not response.data:
            raise ValueError("Failed to create document")
        document = DocumentRecord.model_validate(response.data[0])
        logger.info(f"Created document {document.id} for interview {document.interview_id}")
        return document

    async def update_document(self, document_id: str, **fields: Any) -> DocumentRecord:
        update_data = {**fields, "updated_at": _now_iso()}
        response = await self._run(
            lambda: self.supabase.table("documents").update(update_data).eq("id", document_id).execute()
        )
        if not response.data:
            raise StaleReferenceError(f"Document {document_id} no longer exists")
        logger.info(f"Updated document {document_id}: {list(fields.keys())}")
        return DocumentRecord.model_validate(response.data[0])

    async def get_document(self, document_id: str) -> DocumentRecord | None:
        response = await self._run(
            lambda: self.supabase.table("documents")
            .select(_DOCUMENT_WITH_AUTHOR)
            .eq("id", document_id)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _document_from_row(response.data[0])

    async def get_document_by_interview(self, interview_id: str) -> DocumentRecord | None:
        response = await self._run(
            lambda: self.supabase.table("documents")
            .select("*")
            .eq("interview_id", interview_id)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _document_from_row(response.data[0])

    async def list_documents_by_ids(self, document_ids: list[str]) -> list[DocumentRecord]:
        if not document_ids:
            return []
        response = await self._run(
            lambda: self.supabase.table("documents")
            .select(_DOCUMENT_WITH_AUTHOR)
            .in_("id", document_ids)
            .execute()
        )
        return [_document_from_row(row) for row in response.data or []]

    async def upsert_document_summary(self, document_id: str, summary: DocumentSummary) -> None:
        data = {
            "document_id": document_id,
            **summary.model_dump(),
            "importance_scores": summary.importance_scores(),
            "updated_at": _now_iso(),
        }
        await self._run(
            lambda: self.supabase.table("document_ai_summaries")
            .upsert(data, on_conflict="document_id")
            .execute()
        )
        logger.info(f"Stored AI summary for document {document_id}")

    # === Playbooks ===

    async def create_playbook(self, fields: dict[str, Any]) -> PlaybookRecord:
        response = await self._run(lambda: self.supabase.table("playbooks").insert(fields).execute())
        if not response.data:
            raise ValueError("Failed to create playbook")
        playbook = PlaybookRecord.model_validate(response.data[0])
        logger.info(f"Created playbook {playbook.id} from {len(playbook.document_ids)} documents")
        return playbook

    async def update_playbook(self, playbook_id: str, **fields: Any) -> PlaybookRecord:
        update_data = {**fields, "updated_at": _now_iso()}
        response = await self._run(
            lambda: self.supabase.table("playbooks").update(update_data).eq("id", playbook_id).execute()
        )
        if not response.data:
            raise StaleReferenceError(f"Playbook {playbook_id} no longer exists")
        logger.info(f"Updated playbook {playbook_id}: {list(fields.keys())}")
        return PlaybookRecord.model_validate(response.data[0])

    async def get_playbook(self, playbook_id: str) -> PlaybookRecord | None:
        response = await self._run(
            lambda: self.supabase.table("playbooks").select("*").eq("id", playbook_id).limit(1).execute()
        )
        if not response.data:
            return None
        return PlaybookRecord.model_validate(response.data[0])

    # === Profiles ===

    async def get_organization_id(self, user_id: str) -> str | None:
        response = await self._run(
            lambda: self.supabase.table("profiles")
            .select("organization_id")
            .eq("id", user_id)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return response.data[0].get("organization_id")


def _document_from_row(row: dict[str, Any]) -> DocumentRecord:
    """Flatten the joined profile into author fields."""
    profile = row.get("profiles") or {}
    return DocumentRecord.model_validate(
        {
            **row,
            "author_name": profile.get("full_name"),
            "author_role": profile.get("role"),
        }
    )
