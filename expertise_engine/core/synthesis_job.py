"""Playbook synthesis jobs: generate a new playbook or update an existing one.

All validation and access checks run before the stream is opened. The
playbook is written exactly once, after the ``complete`` frame arrives; an
``error`` frame or a stream that ends early leaves the store untouched.
"""

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import TYPE_CHECKING, Any

from expertise_engine.core.config import get_settings
from expertise_engine.core.document_model import DocumentModel, content_to_markdown
from expertise_engine.core.errors import (
    AccessDeniedError,
    IllegalTransitionError,
    StaleReferenceError,
    StreamProtocolError,
    ValidationError,
    guarded,
)
from expertise_engine.core.logging import get_logger, log_with_context
from expertise_engine.core.schemas_documents import DocumentRecord
from expertise_engine.core.schemas_playbooks import (
    PlaybookRecord,
    PlaybookType,
    SourceDocument,
    SynthesisRequest,
    SynthesisResult,
)
from expertise_engine.core.stream_frames import Dialect, EventKind, close_chunks, iter_stream_events

if TYPE_CHECKING:
    from expertise_engine.db.record_store import RecordStore
    from expertise_engine.services.ai_client import AIClient

logger = get_logger(__name__)

UPLOADED_PLAYBOOK_TITLE = "Uploaded Playbook"


class JobState(str, Enum):
    IDLE = "idle"
    PREPARING = "preparing"
    STREAMING = "streaming"
    PERSISTING = "persisting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


def compute_new_ids(previous_ids: list[str], input_ids: list[str]) -> list[str]:
    """Ids in ``input_ids`` that were not part of the previous generation, in input order."""
    previous = set(previous_ids)
    seen: set[str] = set()
    new_ids = []
    for doc_id in input_ids:
        if doc_id not in previous and doc_id not in seen:
            new_ids.append(doc_id)
            seen.add(doc_id)
    return new_ids


def default_playbook_title(playbook_type: PlaybookType, today: date | None = None) -> str:
    today = today or date.today()
    return f"{playbook_type.display_name} - {today.month}/{today.day}/{today.year}"


def _dedupe(ids: list[str]) -> list[str]:
    return list(dict.fromkeys(i for i in ids if i))


def _to_source(doc: DocumentRecord) -> SourceDocument:
    return SourceDocument(
        id=doc.id,
        title=doc.title,
        content=doc.plain_text or "",
        document_type=doc.document_type.value if doc.document_type else None,
        author_name=doc.author_name,
        author_role=doc.author_role,
    )


@dataclass
class SynthesisJobConfig:
    """Guards applied by a SynthesisJob."""

    min_sources: int = 2

    @classmethod
    def from_settings(cls) -> "SynthesisJobConfig":
        return cls(min_sources=get_settings().MIN_SYNTHESIS_SOURCES)


class SynthesisJob:
    """Runs playbook generate/update requests for one user.

    Status messages from the stream are passed to ``on_status`` verbatim
    and collected in ``status_messages``.
    """

    def __init__(
        self,
        store: "RecordStore",
        ai_client: "AIClient",
        user_id: str,
        config: SynthesisJobConfig | None = None,
        on_status: Callable[[str], None] | None = None,
    ):
        self.store = store
        self.ai_client = ai_client
        self.user_id = user_id
        self.config = config or SynthesisJobConfig()
        self.on_status = on_status
        self.state = JobState.IDLE
        self.status_messages: list[str] = []
        self.job_id: str | None = None

    @guarded
    async def generate(
        self,
        document_ids: list[str],
        playbook_type: PlaybookType | str,
        title: str | None = None,
        instructions: str | None = None,
    ) -> SynthesisResult:
        """Synthesize a brand-new playbook from at least ``min_sources`` documents."""
        self._begin()
        try:
            playbook_type = _parse_type(playbook_type)
            ids = _dedupe(document_ids)
            if len(ids) < self.config.min_sources:
                raise ValidationError(f"At least {self.config.min_sources} documents must be selected")

            sources = await self._load_sources(ids)
            if len(sources) < self.config.min_sources:
                raise ValidationError(
                    f"Only {len(sources)} documents have content. "
                    f"Need at least {self.config.min_sources} documents with content."
                )

            request = SynthesisRequest(
                mode="generate",
                playbook_type=playbook_type,
                title=title,
                sources=sources,
                instructions=instructions or None,
            )
            content = await self._run_stream(request)

            self.state = JobState.PERSISTING
            model = DocumentModel.from_markdown(content)
            playbook = await self.store.create_playbook(
                {
                    "title": title or default_playbook_title(playbook_type),
                    "type": playbook_type.value,
                    "content": model.serialize(),
                    "user_id": self.user_id,
                    "organization_id": await self.store.get_organization_id(self.user_id),
                    "is_shared": True,
                    "document_ids": ids,
                }
            )
            return self._succeed(
                SynthesisResult(playbook=playbook, source_count=len(sources), regenerated=True)
            )
        except Exception:
            self._fail()
            raise

    @guarded
    async def update(
        self,
        document_ids: list[str],
        playbook_id: str | None = None,
        uploaded_content: str | None = None,
        uploaded_title: str | None = None,
        instructions: str | None = None,
        playbook_type: PlaybookType | str | None = None,
    ) -> SynthesisResult:
        """Fold new sources and/or instructions into an existing or uploaded playbook."""
        self._begin()
        try:
            ids = _dedupe(document_ids)
            instructions = (instructions or "").strip() or None
            if not uploaded_content and not playbook_id:
                raise ValidationError("Playbook ID is required")
            if not ids:
                raise ValidationError("At least 1 document must be selected")

            existing: PlaybookRecord | None = None
            if uploaded_content:
                title = uploaded_title or UPLOADED_PLAYBOOK_TITLE
                resolved_type = _parse_type(playbook_type or PlaybookType.SALES_PLAYBOOK)
                existing_markdown = content_to_markdown(uploaded_content)
                new_ids: list[str] = []
            else:
                existing = await self._load_owned_playbook(playbook_id)
                title = existing.title
                resolved_type = existing.type
                existing_markdown = content_to_markdown(existing.content)
                new_ids = compute_new_ids(existing.document_ids, ids)

                if not new_ids and not instructions:
                    self.state = JobState.PERSISTING
                    playbook = await self.store.update_playbook(existing.id, document_ids=ids)
                    log_with_context(
                        logger,
                        logging.INFO,
                        "No new sources or instructions; updated document list only",
                        job_id=self.job_id,
                        playbook_id=existing.id,
                    )
                    return self._succeed(
                        SynthesisResult(playbook=playbook, source_count=0, regenerated=False)
                    )

            sources = await self._load_sources(ids)
            valid_ids = {s.id for s in sources}
            if new_ids and not valid_ids.intersection(new_ids):
                raise ValidationError("Selected new documents have no content")
            if not sources and not instructions:
                raise ValidationError("Selected documents have no content")

            request = SynthesisRequest(
                mode="update",
                playbook_type=resolved_type,
                title=title,
                sources=sources,
                new_document_ids=new_ids,
                existing_content=existing_markdown,
                instructions=instructions,
            )
            content = await self._run_stream(request)

            self.state = JobState.PERSISTING
            serialized = DocumentModel.from_markdown(content).serialize()
            if existing is not None:
                playbook = await self.store.update_playbook(
                    existing.id, content=serialized, document_ids=ids
                )
            else:
                playbook = await self.store.create_playbook(
                    {
                        "title": title,
                        "type": resolved_type.value,
                        "content": serialized,
                        "user_id": self.user_id,
                        "organization_id": await self.store.get_organization_id(self.user_id),
                        "is_shared": False,
                        "document_ids": ids,
                    }
                )
            return self._succeed(
                SynthesisResult(
                    playbook=playbook,
                    new_document_ids=new_ids,
                    source_count=len(sources),
                    regenerated=True,
                )
            )
        except Exception:
            self._fail()
            raise

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _begin(self) -> None:
        if self.state in (JobState.PREPARING, JobState.STREAMING, JobState.PERSISTING):
            raise IllegalTransitionError("A synthesis is already running")
        self.state = JobState.PREPARING
        self.status_messages = []
        self.job_id = uuid.uuid4().hex[:12]

    def _succeed(self, result: SynthesisResult) -> SynthesisResult:
        self.state = JobState.SUCCEEDED
        log_with_context(
            logger,
            logging.INFO,
            "Synthesis job succeeded",
            job_id=self.job_id,
            playbook_id=result.playbook.id,
            regenerated=result.regenerated,
            new_documents=len(result.new_document_ids),
        )
        return result

    def _fail(self) -> None:
        self.state = JobState.FAILED
        log_with_context(logger, logging.WARNING, "Synthesis job failed", job_id=self.job_id)

    def _report(self, message: str) -> None:
        self.status_messages.append(message)
        if self.on_status:
            self.on_status(message)

    async def _load_owned_playbook(self, playbook_id: str) -> PlaybookRecord:
        playbook = await self.store.get_playbook(playbook_id)
        if playbook is None:
            raise StaleReferenceError("Playbook not found")
        if playbook.user_id != self.user_id:
            raise AccessDeniedError("Unauthorized to update this playbook")
        return playbook

    async def _load_sources(self, ids: list[str]) -> list[SourceDocument]:
        """Fetch, authorize and flatten source documents. Empty documents are dropped."""
        self._report("Fetching documents...")
        documents = await self.store.list_documents_by_ids(ids)
        found = {doc.id for doc in documents}
        missing = [i for i in ids if i not in found]
        if missing:
            raise StaleReferenceError(f"{len(missing)} selected documents no longer exist")

        denied = [doc.id for doc in documents if doc.user_id != self.user_id and not doc.is_shared]
        if denied:
            raise AccessDeniedError(f"{len(denied)} selected documents are not shared with you")

        order = {doc_id: index for index, doc_id in enumerate(ids)}
        sources = [
            _to_source(doc)
            for doc in sorted(documents, key=lambda d: order[d.id])
            if doc.plain_text and doc.plain_text.strip()
        ]
        log_with_context(
            logger,
            logging.DEBUG,
            f"Loaded {len(sources)} of {len(ids)} documents with content",
            job_id=self.job_id,
        )
        return sources

    async def _run_stream(self, request: SynthesisRequest) -> str:
        """Consume the typed stream; return the final markdown or raise."""
        self.state = JobState.STREAMING
        payload: dict[str, Any] | None = None
        chunks = self.ai_client.stream_synthesis(request)
        try:
            async for event in iter_stream_events(chunks, Dialect.TYPED):
                if event.kind == EventKind.STATUS:
                    self._report(event.message)
                elif event.kind == EventKind.ERROR:
                    raise event.to_exception()
                elif event.kind == EventKind.COMPLETE:
                    payload = event.payload
        finally:
            await close_chunks(chunks)

        content = (payload or {}).get("content")
        if not isinstance(content, str) or not content.strip():
            raise StreamProtocolError("Completion frame carried no playbook content")
        return content


def _parse_type(value: PlaybookType | str) -> PlaybookType:
    try:
        return PlaybookType(value)
    except ValueError:
        raise ValidationError(f"Invalid generation type: {value}") from None
