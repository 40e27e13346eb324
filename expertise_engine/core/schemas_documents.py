"""Pydantic schemas for documents, structured blocks and edit suggestions."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from expertise_engine.core.schemas_interviews import DocumentType


class DocumentFormat(str, Enum):
    """How a record's ``content`` column is encoded."""
    MARKDOWN = "markdown"
    BLOCKS = "blocknote"  # JSON array of Block nodes


class BlockType(str, Enum):
    """Block kinds produced natively by the engine. Foreign types pass through untouched."""
    PARAGRAPH = "paragraph"
    HEADING = "heading"
    BULLET_LIST_ITEM = "bulletListItem"
    NUMBERED_LIST_ITEM = "numberedListItem"


class EditOperation(str, Enum):
    """Selection-scoped rewrite operations."""
    IMPROVE = "improve"
    FIX_GRAMMAR = "fix-grammar"
    FORMALIZE = "formalize"
    SIMPLIFY = "simplify"
    EXPAND = "expand"


class InlineRun(BaseModel):
    """A styled run of text inside a block."""

    model_config = ConfigDict(extra="allow")

    type: str = "text"
    text: str = ""
    styles: dict[str, Any] = Field(default_factory=dict)


class Block(BaseModel):
    """One addressable unit of structured content.

    ``id`` is stable for the lifetime of the document.
    """

    model_config = ConfigDict(extra="allow")

    id: str
    type: str = BlockType.PARAGRAPH.value
    props: dict[str, Any] = Field(default_factory=dict)
    content: list[InlineRun] = Field(default_factory=list)
    children: list["Block"] = Field(default_factory=list)

    @property
    def level(self) -> int | None:
        if self.type != BlockType.HEADING.value:
            return None
        return int(self.props.get("level", 1))

    @property
    def text(self) -> str:
        return "".join(run.text for run in self.content)


Block.model_rebuild()


class DocumentRecord(BaseModel):
    """Row of the documents table."""

    model_config = ConfigDict(extra="ignore")

    id: str
    interview_id: str | None = None
    user_id: str
    title: str
    content: str
    format: DocumentFormat = DocumentFormat.MARKDOWN
    document_type: DocumentType | None = None
    is_shared: bool = False
    plain_text: str | None = None
    function_area: str | None = None
    author_name: str | None = Field(None, description="Joined from profiles when available")
    author_role: str | None = Field(None, description="Joined from profiles when available")
    created_at: datetime | None = None
    updated_at: datetime | None = None


class PendingSuggestion(BaseModel):
    """An AI-proposed replacement awaiting accept/reject. Never persisted."""

    model_config = ConfigDict(frozen=True)

    original_text: str
    suggested_text: str
    target_block_id: str
    operation: EditOperation


class DocumentSummary(BaseModel):
    """Retrieval-oriented AI summary of a document."""

    executive_summary: str
    key_insights: str
    tactical_details: str
    challenges_solutions: str
    topics: list[str] = Field(default_factory=list)
    skill_areas: list[str] = Field(default_factory=list)

    def importance_scores(self) -> dict[str, float]:
        """Content density ratios against the target section lengths."""
        return {
            "nuance_density": min(1.0, len(self.key_insights) / 1000),
            "actionability": min(1.0, len(self.tactical_details) / 1500),
            "challenge_coverage": min(1.0, len(self.challenges_solutions) / 1000),
        }
