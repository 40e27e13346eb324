"""Pydantic schemas for playbooks and the synthesis job wire contract."""

from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class PlaybookType(str, Enum):
    """Kinds of synthesized playbook."""
    SALES_PLAYBOOK = "sales-playbook"
    CUSTOMER_SUCCESS_GUIDE = "customer-success-guide"
    OPERATIONAL_PROCEDURES = "operational-procedures"
    STRATEGIC_PLANNING_DOCUMENT = "strategic-planning-document"

    @property
    def display_name(self) -> str:
        return " ".join(word.capitalize() for word in self.value.split("-"))


class PlaybookRecord(BaseModel):
    """Row of the playbooks table."""

    model_config = ConfigDict(extra="ignore")

    id: str
    title: str
    type: PlaybookType
    content: str
    user_id: str
    organization_id: str | None = None
    is_shared: bool = False
    document_ids: list[str] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None


class SourceDocument(BaseModel):
    """Flattened source document handed to the synthesis step."""

    id: str
    title: str
    content: str
    document_type: str | None = None
    author_name: str | None = None
    author_role: str | None = None


class SynthesisRequest(BaseModel):
    """Body of the streaming synthesis request."""

    mode: Literal["generate", "update"] = "generate"
    playbook_type: PlaybookType
    title: str | None = None
    sources: list[SourceDocument] = Field(default_factory=list)
    new_document_ids: list[str] = Field(
        default_factory=list, description="Sources added since the last generation"
    )
    existing_content: str | None = Field(None, description="Current playbook as markdown (update only)")
    instructions: str | None = Field(None, description="Freeform additional context")

    @property
    def new_sources(self) -> list[SourceDocument]:
        new_ids = set(self.new_document_ids)
        return [s for s in self.sources if s.id in new_ids]


class SynthesisResult(BaseModel):
    """What a finished synthesis job hands back to its caller."""

    playbook: PlaybookRecord
    new_document_ids: list[str] = Field(default_factory=list)
    source_count: int = 0
    regenerated: bool = Field(True, description="False when only the source list changed")
