"""Pydantic schemas for interview sessions and their turns."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class DocumentType(str, Enum):
    """Kind of document an interview produces."""
    CASE_STUDY = "case-study"
    BEST_PRACTICES = "best-practices"


class TurnRole(str, Enum):
    """Author of a transcript turn."""
    USER = "user"
    ASSISTANT = "assistant"


class InterviewStatus(str, Enum):
    """Persisted interview status. Only ever moves in_progress -> completed."""
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    DRAFT = "draft"


class InterviewTurn(BaseModel):
    """One finalized message of an interview transcript."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    role: TurnRole
    content: str
    sequence_number: int = Field(..., ge=1, description="1-based, strictly increasing per session")


class InterviewContext(BaseModel):
    """What the expert told us before the conversation starts."""

    document_type: DocumentType = DocumentType.CASE_STUDY
    title: str
    function_area: str = Field("", description="Process or area the experience belongs to")
    description: str
    expert_name: str = "Expert"
    expert_role: str = ""
    years_of_experience: int = 0

    @property
    def process_to_document(self) -> str:
        label = "Case Study" if self.document_type == DocumentType.CASE_STUDY else "Best Practices"
        return f"{label}: {self.description}"


class InterviewSessionState(BaseModel):
    """Row of the interviews table."""

    model_config = ConfigDict(extra="ignore")

    id: str
    user_id: str
    document_type: DocumentType
    title: str | None = None
    function_area: str | None = None
    description: str
    status: InterviewStatus = InterviewStatus.IN_PROGRESS
    created_at: datetime | None = None
    completed_at: datetime | None = None


class ChatMessage(BaseModel):
    """A role/content pair as sent to the AI service."""

    role: TurnRole
    content: str


class InterviewPromptContext(BaseModel):
    """Context block sent alongside every interview request."""

    document_type: DocumentType = DocumentType.CASE_STUDY
    expert_name: str = "Expert"
    role: str = ""
    years_of_experience: int = 0
    process_to_document: str

    @classmethod
    def from_interview(cls, context: InterviewContext) -> "InterviewPromptContext":
        return cls(
            document_type=context.document_type,
            expert_name=context.expert_name or "Expert",
            role=context.expert_role,
            years_of_experience=context.years_of_experience,
            process_to_document=context.process_to_document,
        )
